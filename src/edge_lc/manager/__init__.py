"""任务管理模块"""
from .controller import JobPhaseController, OutputConfig, TrainModel
from .router import WorkerReportRouter, parse_results
from .job_manager import JobManager
