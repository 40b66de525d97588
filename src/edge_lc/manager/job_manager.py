"""增量学习任务管理器

负责：
1. 响应任务创建/删除通知，保存任务定义并启动/停止控制器
2. 维护任务ID到控制器的映射
3. 将Worker上报交给路由器
"""

import logging
import threading
from typing import Any, Dict, List, Mapping, Optional

from ..cache import ResourceCache
from ..config import Settings, get_settings
from ..db import delete_resource, save_resource
from ..models import IncrementalLearningJob, WorkerReport
from ..relay import MessageRelay
from .controller import JobPhaseController
from .router import WorkerReportRouter

logger = logging.getLogger(__name__)

OBJECT_META_FIELDS = ('name', 'namespace', 'uid', 'labels', 'annotations', 'creationTimestamp')


class JobManager:
    """任务管理器

    注册表由独立的锁保护，与任务锁互不嵌套，任务的创建删除不会阻塞阶段推进。
    """

    def __init__(self, relay: MessageRelay, datasets: ResourceCache, models: ResourceCache,
                 settings: Optional[Settings] = None):
        self.relay = relay
        self.datasets = datasets
        self.models = models
        self.settings = settings or get_settings()
        self.router = WorkerReportRouter(self, relay)

        self._jobs: Dict[str, JobPhaseController] = {}
        self._lock = threading.Lock()

    def start(self) -> None:
        """启动上报路由"""
        self.router.start()
        logger.info("start incremental-learning-job manager successfully")

    def stop(self) -> None:
        """停止所有任务和上报路由"""
        with self._lock:
            controllers = list(self._jobs.values())
            self._jobs.clear()
        for controller in controllers:
            controller.stop()
        self.router.stop(self.settings.TIMING.stop_timeout)
        logger.info("incremental-learning-job manager is stopped")

    def get(self, job_id: str) -> Optional[JobPhaseController]:
        with self._lock:
            return self._jobs.get(job_id)

    def job_ids(self) -> List[str]:
        with self._lock:
            return list(self._jobs)

    def describe(self) -> List[Dict[str, Any]]:
        """所有任务的运行状态"""
        with self._lock:
            controllers = list(self._jobs.values())
        return [controller.snapshot() for controller in controllers]

    def add_worker_report(self, report: WorkerReport) -> None:
        self.router.submit(report)

    def on_create(self, job_id: str, definition: Mapping[str, Any]) -> bool:
        """处理任务创建或更新通知

        Args:
            job_id: 任务唯一标识
            definition: 任务定义(apiVersion/kind/metadata/spec)

        Returns:
            启动了新的控制器时返回True

        Raises:
            InvalidSpecError: 任务定义不合法
        """
        job = IncrementalLearningJob.from_definition(definition)

        type_meta = {'apiVersion': job.api_version, 'kind': job.kind}
        object_meta = {k: job.metadata[k] for k in OBJECT_META_FIELDS if k in job.metadata}
        spec = dict(definition.get('spec', {}))
        try:
            save_resource(job_id, type_meta, object_meta, spec)
        except Exception as e:
            logger.error(f"insert {job.kind}(name={job_id}) to db failed, error: {e}")

        with self._lock:
            controller = self._jobs.get(job_id)
            if controller is not None and controller.is_running():
                controller.update_definition(job)
                logger.info(f"job(name={job_id}) is already running, definition updated")
                return False

            stale = controller
            controller = JobPhaseController(job_id, job, self.relay, self.datasets, self.models,
                                            settings=self.settings)
            self._jobs[job_id] = controller

        if stale is not None:
            logger.info(f"job(name={job_id}) is not running, restarting it")
            stale.stop()
        controller.start()
        return True

    def on_delete(self, job_id: str) -> bool:
        """处理任务删除通知

        Returns:
            存在运行中的控制器并被停止时返回True
        """
        try:
            delete_resource(job_id)
        except Exception as e:
            logger.error(f"delete job(name={job_id}) from db failed, error: {e}")

        controller = self.get(job_id)
        if controller is None:
            logger.info(f"job(name={job_id}) is not running, nothing to stop")
            return False

        # 后台线程全部退出后才能移出注册表
        controller.stop()
        controller.join()
        with self._lock:
            if self._jobs.get(job_id) is controller:
                del self._jobs[job_id]
        logger.info(f"job(name={job_id}) is deleted")
        return True
