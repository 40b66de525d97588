"""IncrementalLearningJob阶段控制器

每个任务一个控制器，负责：
1. 维护任务阶段(train -> eval -> deploy -> train)、Worker状态和触发状态
2. 后台采集数据集新样本并划分训练/评估样本
3. 按固定间隔推进一次阶段，满足触发条件时向Worker下发任务
4. 根据Worker上报更新状态和模型信息

阶段推进线程、样本采集线程和Worker上报处理通过任务锁互斥，
通过done信号统一停止。
"""

import os
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from ..cache import DatasetInfo, DatasetResolver, ModelResolver, ResourceCache
from ..config import Settings, get_settings
from ..exceptions import (
    EvalResultsError,
    JobCancelledError,
    ModelFormatError,
    WorkerFailedError,
)
from ..models import (
    DATASET_KIND,
    INCREMENTAL_JOB_KIND,
    MODEL_KIND,
    IncrementalLearningJob,
    MessageHeader,
    ModelInfo,
    Operation,
    Phase,
    TriggerStatus,
    UpstreamMessage,
    WorkerInput,
    WorkerReport,
    WorkerStatus,
)
from ..relay import MessageRelay
from ..samples import SampleWindow
from ..trigger import TriggerEvaluator
from ..utils import (
    add_prefix_path,
    copy_file,
    create_folder,
    trim_prefix_path,
    unique_identifier,
    write_samples,
)

logger = logging.getLogger(__name__)

NUM_OF_SAMPLES = "num_of_samples"
OUTPUT_DIR_NAMES = ("data/train", "data/eval", "train", "eval")


@dataclass
class OutputConfig:
    """任务输出目录"""
    train_samples_dir: str
    eval_samples_dir: str
    train_output: str
    eval_output: str


@dataclass
class TrainModel:
    """训练模型信息"""
    model: Optional[ModelInfo] = None
    trained_model: Dict[str, str] = field(default_factory=dict)  # format -> url
    output_url: str = ""


class JobPhaseController:
    """单个增量学习任务的阶段状态机"""

    def __init__(self, job_id: str, job: IncrementalLearningJob, relay: MessageRelay,
                 datasets: ResourceCache, models: ResourceCache,
                 settings: Optional[Settings] = None):
        self.job_id = job_id
        self.job = job
        self.relay = relay
        self.settings = settings or get_settings()

        timing = self.settings.TIMING
        self.dataset_resolver = DatasetResolver(
            datasets, timing.resource_wait_interval, timing.resource_wait_attempts)
        self.model_resolver = ModelResolver(
            models, timing.resource_wait_interval, timing.resource_wait_attempts)

        self.lock = threading.Lock()
        self.done = threading.Event()
        self._threads: List[threading.Thread] = []

        self.version = 0
        self.phase = Phase.TRAIN
        self.worker_status = WorkerStatus.READY
        self.trigger_status = TriggerStatus.READY
        self.trigger_time: Optional[datetime] = None

        self.output_dir = add_prefix_path(self.settings.VOLUME_MOUNT_PREFIX, job.spec.output_dir)
        self.output_config: Optional[OutputConfig] = None
        self.train_data_url: Optional[str] = None
        self.eval_data_url: Optional[str] = None

        self.dataset: Optional[DatasetInfo] = None
        self.sample_window = SampleWindow(self.settings.EVAL_SAMPLES_CAPACITY)
        self.train_model = TrainModel(output_url=self.output_dir)
        self.deploy_model: Optional[ModelInfo] = None
        self.eval_results: List[ModelInfo] = []

    @property
    def header(self) -> MessageHeader:
        return MessageHeader(
            namespace=self.job.namespace,
            resource_name=self.job.name,
            resource_kind=INCREMENTAL_JOB_KIND,
            operation=Operation.STATUS,
        )

    # ===================== 生命周期 =====================

    def start(self) -> None:
        """在后台线程中启动任务"""
        thread = threading.Thread(target=self.run, name=f"job-{self.job_id}", daemon=True)
        self._threads.append(thread)
        thread.start()

    def stop(self, timeout: Optional[float] = None) -> None:
        """置位done信号并等待后台线程退出，可重复调用"""
        self.done.set()
        if timeout is None:
            timeout = self.settings.TIMING.stop_timeout
        self.join(timeout)
        for thread in self._threads:
            if thread.is_alive() and thread is not threading.current_thread():
                logger.warning(f"job(name={self.job_id}) thread {thread.name} did not stop in {timeout}s")

    def join(self, timeout: Optional[float] = None) -> None:
        """等待后台线程退出，timeout为None时一直等待"""
        for thread in list(self._threads):
            if thread is not threading.current_thread():
                thread.join(timeout)

    def is_running(self) -> bool:
        """未停止且主循环线程未退出(尚未启动视为运行中)"""
        if self.done.is_set():
            return False
        if not self._threads:
            return True
        return self._threads[0].is_alive()

    def update_definition(self, job: IncrementalLearningJob) -> None:
        """替换任务定义，下一次推进时生效"""
        with self.lock:
            self.job = job

    def run(self) -> None:
        """任务主循环"""
        try:
            self.init_job()
            self.handle_data()
            self.handle_model()
        except JobCancelledError:
            logger.info(f"job(name={self.job_id}) is stopped before it started")
            return
        except Exception as e:
            logger.error(f"failed to start incremental learning job(name={self.job_id}): {e}")
            return

        logger.info(f"incremental learning job(name={self.job_id}) is started")
        interval = self.settings.TIMING.job_iteration_interval
        while not self.done.wait(interval):
            try:
                self.tick()
            except Exception as e:
                logger.error(f"job(name={self.job_id}) complete the {self.phase.value} task failed, error: {e}")
        logger.info(f"incremental learning job(name={self.job_id}) is stopped")

    def init_job(self) -> None:
        """创建任务输出目录"""
        create_folder(self.output_dir)
        dirs = [os.path.join(self.output_dir, name) for name in OUTPUT_DIR_NAMES]
        for directory in dirs:
            create_folder(directory)
        self.output_config = OutputConfig(*dirs)

    def handle_data(self) -> None:
        """解析数据集并启动样本采集线程"""
        key = unique_identifier(self.job.namespace, self.job.spec.dataset.name, DATASET_KIND)
        self.dataset = self.dataset_resolver.resolve(key, done=self.done)
        if self.done.is_set():
            raise JobCancelledError(f"job(name={self.job_id}) is stopped")

        thread = threading.Thread(target=self._ingest_loop, name=f"job-{self.job_id}-data", daemon=True)
        self._threads.append(thread)
        thread.start()

    def handle_model(self) -> None:
        """解析初始模型和部署模型"""
        namespace = self.job.namespace
        spec = self.job.spec
        base = self.model_resolver.resolve(
            unique_identifier(namespace, spec.initial_model.name, MODEL_KIND), done=self.done)
        deploy = self.model_resolver.resolve(
            unique_identifier(namespace, spec.deploy_spec.model.name, MODEL_KIND), done=self.done)

        with self.lock:
            self.train_model.model = ModelInfo(format=base.format, url=base.url)
            self.train_model.trained_model.setdefault(base.format, base.url)
            self.deploy_model = ModelInfo(format=deploy.format, url=deploy.url)

    # ===================== 样本采集 =====================

    def _ingest_loop(self) -> None:
        interval = self.settings.TIMING.dataset_handler_interval
        while True:
            try:
                self.ingest_samples()
            except Exception as e:
                logger.error(f"job(name={self.job_id}) failed to read samples of "
                             f"dataset(name={self.dataset.name}): {e}")
            if self.done.wait(interval):
                return

    def ingest_samples(self) -> int:
        """读取数据集并划分新样本，返回新样本数量"""
        samples = self.dataset.read_samples(self.settings.VOLUME_MOUNT_PREFIX)
        with self.lock:
            added = self.sample_window.ingest(samples, self.job.spec.dataset.train_prob)
            train_num = len(self.sample_window.train_samples)
            eval_num = len(self.sample_window.eval_samples)

        if added:
            logger.info(f"job(name={self.job_id}) current train samples nums is {train_num}, "
                        f"eval samples nums is {eval_num}")
        else:
            logger.warning(f"job(name={self.job_id}) didn't get new data from "
                           f"dataset(name={self.dataset.name})")
        return added

    # ===================== 阶段推进 =====================

    def tick(self) -> None:
        """推进一次当前阶段"""
        with self.lock:
            if self.phase is Phase.TRAIN:
                self._train_task()
            elif self.phase is Phase.EVAL:
                self._eval_task()
            elif self.phase is Phase.DEPLOY:
                self._deploy_task()
            else:
                logger.error(f"not valid phase: {self.phase}")

    def _ready_to_trigger(self) -> bool:
        return (self.worker_status is WorkerStatus.READY
                and self.trigger_status is TriggerStatus.READY)

    def _train_task(self) -> None:
        if self._ready_to_trigger():
            version = self.version + 1
            message = self._trigger_train(version)
            if message is None:
                return
            self._send_status(message)
            self.version = version
            self.trigger_status = TriggerStatus.COMPLETED
            logger.info(f"job(name={self.job_id}) complete the training phase triggering task "
                        f"successfully, version={version}")

        if self.worker_status is WorkerStatus.FAILED:
            logger.warning(f"job(name={self.job_id}) found the training phase worker that ran failed, "
                           f"back the training phase triggering task")
            self._back_task()

        if self.worker_status is WorkerStatus.COMPLETED:
            logger.info(f"job(name={self.job_id}) complete the train task successfully")
            self._next_task()

    def _eval_task(self) -> None:
        if self._ready_to_trigger():
            message = self._trigger_eval()
            self._send_status(message)
            self.trigger_status = TriggerStatus.COMPLETED
            logger.info(f"job(name={self.job_id}) complete the evaluating phase triggering task successfully")

        if self.worker_status is WorkerStatus.FAILED:
            raise WorkerFailedError(f"job(name={self.job_id}) found the evaluating phase worker "
                                    f"that ran failed")

        if self.worker_status is WorkerStatus.COMPLETED:
            logger.info(f"job(name={self.job_id}) complete the eval task successfully")
            self._next_task()

    def _deploy_task(self) -> None:
        if self._ready_to_trigger():
            if self._trigger_deploy():
                try:
                    deployed = self._deploy_model()
                except ModelFormatError as e:
                    logger.error(f"failed to deploy model for job(name={self.job_id}): {e}")
                    message = UpstreamMessage(phase=Phase.DEPLOY, status=WorkerStatus.FAILED)
                else:
                    message = UpstreamMessage(
                        phase=Phase.DEPLOY,
                        status=WorkerStatus.READY,
                        input=WorkerInput(models=[deployed]),
                    )
            else:
                logger.info(f"job(name={self.job_id}) deploy trigger did not fire, "
                            f"keep the deployed model")
                message = UpstreamMessage(phase=Phase.TRAIN, status=WorkerStatus.WAITING)

            self._send_status(message)
            self.trigger_status = TriggerStatus.COMPLETED
            logger.info(f"job(name={self.job_id}) complete the deploying phase triggering task successfully")

        self._next_task()
        logger.info(f"job(name={self.job_id}) complete the deploy task successfully")

    def _send_status(self, message: UpstreamMessage) -> None:
        self.relay.send(message, self.header)

    def _worker_path(self, path: str) -> str:
        return trim_prefix_path(self.settings.VOLUME_MOUNT_PREFIX, path)

    def _trigger_train(self, version: int) -> Optional[UpstreamMessage]:
        facts = {NUM_OF_SAMPLES: len(self.sample_window.train_samples)}
        if not TriggerEvaluator(self.job.spec.train_spec.trigger).evaluate(facts):
            return None

        data_url = write_samples(self.sample_window.train_samples,
                                 self.output_config.train_samples_dir, version, self.dataset.format)
        self.train_data_url = data_url

        base = self.train_model.model
        model = ModelInfo(format=base.format,
                          url=self.train_model.trained_model.get(base.format, base.url))
        self.trigger_time = datetime.now()
        return UpstreamMessage(
            phase=Phase.TRAIN,
            status=WorkerStatus.READY,
            input=WorkerInput(
                models=[model],
                data_url=self._worker_path(data_url),
                output_dir=self._worker_path(os.path.join(self.output_config.train_output, str(version))),
            ),
        )

    def _trigger_eval(self) -> UpstreamMessage:
        model_format = self.train_model.model.format
        trained_url = self.train_model.trained_model.get(model_format)
        if not trained_url:
            raise ModelFormatError(f"job(name={self.job_id}) has no trained model(format={model_format})")

        data_url = write_samples(self.sample_window.eval_samples,
                                 self.output_config.eval_samples_dir, self.version, self.dataset.format)
        self.eval_data_url = data_url

        models = [
            ModelInfo(format=model_format, url=trained_url),
            ModelInfo(format=self.deploy_model.format, url=self.deploy_model.url),
        ]
        return UpstreamMessage(
            phase=Phase.EVAL,
            status=WorkerStatus.READY,
            input=WorkerInput(
                models=models,
                data_url=self._worker_path(data_url),
                output_dir=self._worker_path(os.path.join(self.output_config.eval_output, str(self.version))),
            ),
        )

    def _trigger_deploy(self) -> bool:
        if len(self.eval_results) != 2:
            raise EvalResultsError(f"expected 2 evaluation results, actual: {len(self.eval_results)}")

        new_result, old_result = self.eval_results
        facts: Dict[str, Any] = {}
        for metric, values in new_result.metrics.items():
            old_values = old_result.metrics.get(metric)
            if old_values is None or len(old_values) != len(values):
                raise EvalResultsError(f"metric {metric} of the two evaluation results is not comparable")
            facts[metric] = list(values)
            facts[f"{metric}_delta"] = [new - old for new, old in zip(values, old_values)]

        return TriggerEvaluator(self.job.spec.deploy_spec.trigger).evaluate(facts)

    def _deploy_model(self) -> ModelInfo:
        new_result, old_result = self.eval_results
        if new_result.format != old_result.format:
            raise ModelFormatError(f"the trained model format(format={new_result.format}) is inconsistent "
                                   f"with deploy model(format={old_result.format})")

        prefix = self.settings.VOLUME_MOUNT_PREFIX
        trained_model = add_prefix_path(prefix, new_result.url)
        deploy_model = add_prefix_path(prefix, old_result.url)
        copy_file(trained_model, deploy_model)

        self.deploy_model = ModelInfo(format=old_result.format, url=old_result.url)
        logger.info(f"job(name={self.job_id}) deploys model(url={trained_model}) successfully")
        return ModelInfo(format=new_result.format, url=new_result.url)

    # ===================== 状态转换 =====================

    def _init_task_status(self) -> None:
        self.worker_status = WorkerStatus.READY
        self.trigger_status = TriggerStatus.READY

    def _back_task(self) -> None:
        self.phase = Phase.TRAIN
        self._init_task_status()

    def _forward_samples(self) -> None:
        if self.phase is Phase.TRAIN:
            self.sample_window.clear_train()
        elif self.phase is Phase.EVAL:
            self.sample_window.forward_eval()

    def _next_task(self) -> None:
        if self.phase is Phase.TRAIN:
            self._forward_samples()
            self._init_task_status()
            self.phase = Phase.EVAL
        elif self.phase is Phase.EVAL:
            self._forward_samples()
            self._init_task_status()
            self.phase = Phase.DEPLOY
        else:
            self._back_task()

    # ===================== Worker上报 =====================

    def handle_report(self, report: WorkerReport, models: Sequence[ModelInfo]) -> bool:
        """根据Worker上报更新任务状态

        Args:
            report: Worker上报
            models: 从上报结果解析出的模型

        Returns:
            上报阶段与任务当前阶段一致并被接受时返回True
        """
        with self.lock:
            if report.kind is not self.phase:
                logger.warning(f"job(name={self.job_id}) {self.phase.value} phase get "
                               f"worker(kind={report.kind.value})")
                return False

            self.worker_status = report.status

            if report.status is WorkerStatus.COMPLETED:
                if self.phase is Phase.TRAIN:
                    self.train_model.trained_model = {
                        model.format: model.url for model in models if model.format
                    }
                elif self.phase is Phase.EVAL:
                    self.eval_results = list(models)
            return True

    def snapshot(self) -> Dict[str, Any]:
        """任务运行状态快照"""
        with self.lock:
            return {
                'id': self.job_id,
                'name': self.job.name,
                'namespace': self.job.namespace,
                'phase': self.phase.value,
                'version': self.version,
                'workerStatus': self.worker_status.value,
                'triggerStatus': self.trigger_status.value,
                'numbersSeen': self.sample_window.numbers_seen,
                'trainSamples': len(self.sample_window.train_samples),
                'evalSamples': len(self.sample_window.eval_samples),
                'evalWindows': len(self.sample_window.eval_windows),
                'trainedModel': dict(self.train_model.trained_model),
                'deployModel': self.deploy_model.to_dict() if self.deploy_model else None,
            }
