"""Worker上报路由

所有任务共享一个上报队列，由单个线程按顺序取出并分发给所属任务的控制器。
每条上报无论能否路由都先原样转发给控制面。
"""

import queue
import logging
import threading
from typing import TYPE_CHECKING, List, Optional

from pydantic import ValidationError

from ..models import MessageHeader, ModelInfo, Operation, WorkerReport
from ..relay import MessageRelay
from ..utils import unique_identifier

if TYPE_CHECKING:
    from .job_manager import JobManager

logger = logging.getLogger(__name__)

_STOP = object()


def parse_results(report: WorkerReport) -> List[ModelInfo]:
    """将上报结果解析为模型信息

    Raises:
        ValidationError: 结果缺少format或url
    """
    models = []
    for result in report.results:
        metrics = result.get("metrics")
        try:
            model = ModelInfo.model_validate(result)
        except ValidationError:
            if metrics is None:
                raise
            logger.warning(f"failed to parse the worker(name={report.name}) metrics {metrics}")
            model = ModelInfo.model_validate({k: v for k, v in result.items() if k != "metrics"})
        models.append(model)
    return models


class WorkerReportRouter:
    """Worker上报路由器"""

    def __init__(self, manager: "JobManager", relay: MessageRelay, maxsize: int = 0):
        self.manager = manager
        self.relay = relay
        self.queue: "queue.Queue" = queue.Queue(maxsize=maxsize)
        self._thread: Optional[threading.Thread] = None

    def submit(self, report: WorkerReport) -> None:
        """加入上报队列"""
        self.queue.put(report)

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._thread = threading.Thread(target=self._drain, name="worker-report-router", daemon=True)
        self._thread.start()

    def stop(self, timeout: Optional[float] = None) -> None:
        if self._thread is None:
            return
        self.queue.put(_STOP)
        self._thread.join(timeout)
        self._thread = None

    def _drain(self) -> None:
        while True:
            report = self.queue.get()
            try:
                if report is _STOP:
                    return
                self.route(report)
            except Exception as e:
                logger.error(f"failed to handle worker report {report!r}: {e}")
            finally:
                self.queue.task_done()

    def route(self, report: WorkerReport) -> bool:
        """路由一条Worker上报

        Returns:
            上报被任务接受时返回True
        """
        logger.debug(f"handling worker message {report!r}")
        job_id = unique_identifier(report.namespace, report.owner_name, report.owner_kind)
        header = MessageHeader(
            namespace=report.namespace,
            resource_name=report.owner_name,
            resource_kind=report.owner_kind,
            operation=Operation.STATUS,
        )

        try:
            self.relay.send(report, header)
        except Exception as e:
            logger.error(f"job(name={job_id}) uploads worker(name={report.name}) message failed, error: {e}")

        controller = self.manager.get(job_id)
        if controller is None:
            logger.info(f"job(name={job_id}) does not exist, drop the worker(name={report.name}) message")
            return False

        try:
            models = parse_results(report)
        except ValidationError as e:
            logger.warning(f"job(name={job_id}) got invalid results from worker(name={report.name}): {e}")
            return False

        return controller.handle_report(report, models)
