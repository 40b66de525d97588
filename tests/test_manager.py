"""任务管理器测试"""
import threading
import time

import pytest
from pony.orm import db_session

from edge_lc.db import get_resource
from edge_lc.exceptions import InvalidSpecError
from edge_lc.manager import JobManager
from edge_lc.models import WorkerReport
from edge_lc.relay import MessageRelay


def wait_until(predicate, timeout=5):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


@pytest.fixture
def manager(relay, caches, settings, dataset_file):
    dataset_file(["s1", "s2", "s3", "s4"])
    datasets, models = caches
    manager = JobManager(relay, datasets, models, settings=settings)
    manager.start()
    yield manager
    manager.stop()


class TestCreate:
    """任务创建"""

    def test_invalid_definition(self, manager, make_definition):
        definition = make_definition(name="bad")
        del definition['spec']['dataset']

        with pytest.raises(InvalidSpecError):
            manager.on_create("default/incrementallearningjob/bad", definition)
        assert manager.job_ids() == []

    @pytest.mark.parametrize("section", ["trainSpec", "deploySpec"])
    def test_malformed_trigger_is_rejected(self, manager, make_definition, section):
        """触发规则在创建时解析，不合法时不启动任务"""
        definition = make_definition(name="bad-trigger")
        definition['spec'][section]['trigger'] = {'condition': {'operator': '~', 'threshold': 1}}

        with pytest.raises(InvalidSpecError):
            manager.on_create("default/incrementallearningjob/bad-trigger", definition)
        assert manager.job_ids() == []

    def test_definition_is_persisted(self, manager, make_definition):
        job_id = "default/incrementallearningjob/persisted"
        assert manager.on_create(job_id, make_definition(name="persisted")) is True

        with db_session:
            resource = get_resource(job_id)
            assert resource.name == "persisted"
            assert resource.kind == "IncrementalLearningJob"
            assert resource.object_meta['uid'] == "uid-persisted"
            assert resource.spec['outputDir'] == "/output"

    def test_job_starts_and_triggers(self, manager, make_definition, relay):
        job_id = "default/incrementallearningjob/job1"
        manager.on_create(job_id, make_definition())

        assert wait_until(lambda: manager.get(job_id).snapshot()['version'] == 1)
        assert relay.sent[0][1].resource_name == "job1"
        assert manager.describe()[0]['id'] == job_id

    def test_recreate_running_job_updates_definition(self, manager, make_definition):
        job_id = "default/incrementallearningjob/job1"
        manager.on_create(job_id, make_definition(train_threshold=100))
        controller = manager.get(job_id)

        assert manager.on_create(job_id, make_definition(train_threshold=1)) is False
        assert manager.get(job_id) is controller
        assert wait_until(lambda: controller.snapshot()['version'] == 1)

    def test_dead_job_is_restarted(self, manager, make_definition, caches):
        """数据集未同步导致启动失败的任务，再次创建时重新启动"""
        datasets, _ = caches
        dataset, _ = datasets.lookup("default/dataset/dataset")
        datasets.remove("default/dataset/dataset")
        job_id = "default/incrementallearningjob/job1"
        manager.on_create(job_id, make_definition())
        stale = manager.get(job_id)
        assert wait_until(lambda: not stale.is_running())

        datasets.put("default/dataset/dataset", dataset)
        assert manager.on_create(job_id, make_definition()) is True
        assert manager.get(job_id) is not stale
        assert wait_until(lambda: manager.get(job_id).snapshot()['version'] == 1)


class TestDelete:
    """任务删除"""

    def test_delete_stops_job(self, manager, make_definition):
        job_id = "default/incrementallearningjob/deleted"
        manager.on_create(job_id, make_definition(name="deleted"))
        controller = manager.get(job_id)

        assert manager.on_delete(job_id) is True
        assert manager.get(job_id) is None
        assert not controller.is_running()
        assert all(not thread.is_alive() for thread in controller._threads)
        with db_session:
            assert get_resource(job_id) is None

    def test_delete_unknown_job(self, manager):
        assert manager.on_delete("default/incrementallearningjob/missing") is False

    def test_recreate_after_delete_starts_fresh(self, manager, make_definition):
        job_id = "default/incrementallearningjob/job1"
        manager.on_create(job_id, make_definition())
        assert wait_until(lambda: manager.get(job_id).snapshot()['version'] == 1)

        manager.on_delete(job_id)
        manager.on_create(job_id, make_definition(train_threshold=100))

        snapshot = manager.get(job_id).snapshot()
        assert snapshot['version'] == 0
        assert snapshot['phase'] == "train"


class TestWorkerReport:

    def test_report_reaches_job(self, manager, make_definition):
        job_id = "default/incrementallearningjob/job1"
        manager.on_create(job_id, make_definition())
        controller = manager.get(job_id)
        assert wait_until(lambda: controller.snapshot()['version'] == 1)

        manager.add_worker_report(WorkerReport(
            name="worker-1", namespace="default", ownerName="job1",
            kind="train", status="running",
        ))
        assert wait_until(lambda: controller.snapshot()['workerStatus'] == "running")


class SlowRelay(MessageRelay):
    """发送耗时较长的中继，用于模拟重试中的上报"""

    def __init__(self, delay):
        self.sent = []
        self.delay = delay
        self.entered = threading.Event()

    def send(self, payload, header):
        self.entered.set()
        time.sleep(self.delay)
        self.sent.append((payload, header))


class TestDeleteDuringSend:

    def test_threads_exit_before_removal(self, caches, settings, dataset_file, make_definition):
        """上报耗时超过停止超时时间，删除仍等待线程退出"""
        dataset_file(["s1", "s2", "s3", "s4"])
        settings = settings.model_copy(update={
            'TIMING': settings.TIMING.model_copy(update={'stop_timeout': 0.01}),
        })
        relay = SlowRelay(delay=0.3)
        datasets, models = caches
        manager = JobManager(relay, datasets, models, settings=settings)
        job_id = "default/incrementallearningjob/job1"
        try:
            manager.on_create(job_id, make_definition())
            controller = manager.get(job_id)
            assert relay.entered.wait(5)

            assert manager.on_delete(job_id) is True
            assert all(not thread.is_alive() for thread in controller._threads)
            assert manager.get(job_id) is None
        finally:
            manager.stop()
