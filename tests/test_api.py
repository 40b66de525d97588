"""Worker上报接口测试"""
from unittest.mock import Mock

import pytest
from fastapi.testclient import TestClient

from edge_lc.api import create_app
from edge_lc.models import Phase, WorkerStatus

JOB = {'id': "default/incrementallearningjob/job1", 'name': "job1", 'namespace': "default",
       'phase': "train", 'version': 1}


@pytest.fixture
def manager():
    manager = Mock()
    manager.describe.return_value = [JOB]
    return manager


@pytest.fixture
def client(manager):
    return TestClient(create_app(manager))


class TestWorkerInfo:
    """POST /workers/{name}/info"""

    def test_report_is_queued(self, client, manager):
        response = client.post("/workers/worker-1/info", json={
            "namespace": "default",
            "ownerName": "job1",
            "ownerKind": "IncrementalLearningJob",
            "kind": "Train",
            "status": "Completed",
            "results": [{"format": "pb", "url": "/out/pb"}],
        })

        assert response.status_code == 202
        assert response.json() == {"status": "accepted"}
        report = manager.add_worker_report.call_args[0][0]
        assert report.name == "worker-1"
        assert report.kind is Phase.TRAIN
        assert report.status is WorkerStatus.COMPLETED
        assert report.owner_kind == "incrementallearningjob"

    def test_reported_name_is_kept(self, client, manager):
        client.post("/workers/path-name/info", json={
            "name": "worker-2", "namespace": "default", "ownerName": "job1",
            "kind": "eval", "status": "running",
        })
        assert manager.add_worker_report.call_args[0][0].name == "worker-2"

    def test_invalid_report(self, client, manager):
        response = client.post("/workers/worker-1/info", json={
            "namespace": "default", "ownerName": "job1", "kind": "predict", "status": "running",
        })

        assert response.status_code == 422
        manager.add_worker_report.assert_not_called()


class TestJobs:
    """任务状态查询"""

    def test_list(self, client):
        assert client.get("/jobs").json() == [JOB]

    def test_get(self, client):
        assert client.get("/jobs/default/job1").json() == JOB

    def test_not_found(self, client):
        assert client.get("/jobs/default/missing").status_code == 404
