"""测试公共fixture"""
import os

import pytest

from edge_lc.cache import DatasetInfo, ResourceCache
from edge_lc.config import RetrySettings, Settings, TimingSettings
from edge_lc.db import init_db
from edge_lc.models import DATASET_KIND, MODEL_KIND, ModelInfo
from edge_lc.relay import MessageRelay
from edge_lc.utils import unique_identifier


class RecordingRelay(MessageRelay):
    """记录所有发送消息的中继"""

    def __init__(self, fail=False):
        self.sent = []
        self.fail = fail

    def send(self, payload, header):
        if self.fail:
            raise ConnectionError("control plane unreachable")
        self.sent.append((payload, header))


@pytest.fixture(scope="session", autouse=True)
def database():
    init_db(':memory:')


@pytest.fixture
def settings(tmp_path):
    return Settings(
        VOLUME_MOUNT_PREFIX=str(tmp_path),
        EVAL_SAMPLES_CAPACITY=5,
        TIMING=TimingSettings(
            job_iteration_interval=0.01,
            dataset_handler_interval=0.01,
            resource_wait_interval=0.001,
            resource_wait_attempts=5,
            stop_timeout=2,
        ),
        RETRY=RetrySettings(max_retries=2, delay=0),
    )


@pytest.fixture
def relay():
    return RecordingRelay()


@pytest.fixture
def make_definition():
    def _make(name="job1", namespace="default", train_threshold=1, deploy_trigger=None, train_prob=0.5):
        return {
            'apiVersion': 'neptune.io/v1alpha1',
            'kind': 'IncrementalLearningJob',
            'metadata': {'name': name, 'namespace': namespace, 'uid': f'uid-{name}'},
            'spec': {
                'initialModel': {'name': 'initial-model'},
                'dataset': {'name': 'dataset', 'trainProb': train_prob},
                'trainSpec': {'trigger': {'condition': {
                    'operator': '>', 'threshold': train_threshold, 'metric': 'num_of_samples'}}},
                'deploySpec': {
                    'model': {'name': 'deploy-model'},
                    'trigger': deploy_trigger or {'condition': {
                        'operator': '>', 'threshold': 0, 'metric': 'precision_delta'}},
                },
                'outputDir': '/output',
            },
        }
    return _make


@pytest.fixture
def dataset_file(tmp_path):
    """数据集索引文件，返回写入样本的函数"""
    path = tmp_path / "data" / "index.txt"
    os.makedirs(path.parent, exist_ok=True)
    path.write_text("")

    def _write(samples):
        path.write_text("".join(f"{s}\n" for s in samples))
    return _write


@pytest.fixture
def caches(dataset_file):
    datasets = ResourceCache()
    models = ResourceCache()
    datasets.put(unique_identifier('default', 'dataset', DATASET_KIND),
                 DatasetInfo(name='dataset', namespace='default', url='/data/index.txt', format='txt'))
    models.put(unique_identifier('default', 'initial-model', MODEL_KIND),
               ModelInfo(format='pb', url='/models/initial'))
    models.put(unique_identifier('default', 'deploy-model', MODEL_KIND),
               ModelInfo(format='pb', url='/models/deploy'))
    return datasets, models
