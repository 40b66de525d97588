"""Operator处理函数

该模块负责：
1. 将IncrementalLearningJob的创建、更新、恢复、删除通知交给任务管理器
2. 将Dataset、Model资源同步到本地缓存

任务管理器和缓存通过kopf的memo传入：memo.manager、memo.datasets、memo.models。
"""

import kopf
from pydantic import ValidationError

from ..cache import DatasetInfo
from ..config import get_settings
from ..exceptions import InvalidSpecError
from ..models import DATASET_KIND, INCREMENTAL_JOB_KIND, MODEL_KIND, ModelInfo
from ..utils import current_time, unique_identifier

settings = get_settings()
GROUP = settings.GROUP
VERSION = settings.VERSION


def job_definition(body):
    """从kopf的body中提取任务定义"""
    return {
        'apiVersion': body.get('apiVersion'),
        'kind': body.get('kind'),
        'metadata': dict(body.get('metadata', {})),
        'spec': dict(body.get('spec', {})),
    }


@kopf.on.resume(GROUP, VERSION, settings.JOB_PLURAL)
@kopf.on.create(GROUP, VERSION, settings.JOB_PLURAL)
@kopf.on.update(GROUP, VERSION, settings.JOB_PLURAL)
def upsert_incremental_job(body, name, namespace, memo, logger, **kwargs):
    """处理IncrementalLearningJob创建、更新和恢复

    Args:
        body: 资源完整内容
        name: 任务名称
        namespace: 命名空间
        memo: 共享对象，包含任务管理器
        logger: 日志记录器

    Returns:
        写入status的同步信息

    Raises:
        kopf.PermanentError: 任务定义不合法，不会重试
    """
    job_id = unique_identifier(namespace, name, INCREMENTAL_JOB_KIND)
    try:
        started = memo.manager.on_create(job_id, job_definition(body))
    except InvalidSpecError as e:
        logger.error(f"Invalid spec: {e}")
        raise kopf.PermanentError(str(e))

    if started:
        logger.info(f"Started incremental learning job: {job_id}")
    return {
        'jobId': job_id,
        'nodeName': settings.NODE_NAME,
        'lastSyncTime': current_time(),
    }


@kopf.on.delete(GROUP, VERSION, settings.JOB_PLURAL, optional=True)
def delete_incremental_job(name, namespace, memo, logger, **kwargs):
    """处理IncrementalLearningJob删除"""
    job_id = unique_identifier(namespace, name, INCREMENTAL_JOB_KIND)
    if memo.manager.on_delete(job_id):
        logger.info(f"Stopped incremental learning job: {job_id}")


@kopf.on.resume(GROUP, VERSION, settings.DATASET_PLURAL)
@kopf.on.create(GROUP, VERSION, settings.DATASET_PLURAL)
@kopf.on.update(GROUP, VERSION, settings.DATASET_PLURAL)
def sync_dataset(spec, name, namespace, memo, logger, **kwargs):
    """同步Dataset到本地缓存"""
    try:
        dataset = DatasetInfo(
            name=name,
            namespace=namespace,
            url=spec.get('url'),
            format=spec.get('format') or 'txt',
        )
    except ValidationError as e:
        raise kopf.PermanentError(f"Invalid dataset {namespace}/{name}: {e}")

    memo.datasets.put(unique_identifier(namespace, name, DATASET_KIND), dataset)
    logger.info(f"Synced dataset: {namespace}/{name}")


@kopf.on.delete(GROUP, VERSION, settings.DATASET_PLURAL, optional=True)
def remove_dataset(name, namespace, memo, **kwargs):
    """从本地缓存移除Dataset"""
    memo.datasets.remove(unique_identifier(namespace, name, DATASET_KIND))


@kopf.on.resume(GROUP, VERSION, settings.MODEL_PLURAL)
@kopf.on.create(GROUP, VERSION, settings.MODEL_PLURAL)
@kopf.on.update(GROUP, VERSION, settings.MODEL_PLURAL)
def sync_model(spec, name, namespace, memo, logger, **kwargs):
    """同步Model到本地缓存"""
    try:
        model = ModelInfo(format=spec.get('format'), url=spec.get('url'))
    except ValidationError as e:
        raise kopf.PermanentError(f"Invalid model {namespace}/{name}: {e}")

    memo.models.put(unique_identifier(namespace, name, MODEL_KIND), model)
    logger.info(f"Synced model: {namespace}/{name}")


@kopf.on.delete(GROUP, VERSION, settings.MODEL_PLURAL, optional=True)
def remove_model(name, namespace, memo, **kwargs):
    """从本地缓存移除Model"""
    memo.models.remove(unique_identifier(namespace, name, MODEL_KIND))
