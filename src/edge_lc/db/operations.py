"""数据库操作函数"""
import os
from datetime import datetime
from pony.orm import db_session, select
from .models import JobResource, db


@db_session
def save_resource(key, type_meta, object_meta, spec):
    """保存任务定义，已存在时更新"""
    now = datetime.now()
    resource = JobResource.get(id=key)
    if resource:
        resource.type_meta = type_meta
        resource.object_meta = object_meta
        resource.spec = spec
        resource.updated_at = now
        return resource

    return JobResource(
        id=key,
        name=object_meta.get('name', ''),
        namespace=object_meta.get('namespace', 'default'),
        kind=type_meta.get('kind', ''),
        type_meta=type_meta,
        object_meta=object_meta,
        spec=spec,
        created_at=now,
        updated_at=now
    )


@db_session
def delete_resource(key):
    """删除任务定义，不存在时忽略"""
    resource = JobResource.get(id=key)
    if resource:
        resource.delete()
        return True
    return False


@db_session
def get_resource(key):
    """获取任务定义"""
    return JobResource.get(id=key)


@db_session
def list_resources(namespace=None, kind=None):
    """列出任务定义"""
    query = select(r for r in JobResource)
    if namespace:
        query = query.filter(lambda r: r.namespace == namespace)
    if kind:
        query = query.filter(lambda r: r.kind == kind)
    return query.order_by(JobResource.id)[:]


def init_db(filename='edge_lc.sqlite'):
    """初始化数据库，重复调用时忽略"""
    if db.provider is not None:
        return
    if filename != ':memory:':
        filename = os.path.abspath(filename)
    db.bind(provider='sqlite', filename=filename, create_db=True)
    db.generate_mapping(create_tables=True)
