"""数据库模型定义"""
from datetime import datetime
from pony.orm import Database, Json, PrimaryKey, Required, Optional as PonyOptional

db = Database()


class JobResource(db.Entity):
    """任务定义实体，只保存定义，不保存运行时阶段状态"""
    _table_ = 'job_resources'

    id = PrimaryKey(str)  # namespace/kind/name
    name = Required(str)
    namespace = Required(str)
    kind = Required(str)
    type_meta = PonyOptional(Json)
    object_meta = PonyOptional(Json)
    spec = PonyOptional(Json)
    created_at = Required(datetime)
    updated_at = Required(datetime)
