"""数据库模块"""
from .models import JobResource, db
from .operations import (
    save_resource,
    delete_resource,
    get_resource,
    list_resources,
    init_db,
)
