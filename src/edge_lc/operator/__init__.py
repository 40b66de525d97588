"""Operator模块"""
from .handlers import (
    upsert_incremental_job,
    delete_incremental_job,
    sync_dataset,
    remove_dataset,
    sync_model,
    remove_model,
)
