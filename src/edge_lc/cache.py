"""资源缓存

数据集和模型资源由kopf处理函数同步到本地缓存，任务只读取缓存。
由于同步与任务创建之间没有顺序保证，读取时通过有界等待解析。
"""

import logging
import threading
from typing import Any, Dict, List, Optional, Tuple

from pydantic import Field

from .exceptions import (
    DatasetNotFoundError,
    ModelNotFoundError,
    ResourceNotFoundError,
    ResourceWaitTimeout,
)
from .models import CamelModel, ModelInfo
from .utils import add_prefix_path, read_samples, wait_for

logger = logging.getLogger(__name__)


class DatasetInfo(CamelModel):
    """数据集信息"""
    name: str
    namespace: str = "default"
    url: str = Field(..., description="样本索引文件地址")
    format: str = Field("txt", description="样本格式")

    def read_samples(self, prefix: str = "") -> List[str]:
        """读取数据集当前全部样本"""
        return read_samples(add_prefix_path(prefix, self.url))


class ResourceCache:
    """线程安全的资源缓存，key为 namespace/kind/name"""

    def __init__(self):
        self._items: Dict[str, Any] = {}
        self._lock = threading.Lock()

    def put(self, key: str, value: Any) -> None:
        with self._lock:
            self._items[key] = value

    def remove(self, key: str) -> None:
        with self._lock:
            self._items.pop(key, None)

    def lookup(self, key: str) -> Tuple[Optional[Any], bool]:
        with self._lock:
            if key in self._items:
                return self._items[key], True
            return None, False

    def keys(self) -> List[str]:
        with self._lock:
            return list(self._items)


class BoundedResolver:
    """有界等待解析缓存中的资源"""

    not_found_error = ResourceNotFoundError
    kind = "resource"

    def __init__(self, cache: ResourceCache, interval: float = 0.1, max_attempts: int = 300):
        self.cache = cache
        self.interval = interval
        self.max_attempts = max_attempts

    def resolve(self, key: str, done: Optional[threading.Event] = None):
        """解析资源

        Args:
            key: 资源标识
            done: 任务停止信号

        Raises:
            ResourceNotFoundError: 等待上限内资源仍未同步
            JobCancelledError: 等待期间任务已被停止
        """
        try:
            return wait_for(
                lambda: self._probe(key),
                self.interval,
                self.max_attempts,
                done=done,
                description=f"{self.kind}(name={key})",
            )
        except ResourceWaitTimeout:
            raise self.not_found_error(f"not exists {self.kind}(name={key})")

    def _probe(self, key: str) -> Tuple[Optional[Any], bool]:
        value, found = self.cache.lookup(key)
        return value, found and value is not None


class DatasetResolver(BoundedResolver):
    """数据集解析"""
    not_found_error = DatasetNotFoundError
    kind = "dataset"

    def resolve(self, key: str, done: Optional[threading.Event] = None) -> DatasetInfo:
        return super().resolve(key, done)


class ModelResolver(BoundedResolver):
    """模型解析"""
    not_found_error = ModelNotFoundError
    kind = "model"

    def resolve(self, key: str, done: Optional[threading.Event] = None) -> ModelInfo:
        return super().resolve(key, done)
