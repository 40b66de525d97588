"""工具函数"""

import os
import time
import shutil
import logging
import posixpath
import threading
from datetime import datetime, timezone
from typing import Any, Callable, List, Optional, Sequence, Tuple

from .exceptions import JobCancelledError, ResourceWaitTimeout, UnsupportedFormatError

logger = logging.getLogger(__name__)

# 样本文件格式 -> 文件名
SAMPLE_FILE_NAMES = {
    "txt": "data.txt",
}


def unique_identifier(namespace: str, name: str, kind: str) -> str:
    """生成资源唯一标识 namespace/kind/name"""
    return f"{namespace}/{kind.lower()}/{name}"


def current_time() -> str:
    """当前UTC时间"""
    return datetime.now(timezone.utc).strftime('%Y-%m-%dT%H:%M:%SZ')


def add_prefix_path(prefix: str, path: str) -> str:
    """为Worker可见路径加上本地挂载前缀"""
    if not prefix:
        return path
    return posixpath.join(prefix, path.lstrip("/"))


def trim_prefix_path(prefix: str, path: str) -> str:
    """去掉本地挂载前缀，得到Worker可见路径"""
    if prefix and path.startswith(prefix):
        return "/" + path[len(prefix):].lstrip("/")
    return path


def create_folder(path: str) -> None:
    """创建目录(已存在时忽略)"""
    os.makedirs(path, exist_ok=True)


def copy_file(src: str, dst: str) -> str:
    """复制模型文件或目录到目标位置"""
    create_folder(os.path.dirname(dst) or ".")
    if os.path.isdir(src):
        shutil.copytree(src, dst, dirs_exist_ok=True)
    else:
        shutil.copyfile(src, dst)
    return dst


def wait_for(probe: Callable[[], Tuple[Any, bool]], interval: float, max_attempts: int,
             done: Optional[threading.Event] = None, description: str = "resource") -> Any:
    """有界等待

    外部资源由同步组件异步写入本地缓存，任务启动时可能尚不可见，
    因此按固定间隔轮询，直到probe返回found或达到轮询上限。

    Args:
        probe: 探测函数，返回 (value, found)
        interval: 轮询间隔(秒)
        max_attempts: 最大轮询次数
        done: 任务停止信号，置位时立即放弃等待
        description: 日志中使用的资源描述

    Returns:
        探测到的值

    Raises:
        ResourceWaitTimeout: 达到轮询上限仍未找到
        JobCancelledError: 等待期间任务已被停止
    """
    for attempt in range(max_attempts):
        value, found = probe()
        if found:
            return value
        if attempt == 0:
            logger.info(f"Waiting for {description} to be synced")
        if done is not None:
            if done.wait(interval):
                raise JobCancelledError(f"Stopped while waiting for {description}")
        else:
            time.sleep(interval)

    value, found = probe()
    if found:
        return value
    raise ResourceWaitTimeout(
        f"{description} is not available after {max_attempts} attempts"
    )


def sample_file_path(directory: str, fmt: str) -> str:
    """根据格式得到样本文件路径

    Raises:
        UnsupportedFormatError: 不支持的格式
    """
    file_name = SAMPLE_FILE_NAMES.get((fmt or "").lower())
    if file_name is None:
        raise UnsupportedFormatError(f"Unsupported sample file format: {fmt}")
    return os.path.join(directory, file_name)


def write_samples(samples: Sequence[str], directory: str, version: int, fmt: str) -> str:
    """按版本写样本文件，每行一个样本

    Returns:
        样本文件路径
    """
    sub_dir = os.path.join(directory, str(version))
    file_url = sample_file_path(sub_dir, fmt)
    create_folder(sub_dir)

    with open(file_url, 'w') as f:
        for line in samples:
            f.write(f"{line}\n")

    return file_url


def read_samples(path: str) -> List[str]:
    """读取按行存放的样本索引文件"""
    with open(path, 'r') as f:
        return [line.strip() for line in f if line.strip()]
