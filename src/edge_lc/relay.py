"""消息中继

将任务阶段状态和Worker上报转发给控制面。控制面通过自定义资源的
status子资源获取边缘侧状态，因此中继以patch status的方式上报。
"""

import json
import time
import logging
from functools import wraps
from typing import Any, Dict, Mapping, Optional, Union

from kubernetes import client
from kubernetes.client.rest import ApiException

from .config import Settings, get_settings
from .exceptions import ResourceConflictError, ResourceNotFoundError
from .models import CamelModel, MessageHeader
from .utils import current_time

logger = logging.getLogger(__name__)

Payload = Union[CamelModel, Mapping[str, Any]]


def retry_on_error(operation='default'):
    """重试装饰器

    Args:
        operation: 操作类型，用于日志

    Returns:
        装饰器函数

    重试策略：
    1. 资源冲突(409): 临时错误，按配置重试
    2. 资源不存在(404): 直接抛出特定异常
    3. 其他API异常: 直接抛出
    4. 其他异常: 按配置重试
    """
    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            retry_config = get_settings().RETRY
            max_retries = max(retry_config.max_retries, 1)
            delay = retry_config.delay

            last_exception = None
            for attempt in range(max_retries):
                try:
                    return func(*args, **kwargs)
                except ApiException as e:
                    last_exception = e
                    if e.status == 409:  # Conflict
                        logger.warning(
                            f"Resource conflict, retrying [{operation}] "
                            f"{attempt + 1}/{max_retries}"
                        )
                        time.sleep(delay * (attempt + 1))
                    elif e.status == 404:  # Not Found
                        raise ResourceNotFoundError(f"Resource not found: {e}")
                    else:
                        raise
                except Exception as e:
                    last_exception = e
                    logger.error(
                        f"Operation [{operation}] failed, retrying "
                        f"{attempt + 1}/{max_retries}: {e}"
                    )
                    time.sleep(delay * (attempt + 1))

            if isinstance(last_exception, ApiException) and last_exception.status == 409:
                raise ResourceConflictError(
                    f"Resource conflict after {max_retries} retries: {last_exception}"
                )
            raise last_exception
        return wrapper
    return decorator


def payload_to_dict(payload: Payload) -> Dict[str, Any]:
    """将消息转换为可JSON编码的字典"""
    if isinstance(payload, CamelModel):
        return payload.to_dict()
    return dict(payload)


class MessageRelay:
    """消息中继接口"""

    def send(self, payload: Payload, header: MessageHeader) -> Any:
        raise NotImplementedError


class KubernetesStatusRelay(MessageRelay):
    """通过patch自定义资源status上报"""

    def __init__(self, api: Optional[client.CustomObjectsApi] = None,
                 settings: Optional[Settings] = None):
        self.api = api or client.CustomObjectsApi()
        self.settings = settings or get_settings()

    def build_status(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """根据消息构造status补丁"""
        phase = str(data.get('phase') or data.get('kind') or 'unknown')
        state = str(data.get('status') or 'unknown')
        now = current_time()
        return {
            'status': {
                'lastUpdateTime': now,
                'conditions': [{
                    'type': phase.capitalize(),
                    'status': 'True',
                    'lastTransitionTime': now,
                    'reason': f'{phase.capitalize()}{state.capitalize()}',
                    'message': json.dumps(data, sort_keys=True),
                    'nodeName': self.settings.NODE_NAME,
                }]
            }
        }

    @retry_on_error(operation='patch')
    def send(self, payload: Payload, header: MessageHeader) -> Any:
        data = payload_to_dict(payload)
        plural = header.resource_kind.lower() + 's'
        result = self.api.patch_namespaced_custom_object_status(
            group=self.settings.GROUP,
            version=self.settings.VERSION,
            namespace=header.namespace,
            plural=plural,
            name=header.resource_name,
            body=self.build_status(data),
        )
        logger.debug(f"Sent {header.operation.value} of {header.resource_kind}"
                     f"({header.namespace}/{header.resource_name})")
        return result
