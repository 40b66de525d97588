"""异常定义

按错误性质划分：
1. 可重试错误 - 资源尚未同步到本地缓存
2. 配置错误 - 触发规则、样本文件格式、模型格式不合法
3. 阶段协议错误 - Worker上报与任务阶段不匹配、评估结果数量不对
4. I/O错误 - 直接使用OSError向上抛出
"""


class EdgeLCError(Exception):
    """edge-lc异常基类

    用于区分本系统的错误和其他系统错误
    """
    pass


class InvalidSpecError(EdgeLCError):
    """任务定义不合法"""
    pass


class InvalidRuleError(EdgeLCError):
    """触发规则无法解析"""
    pass


class UnknownFactError(EdgeLCError):
    """触发规则引用了不存在的事实"""
    pass


class InvalidFactError(EdgeLCError):
    """事实的取值既不是数值也不是数值序列"""
    pass


class ResourceWaitTimeout(EdgeLCError):
    """有界等待达到上限"""
    pass


class JobCancelledError(EdgeLCError):
    """等待期间任务已被停止"""
    pass


class ResourceNotFoundError(EdgeLCError):
    """资源不存在错误

    当依赖的外部资源在等待上限内仍未同步到本地时抛出
    """
    pass


class ModelNotFoundError(ResourceNotFoundError):
    """模型资源不存在"""
    pass


class DatasetNotFoundError(ResourceNotFoundError):
    """数据集资源不存在"""
    pass


class ResourceConflictError(EdgeLCError):
    """资源冲突且重试后仍失败"""
    pass


class UnsupportedFormatError(EdgeLCError):
    """不支持的样本文件格式"""
    pass


class ModelFormatError(EdgeLCError):
    """训练模型与部署模型格式不一致"""
    pass


class PhaseProtocolError(EdgeLCError):
    """阶段协议错误"""
    pass


class EvalResultsError(PhaseProtocolError):
    """部署触发需要恰好两个评估结果"""
    pass


class WorkerFailedError(EdgeLCError):
    """评估阶段Worker运行失败"""
    pass
