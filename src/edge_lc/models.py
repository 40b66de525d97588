"""数据模型定义

包括：
1. 任务阶段、Worker状态、触发状态等枚举
2. IncrementalLearningJob任务定义
3. 与Worker、控制面交换的消息
"""

from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .exceptions import InvalidRuleError, InvalidSpecError
from .trigger import TriggerEvaluator

INCREMENTAL_JOB_KIND = "incrementallearningjob"
DATASET_KIND = "dataset"
MODEL_KIND = "model"


class Phase(str, Enum):
    """任务阶段"""
    TRAIN = "train"
    EVAL = "eval"
    DEPLOY = "deploy"


class WorkerStatus(str, Enum):
    """Worker状态"""
    READY = "ready"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    WAITING = "waiting"


class TriggerStatus(str, Enum):
    """触发状态"""
    READY = "ready"
    COMPLETED = "completed"


class Operation(str, Enum):
    """消息操作类型"""
    INSERT = "insert"
    DELETE = "delete"
    STATUS = "status"


def _lower(value):
    if isinstance(value, str):
        return value.lower()
    return value


class CamelModel(BaseModel):
    """支持驼峰别名的模型基类"""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    def to_dict(self) -> Dict[str, Any]:
        """按别名序列化为可JSON编码的字典"""
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


class ModelInfo(CamelModel):
    """模型信息，构造后不可修改"""
    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    format: str = Field(..., description="模型格式")
    url: str = Field(..., description="模型地址")
    metrics: Dict[str, List[float]] = Field(default_factory=dict, description="评估指标")

    @field_validator("metrics", mode="before")
    @classmethod
    def normalize_metrics(cls, v):
        if v is None:
            return {}
        if isinstance(v, Mapping):
            return {
                name: list(values) if isinstance(values, (list, tuple)) else [values]
                for name, values in v.items()
            }
        return v


class WorkerInput(CamelModel):
    """下发给Worker的输入"""
    models: List[ModelInfo] = Field(default_factory=list, description="输入模型")
    data_url: Optional[str] = Field(None, alias="dataURL", description="样本文件地址")
    output_dir: Optional[str] = Field(None, alias="outputDir", description="输出目录")


class UpstreamMessage(CamelModel):
    """上报给控制面的阶段状态"""
    phase: Phase = Field(..., description="任务阶段")
    status: WorkerStatus = Field(..., description="Worker状态")
    input: Optional[WorkerInput] = Field(None, description="Worker输入")


class MessageHeader(CamelModel):
    """消息头"""
    namespace: str
    resource_name: str = Field(..., alias="resourceName")
    resource_kind: str = Field(..., alias="resourceKind")
    operation: Operation = Operation.STATUS


class WorkerReport(CamelModel):
    """Worker上报的状态与结果"""
    name: str = Field("", description="Worker名称")
    namespace: str = Field(..., description="命名空间")
    owner_name: str = Field(..., alias="ownerName", description="所属任务名称")
    owner_kind: str = Field(INCREMENTAL_JOB_KIND, alias="ownerKind", description="所属任务类型")
    kind: Phase = Field(..., description="Worker所处阶段")
    status: WorkerStatus = Field(..., description="Worker状态")
    owner_info: Dict[str, Any] = Field(default_factory=dict, alias="ownerInfo")
    results: List[Dict[str, Any]] = Field(default_factory=list, description="结果列表")

    @field_validator("kind", "status", "owner_kind", mode="before")
    @classmethod
    def lower_case(cls, v):
        return _lower(v)


class ResourceRef(CamelModel):
    """资源引用"""
    name: str


class DatasetRef(ResourceRef):
    """数据集引用"""
    train_prob: float = Field(..., alias="trainProb", ge=0, le=1, description="训练样本比例")


def _check_trigger(rule):
    try:
        TriggerEvaluator(rule)
    except InvalidRuleError as e:
        raise ValueError(str(e))
    return rule


class TrainSpec(CamelModel):
    """训练配置"""
    trigger: Dict[str, Any] = Field(..., description="训练触发规则")

    @field_validator("trigger")
    @classmethod
    def validate_trigger(cls, v):
        return _check_trigger(v)


class DeploySpec(CamelModel):
    """部署配置"""
    model: ResourceRef = Field(..., description="部署模型")
    trigger: Dict[str, Any] = Field(..., description="部署触发规则")

    @field_validator("trigger")
    @classmethod
    def validate_trigger(cls, v):
        return _check_trigger(v)


class JobSpec(CamelModel):
    """IncrementalLearningJob规格"""
    initial_model: ResourceRef = Field(..., alias="initialModel", description="初始模型")
    dataset: DatasetRef = Field(..., description="数据集")
    train_spec: TrainSpec = Field(..., alias="trainSpec")
    deploy_spec: DeploySpec = Field(..., alias="deploySpec")
    output_dir: str = Field(..., alias="outputDir", description="输出目录")

    @field_validator("output_dir")
    @classmethod
    def validate_output_dir(cls, v):
        if not v or not v.strip():
            raise ValueError("outputDir cannot be empty")
        return v


class IncrementalLearningJob(CamelModel):
    """IncrementalLearningJob任务定义"""
    api_version: str = Field("neptune.io/v1alpha1", alias="apiVersion")
    kind: str = Field("IncrementalLearningJob")
    metadata: Dict[str, Any] = Field(default_factory=dict, description="元数据")
    spec: JobSpec = Field(..., description="任务规格")

    @property
    def name(self) -> str:
        return self.metadata.get("name", "")

    @property
    def namespace(self) -> str:
        return self.metadata.get("namespace", "default")

    @classmethod
    def from_definition(cls, definition: Mapping[str, Any]) -> "IncrementalLearningJob":
        """解析任务定义

        Raises:
            InvalidSpecError: 任务定义不合法
        """
        try:
            return cls.model_validate(dict(definition))
        except ValidationError as e:
            raise InvalidSpecError(f"Invalid incremental learning job definition: {e}")
