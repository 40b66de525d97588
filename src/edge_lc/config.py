"""配置管理模块

该模块负责加载和管理edge-lc的配置信息，配置来源按优先级依次为：
1. 构造参数
2. 环境变量(EDGE_LC_前缀，嵌套字段使用__分隔)
3. .env文件
4. YAML配置文件(由EDGE_LC_CONFIG指定)
"""

import os
import logging
from typing import Any, Dict, Optional

import yaml
from pydantic import BaseModel
from pydantic_settings import (
    BaseSettings,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

logger = logging.getLogger(__name__)


class TimingSettings(BaseModel):
    """周期与等待配置(秒)"""
    job_iteration_interval: float = 10  # 任务阶段推进间隔
    dataset_handler_interval: float = 10  # 数据集样本采集间隔
    resource_wait_interval: float = 0.1  # 等待资源同步的轮询间隔
    resource_wait_attempts: int = 300  # 等待资源同步的最大轮询次数
    stop_timeout: float = 5  # 停止任务时等待后台线程退出的时间


class RetrySettings(BaseModel):
    """状态上报重试配置"""
    max_retries: int = 3
    delay: float = 1


class Settings(BaseSettings):
    """edge-lc配置"""
    # API配置
    GROUP: str = "neptune.io"
    VERSION: str = "v1alpha1"
    JOB_PLURAL: str = "incrementallearningjobs"
    DATASET_PLURAL: str = "datasets"
    MODEL_PLURAL: str = "models"

    # 节点配置
    NODE_NAME: str = "edge-node"
    WATCH_NAMESPACE: str = ""  # 空字符串表示监听所有命名空间
    VOLUME_MOUNT_PREFIX: str = ""

    # 任务配置
    EVAL_SAMPLES_CAPACITY: int = 5
    TIMING: TimingSettings = TimingSettings()
    RETRY: RetrySettings = RetrySettings()

    # 数据库配置
    DATABASE_FILENAME: str = "edge_lc.sqlite"

    # Worker上报接口配置
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 9100

    # 日志配置
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    model_config = SettingsConfigDict(
        env_prefix="EDGE_LC_",
        env_file=".env",
        env_nested_delimiter="__",
        case_sensitive=True,
        extra="ignore",
        yaml_file=os.environ.get("EDGE_LC_CONFIG"),
    )

    @classmethod
    def settings_customise_sources(cls, settings_cls, init_settings, env_settings,
                                   dotenv_settings, file_secret_settings):
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            YamlConfigSettingsSource(settings_cls),
            file_secret_settings,
        )

    def get_logging_config(self) -> Dict[str, Any]:
        """获取日志配置"""
        return {'level': self.LOG_LEVEL, 'format': self.LOG_FORMAT}


def load_settings(config_path: Optional[str] = None) -> Settings:
    """加载配置文件

    Args:
        config_path: YAML配置文件路径，为None时只使用环境变量和默认值

    Returns:
        配置对象

    Raises:
        yaml.YAMLError: 配置文件格式错误
    """
    if config_path is None:
        return Settings()

    if not os.path.isfile(config_path):
        logger.warning(f"Config file not found: {config_path}, using default configuration")
        return Settings()

    # YAML文件作为独立的配置来源，优先级低于环境变量
    class FileSettings(Settings):
        model_config = SettingsConfigDict(yaml_file=config_path)

    try:
        loaded = FileSettings()
    except yaml.YAMLError as e:
        logger.error(f"Failed to parse config file: {e}")
        raise
    logger.info(f"Loaded configuration from {config_path}")
    return loaded


# 全局配置实例
settings = Settings()


def get_settings() -> Settings:
    """获取当前全局配置"""
    return settings


def configure(config_path: Optional[str] = None) -> Settings:
    """加载配置并替换全局配置实例"""
    global settings
    settings = load_settings(config_path)
    return settings
