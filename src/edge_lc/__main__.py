"""主入口模块

该模块是edge-lc的入口点，负责：
1. 加载配置文件
2. 初始化日志系统
3. 初始化Kubernetes客户端和数据库
4. 启动任务管理器、Worker上报接口和operator
"""

import os
import sys
import logging

import kopf
from kubernetes import config as k8s_config

from . import config


def init_kubernetes():
    """初始化Kubernetes客户端

    先尝试集群内配置，再尝试kubeconfig

    Returns:
        bool: 初始化是否成功
    """
    try:
        k8s_config.load_incluster_config()
        logging.info("Using in-cluster Kubernetes configuration")
        return True
    except Exception:
        try:
            k8s_config.load_kube_config()
            logging.info("Using kubeconfig for Kubernetes configuration")
            return True
        except Exception as e:
            logging.error(f"Failed to initialize Kubernetes client: {e}")
            return False


def main(config_path=None):
    """主入口函数"""
    settings = config.configure(config_path or os.environ.get('EDGE_LC_CONFIG'))

    logging_config = settings.get_logging_config()
    logging.basicConfig(
        level=logging_config['level'],
        format=logging_config['format']
    )

    if not init_kubernetes():
        sys.exit(1)

    # 配置加载完成后再导入，处理函数注册时使用最新的API配置
    from .api import create_app, serve_in_background
    from .cache import ResourceCache
    from .db import init_db
    from .manager import JobManager
    from .relay import KubernetesStatusRelay
    from .operator import handlers  # noqa: F401

    init_db(settings.DATABASE_FILENAME)

    datasets = ResourceCache()
    models = ResourceCache()
    manager = JobManager(KubernetesStatusRelay(settings=settings), datasets, models, settings=settings)
    manager.start()
    serve_in_background(create_app(manager), settings.API_HOST, settings.API_PORT, settings.LOG_LEVEL)

    memo = kopf.Memo(manager=manager, datasets=datasets, models=models)
    try:
        logging.info("Starting edge-lc operator")
        if settings.WATCH_NAMESPACE:
            kopf.run(namespaces=[settings.WATCH_NAMESPACE], memo=memo, standalone=True)
        else:
            kopf.run(clusterwide=True, memo=memo, standalone=True)
    finally:
        manager.stop()


if __name__ == '__main__':
    main()
