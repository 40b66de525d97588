"""Worker上报接口"""

import logging
import threading
from typing import Any, Dict, List

import uvicorn
from fastapi import FastAPI, HTTPException, status

from . import __version__
from .manager import JobManager
from .models import WorkerReport

logger = logging.getLogger(__name__)


def create_app(manager: JobManager) -> FastAPI:
    """创建FastAPI应用"""
    app = FastAPI(
        title="edge-lc",
        description="Worker report ingress of the incremental learning local controller",
        version=__version__
    )

    @app.post("/workers/{name}/info", status_code=status.HTTP_202_ACCEPTED)
    def report_worker_info(name: str, report: WorkerReport) -> Dict[str, str]:
        """接收Worker上报"""
        if not report.name:
            report = report.model_copy(update={'name': name})
        manager.add_worker_report(report)
        return {"status": "accepted"}

    @app.get("/jobs")
    def list_jobs() -> List[Dict[str, Any]]:
        """获取任务运行状态列表"""
        return manager.describe()

    @app.get("/jobs/{namespace}/{name}")
    def get_job(namespace: str, name: str) -> Dict[str, Any]:
        """获取任务运行状态"""
        for job in manager.describe():
            if job['namespace'] == namespace and job['name'] == name:
                return job
        raise HTTPException(status_code=404, detail=f"Job {namespace}/{name} not found")

    return app


def serve_in_background(app: FastAPI, host: str, port: int, log_level: str = "info") -> threading.Thread:
    """在后台线程中运行接口服务"""
    server = uvicorn.Server(uvicorn.Config(app, host=host, port=port, log_level=log_level.lower()))
    thread = threading.Thread(target=server.run, name="worker-api", daemon=True)
    thread.start()
    logger.info(f"Worker report api is listening on {host}:{port}")
    return thread
