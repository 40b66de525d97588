"""edge-lc: 边缘侧增量学习任务控制器"""

__version__ = "0.1.0"
