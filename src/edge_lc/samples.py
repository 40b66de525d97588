"""样本窗口

将不断增长的数据集样本划分为训练样本和按版本保存的评估样本窗口，
只处理新到达的样本。调用方需持有所属任务的锁。
"""

from typing import List, Sequence

EVAL_SAMPLES_CAPACITY = 5


class SampleWindow:
    """样本窗口"""

    def __init__(self, capacity: int = EVAL_SAMPLES_CAPACITY):
        if capacity < 1:
            raise ValueError("capacity must be positive")
        self.capacity = capacity
        self.numbers_seen = 0
        self.train_samples: List[str] = []
        self.eval_windows: List[List[str]] = []
        self.eval_samples: List[str] = []

    def ingest(self, samples: Sequence[str], proportion_for_train: float) -> int:
        """划分新到达的样本

        Args:
            samples: 数据集当前全部样本
            proportion_for_train: 新样本中划入训练的比例

        Returns:
            新划分的样本数量，没有新样本时为0
        """
        total = len(samples)
        if total <= self.numbers_seen:
            return 0

        new_samples = list(samples[self.numbers_seen:])
        train_num = int(proportion_for_train * len(new_samples))

        self.train_samples.extend(new_samples[:train_num])
        eval_batch = new_samples[train_num:]
        if eval_batch:
            self.eval_windows.append(eval_batch)
            self._evict()

        self.numbers_seen = total
        self.flatten_eval()
        return len(new_samples)

    def flatten_eval(self) -> List[str]:
        """由保留的评估窗口重新计算评估样本"""
        self.eval_samples = [sample for window in self.eval_windows for sample in window]
        return self.eval_samples

    def clear_train(self) -> None:
        """清空已被训练消费的样本，计数保留"""
        self.train_samples = []

    def forward_eval(self) -> None:
        """离开评估阶段时淘汰超出容量的评估窗口"""
        if self._evict():
            self.flatten_eval()

    def _evict(self) -> bool:
        evicted = False
        while len(self.eval_windows) > self.capacity:
            self.eval_windows.pop(0)
            evicted = True
        return evicted
