"""样本窗口测试"""
import pytest

from edge_lc.samples import SampleWindow


class TestIngest:
    """新样本划分"""

    def test_split_half(self):
        """4个样本按0.5划分为2个训练样本和一个评估窗口"""
        window = SampleWindow()
        added = window.ingest(["s1", "s2", "s3", "s4"], 0.5)

        assert added == 4
        assert window.train_samples == ["s1", "s2"]
        assert window.eval_windows == [["s3", "s4"]]
        assert window.eval_samples == ["s3", "s4"]
        assert window.numbers_seen == 4

    def test_only_new_samples_are_partitioned(self):
        """已经划分过的样本不会再次划分"""
        window = SampleWindow()
        window.ingest(["s1", "s2"], 0.5)
        added = window.ingest(["s1", "s2", "s3", "s4", "s5", "s6"], 0.5)

        assert added == 4
        assert window.train_samples == ["s1", "s3", "s4"]
        assert window.eval_windows == [["s2"], ["s5", "s6"]]
        assert window.eval_samples == ["s2", "s5", "s6"]
        assert window.numbers_seen == 6

    def test_no_new_samples(self):
        window = SampleWindow()
        window.ingest(["s1", "s2"], 0.5)

        assert window.ingest(["s1", "s2"], 0.5) == 0
        assert window.numbers_seen == 2
        assert len(window.eval_windows) == 1

    def test_all_to_train_creates_no_eval_window(self):
        window = SampleWindow()
        window.ingest(["s1", "s2", "s3"], 1.0)

        assert window.train_samples == ["s1", "s2", "s3"]
        assert window.eval_windows == []

    def test_floor_of_train_share(self):
        window = SampleWindow()
        window.ingest(["s1", "s2", "s3"], 0.5)

        assert window.train_samples == ["s1"]
        assert window.eval_windows == [["s2", "s3"]]

    def test_no_sample_lost_or_duplicated(self):
        """训练样本数加评估窗口样本数始终等于已划分数量"""
        window = SampleWindow(capacity=100)
        samples = []
        for batch, proportion in enumerate([0.5, 0.3, 0.9, 0.0, 0.75, 0.1]):
            samples.extend(f"b{batch}-{i}" for i in range(batch * 3 + 1))
            window.ingest(samples, proportion)

            partitioned = window.train_samples + [s for w in window.eval_windows for s in w]
            assert len(partitioned) == window.numbers_seen
            assert sorted(partitioned) == sorted(samples)


class TestEviction:
    """评估窗口容量"""

    def test_oldest_window_is_evicted(self):
        window = SampleWindow(capacity=5)
        samples = []
        for version in range(7):
            samples.append(f"v{version}")
            window.ingest(samples, 0.0)

        assert len(window.eval_windows) == 5
        assert window.eval_windows == [["v2"], ["v3"], ["v4"], ["v5"], ["v6"]]
        assert window.eval_samples == ["v2", "v3", "v4", "v5", "v6"]

    def test_forward_eval_trims_to_capacity(self):
        window = SampleWindow(capacity=2)
        window.eval_windows = [["a"], ["b"], ["c"]]
        window.forward_eval()

        assert window.eval_windows == [["b"], ["c"]]
        assert window.eval_samples == ["b", "c"]

    def test_invalid_capacity(self):
        with pytest.raises(ValueError):
            SampleWindow(capacity=0)


class TestClearTrain:

    def test_counts_are_kept(self):
        window = SampleWindow()
        window.ingest(["s1", "s2", "s3", "s4"], 0.5)
        window.clear_train()

        assert window.train_samples == []
        assert window.numbers_seen == 4
        assert window.ingest(["s1", "s2", "s3", "s4"], 0.5) == 0
