"""命令行测试"""
import pytest
from click.testing import CliRunner

from edge_lc import config
from edge_lc.cli import cli
from edge_lc.db import save_resource

TYPE_META = {'apiVersion': 'neptune.io/v1alpha1', 'kind': 'IncrementalLearningJob'}


@pytest.fixture(autouse=True)
def restore_settings(monkeypatch):
    monkeypatch.setattr(config, "settings", config.settings)
    monkeypatch.delenv("EDGE_LC_CONFIG", raising=False)


@pytest.fixture
def runner():
    return CliRunner()


class TestJobs:

    def test_list(self, runner):
        save_resource("cli-test/incrementallearningjob/job1", TYPE_META,
                      {'name': 'job1', 'namespace': 'cli-test'}, {'outputDir': '/output'})

        result = runner.invoke(cli, ['jobs', '-n', 'cli-test'])

        assert result.exit_code == 0
        assert "cli-test/incrementallearningjob/job1" in result.output
        assert "IncrementalLearningJob" in result.output

    def test_empty(self, runner):
        result = runner.invoke(cli, ['jobs', '--namespace', 'cli-empty'])

        assert result.exit_code == 0
        assert "No jobs found" in result.output


class TestShow:

    def test_show(self, runner):
        save_resource("cli-test/incrementallearningjob/job2", TYPE_META,
                      {'name': 'job2', 'namespace': 'cli-test'}, {'outputDir': '/output'})

        result = runner.invoke(cli, ['show', 'cli-test/incrementallearningjob/job2'])

        assert result.exit_code == 0
        assert "job2" in result.output
        assert '"outputDir": "/output"' in result.output

    def test_not_found(self, runner):
        result = runner.invoke(cli, ['show', 'cli-test/incrementallearningjob/missing'])

        assert result.exit_code != 0
        assert "Job not found" in result.output
