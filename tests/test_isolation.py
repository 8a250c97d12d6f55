"""Tests for tfbench/bench/isolation.py - per-type refresh in temporary directories."""

import json

import pytest

from fixtures.fakes import Response
from fixtures.workspaces import MAIN_TF, bench_state
from tfbench.bench.isolation import IsolationStrategy
from tfbench.bench.stats import rank_resources
from tfbench.core.config import BenchmarkConfig
from tfbench.core.exceptions import MeasurementError
from tfbench.terraform.state import group_resources
from tfbench.terraform.version import Capabilities, TerraformVersion

pytestmark = pytest.mark.unit


@pytest.fixture
def workspace(tmp_path):
    ws = tmp_path / "ws"
    ws.mkdir()
    (ws / "main.tf").write_text(MAIN_TF)
    (ws / "prod.tfvars").write_text('region = "us-east-1"\n')
    (ws / "extra.tfvars.json").write_text('{"region": "us-east-1"}\n')
    return ws


class Prepared:
    """Records what each temporary directory held at `terraform init`."""

    def __init__(self):
        self.directories = {}

    def __call__(self, args, cwd, input):
        state = json.loads((cwd / "terraform.tfstate").read_text())
        resource_type = state["resources"][0]["type"]
        self.directories[resource_type] = {
            "path": cwd,
            "main.tf": (cwd / "main.tf").read_text(),
            "state": state,
            "files": sorted(p.name for p in cwd.iterdir()),
        }


def make(runner, workspace, recorder=None, version="1.0.0", **config):
    config.setdefault("iterations", 1)
    bench = BenchmarkConfig(workspace=workspace, **config)
    capabilities = Capabilities.from_version(TerraformVersion(version))
    return IsolationStrategy(runner, bench, capabilities, recorder, runner.clock)


def groups():
    return group_resources(json.loads(bench_state()))


class TestMeasureRefresh:
    """Test warm-up and averaging."""

    def test_warm_up_is_discarded(self, fake_runner, workspace):
        fake_runner.on("refresh", durations=[9.0, 2.0])
        strategy = make(fake_runner, workspace)
        assert strategy.measure_refresh(workspace, 10) == pytest.approx(2.0)
        assert len(fake_runner.calls_to("refresh")) == 2

    def test_mean_of_iterations(self, fake_runner, workspace):
        fake_runner.on("refresh", durations=[9.0, 2.0, 3.0, 4.0])
        strategy = make(fake_runner, workspace, iterations=3)
        assert strategy.measure_refresh(workspace, 10) == pytest.approx(3.0)

    def test_warm_up_failure_is_ignored(self, fake_runner, workspace):
        fake_runner.on("refresh", responses=[Response(returncode=1), Response(duration=2.0)])
        strategy = make(fake_runner, workspace)
        assert strategy.measure_refresh(workspace, 10) == pytest.approx(2.0)

    def test_timed_failure_raises(self, fake_runner, workspace):
        fake_runner.on("refresh", responses=[
            Response(duration=1.0),
            Response(returncode=1, output=b"Error: Invalid provider configuration"),
        ])
        strategy = make(fake_runner, workspace)
        with pytest.raises(MeasurementError) as exc_info:
            strategy.measure_refresh(workspace, 10)
        assert exc_info.value.operation == "terraform refresh"
        assert "Invalid provider configuration" in exc_info.value.output

    def test_refresh_arguments(self, fake_runner, workspace):
        strategy = make(fake_runner, workspace, var_file="prod.tfvars")
        strategy.measure_refresh(workspace, 4)
        [warm_up, timed] = fake_runner.calls_to("refresh")
        assert timed.args == ("refresh", "-parallelism=4", f"-var-file={workspace.resolve() / 'prod.tfvars'}")
        assert timed.cwd == workspace


class TestIsolationStrategy:
    """Test the whole-workspace and per-type measurements."""

    def script(self, runner, prepared):
        runner.on("console", output=b'"us-east-1"\n')
        runner.on("init", callback=prepared)
        # whole workspace, random_id, aws_s3_bucket: warm-up then one timed refresh each
        runner.on("refresh", durations=[9.0, 2.0, 5.0, 1.0, 5.0, 3.0])

    def test_end_to_end(self, fake_runner, recorder, workspace):
        prepared = Prepared()
        self.script(fake_runner, prepared)
        result = make(fake_runner, workspace, recorder).run(groups(), bench_state())

        assert result.strategy == "isolation"
        assert result.total_time == pytest.approx(2.0)
        assert result.skipped == {}
        stats = {s.name: s for s in result.resources}
        assert stats["random_id"].count == 10
        assert stats["random_id"].mean == pytest.approx(1.0)
        assert stats["aws_s3_bucket"].count == 1
        assert stats["aws_s3_bucket"].mean == pytest.approx(3.0)
        # 10 * 1.0 outweighs 1 * 3.0
        assert [s.name for s in rank_resources(result.resources)] == ["random_id", "aws_s3_bucket"]

    def test_reduced_configuration_and_state(self, fake_runner, workspace):
        prepared = Prepared()
        self.script(fake_runner, prepared)
        make(fake_runner, workspace).run(groups(), bench_state())

        bucket = prepared.directories["aws_s3_bucket"]
        assert 'provider "aws"' in bucket["main.tf"]
        assert '"us-east-1"' in bucket["main.tf"]
        assert "var.region" not in bucket["main.tf"]
        assert "azurerm" not in bucket["main.tf"]
        assert "backend" not in bucket["main.tf"]
        assert "resource" not in bucket["main.tf"]
        assert [r["type"] for r in bucket["state"]["resources"]] == ["aws_s3_bucket"]
        assert bucket["state"]["lineage"] == "3f0c6f2e-bench"

        random_id = prepared.directories["random_id"]
        assert "provider" not in random_id["main.tf"].replace("required_providers", "")
        assert len(random_id["state"]["resources"][0]["instances"]) == 10

    def test_var_files_are_copied(self, fake_runner, workspace):
        prepared = Prepared()
        self.script(fake_runner, prepared)
        make(fake_runner, workspace).run(groups(), bench_state())
        assert prepared.directories["random_id"]["files"] == [
            "extra.tfvars.json", "main.tf", "prod.tfvars", "terraform.tfstate",
        ]

    def test_temporary_directories_are_removed(self, fake_runner, workspace):
        prepared = Prepared()
        self.script(fake_runner, prepared)
        make(fake_runner, workspace).run(groups(), bench_state())
        assert prepared.directories
        for entry in prepared.directories.values():
            assert not entry["path"].exists()

    def test_parallelism_is_capped_by_count(self, fake_runner, workspace):
        prepared = Prepared()
        self.script(fake_runner, prepared)
        make(fake_runner, workspace, parallelism=5).run(groups(), bench_state())

        by_directory = {}
        for call in fake_runner.calls_to("refresh"):
            by_directory.setdefault(call.cwd, set()).add(call.args[1])
        assert by_directory[workspace] == {"-parallelism=5"}
        assert by_directory[prepared.directories["random_id"]["path"]] == {"-parallelism=5"}
        assert by_directory[prepared.directories["aws_s3_bucket"]["path"]] == {"-parallelism=1"}

    def test_progress(self, fake_runner, recorder, workspace):
        prepared = Prepared()
        self.script(fake_runner, prepared)
        make(fake_runner, workspace, recorder).run(groups(), bench_state())

        starts = [e[1] for e in recorder.events if e[0] == "start"]
        assert starts == ["All resources", "random_id", "aws_s3_bucket"]
        assert recorder.count("advance") == 3

    def test_rewrite_failure_skips_the_type(self, fake_runner, workspace):
        prepared = Prepared()
        self.script(fake_runner, prepared)
        fake_runner.on("console", returncode=1, output=b"Error: Reference to undeclared input variable")
        result = make(fake_runner, workspace).run(groups(), bench_state())

        assert [s.name for s in result.resources] == ["random_id"]
        assert list(result.skipped) == ["aws_s3_bucket"]
        assert "aws_s3_bucket" in result.skipped["aws_s3_bucket"]

    def test_init_failure_skips_the_type(self, fake_runner, workspace):
        fake_runner.on("console", output=b'"us-east-1"\n')
        fake_runner.on("init", returncode=1, output=b"Error: Failed to query available provider packages")
        result = make(fake_runner, workspace).run(groups(), bench_state())

        assert result.resources == []
        assert set(result.skipped) == {"random_id", "aws_s3_bucket"}
        assert "terraform init" in result.skipped["random_id"]

    def test_whole_workspace_failure_aborts(self, fake_runner, workspace):
        fake_runner.on("refresh", responses=[Response(duration=1.0), Response(returncode=1)])
        with pytest.raises(MeasurementError):
            make(fake_runner, workspace).run(groups(), bench_state())
        assert fake_runner.calls_to("init") == []

    def test_old_terraform_copies_provider_verbatim(self, fake_runner, workspace):
        prepared = Prepared()
        self.script(fake_runner, prepared)
        make(fake_runner, workspace, version="0.14.11").run(groups(), bench_state())

        assert "var.region" in prepared.directories["aws_s3_bucket"]["main.tf"]
        assert fake_runner.calls_to("console") == []
