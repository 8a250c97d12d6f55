"""Tests for tfbench/bench/eventlog.py - event stream parsing and the event-log strategy."""

import pytest

from fixtures.fakes import RecordingProgress, Response
from fixtures.workspaces import event_line, refresh_pair
from tfbench.bench.eventlog import (
    AddressState,
    EventLogStrategy,
    RefreshEventParser,
    address_type,
    is_data_address,
    parse_timestamp,
)
from tfbench.core.config import BenchmarkConfig
from tfbench.core.exceptions import CapabilityError, MeasurementError
from tfbench.core.logging import get_benchmark_context
from tfbench.terraform.state import ResourceTypeGroup
from tfbench.terraform.version import Capabilities, TerraformVersion

pytestmark = pytest.mark.unit

T0 = "2021-06-03T10:00:00Z"


def capabilities(version="1.0.0"):
    return Capabilities.from_version(TerraformVersion(version) if version else None)


class TestParseTimestamp:
    """Test RFC3339 parsing into nanoseconds."""

    def test_utc(self):
        assert parse_timestamp("1970-01-01T00:00:01Z") == 1_000_000_000

    def test_nanoseconds_are_exact(self):
        a = parse_timestamp("2021-06-03T10:00:00.000000001Z")
        b = parse_timestamp("2021-06-03T10:00:00.000000002Z")
        assert b - a == 1

    def test_short_fraction(self):
        a = parse_timestamp("2021-06-03T10:00:00Z")
        b = parse_timestamp("2021-06-03T10:00:00.5Z")
        assert b - a == 500_000_000

    def test_offsets_name_the_same_instant(self):
        assert parse_timestamp("2021-06-03T12:00:00+02:00") == parse_timestamp("2021-06-03T10:00:00Z")
        assert parse_timestamp("2021-06-03T03:00:00-07:00") == parse_timestamp("2021-06-03T10:00:00Z")

    def test_invalid(self):
        with pytest.raises(ValueError):
            parse_timestamp("yesterday")
        with pytest.raises(ValueError):
            parse_timestamp("2021-06-03T10:00:00")


class TestAddresses:
    """Test address classification."""

    def test_data_addresses(self):
        assert is_data_address("data.aws_caller_identity.me")
        assert is_data_address("module.net.data.aws_ami.ubuntu")
        assert not is_data_address("aws_s3_bucket.data")
        assert not is_data_address("module.data.aws_s3_bucket.b")

    def test_address_type(self):
        assert address_type("random_id.id[3]") == "random_id"
        assert address_type('module.net["a"].module.sub.aws_subnet.private') == "aws_subnet"


class TestRefreshEventParser:
    """Test the per-address state machine."""

    def test_start_then_complete(self):
        parser = RefreshEventParser()
        start, complete = refresh_pair("random_id.id[0]", T0, "2021-06-03T10:00:01.25Z")
        assert parser.feed(start) is None
        assert parser.state_of("random_id.id[0]") is AddressState.STARTED
        assert parser.feed(complete) == "random_id.id[0]"
        assert parser.state_of("random_id.id[0]") is AddressState.COMPLETED

        [sample] = parser.samples(iteration=2)["random_id"]
        assert sample.duration == pytest.approx(1.25)
        assert sample.iteration == 2

    def test_start_without_complete_is_not_a_sample(self):
        parser = RefreshEventParser()
        parser.feed(event_line("refresh_start", "aws_s3_bucket.b", T0))
        assert parser.samples() == {}
        assert parser.state_of("aws_s3_bucket.b") is AddressState.STARTED

    def test_complete_without_start_is_ignored(self):
        parser = RefreshEventParser()
        assert parser.feed(event_line("refresh_complete", "aws_s3_bucket.b", T0)) is None
        assert parser.state_of("aws_s3_bucket.b") is AddressState.AWAITING

    def test_second_start_resets_the_clock(self):
        parser = RefreshEventParser()
        parser.feed(event_line("refresh_start", "aws_s3_bucket.b", T0))
        parser.feed(event_line("refresh_start", "aws_s3_bucket.b", "2021-06-03T10:00:02Z"))
        parser.feed(event_line("refresh_complete", "aws_s3_bucket.b", "2021-06-03T10:00:03Z"))
        [sample] = parser.samples()["aws_s3_bucket"]
        assert sample.duration == pytest.approx(1.0)

    def test_data_sources_are_skipped(self):
        parser = RefreshEventParser()
        for line in refresh_pair("data.aws_caller_identity.me", T0, "2021-06-03T10:00:01Z"):
            assert parser.feed(line) is None
        assert parser.samples() == {}

    def test_garbage_lines_are_skipped(self):
        parser = RefreshEventParser()
        assert parser.feed(b"not json at all\n") is None
        assert parser.feed(b"[1, 2]") is None
        assert parser.feed(b'{"type": "version", "terraform": "1.0.0"}') is None
        assert parser.samples() == {}

    @pytest.mark.parametrize("hook", [
        '"x"',
        "[1]",
        '{"resource": "aws_s3_bucket.b"}',
        '{"resource": [1, 2]}',
        '{"resource": {"addr": 42}}',
        '{"resource": {"addr": ["aws_s3_bucket.b"]}}',
    ])
    def test_malformed_hook_is_skipped(self, hook):
        parser = RefreshEventParser()
        line = f'{{"type": "refresh_start", "@timestamp": "{T0}", "hook": {hook}}}'
        assert parser.feed(line) is None
        assert parser.feed(line.replace("refresh_start", "refresh_complete")) is None
        assert parser.samples() == {}

    def test_non_string_resource_type_falls_back_to_address(self):
        parser = RefreshEventParser()
        for line in refresh_pair("aws_s3_bucket.b", T0, "2021-06-03T10:00:01Z", resource_type=7):
            parser.feed(line)
        assert list(parser.samples()) == ["aws_s3_bucket"]

    def test_bad_timestamp_is_skipped(self):
        parser = RefreshEventParser()
        assert parser.feed(event_line("refresh_start", "aws_s3_bucket.b", "noon")) is None
        assert parser.state_of("aws_s3_bucket.b") is AddressState.AWAITING

    def test_groups_by_type(self):
        parser = RefreshEventParser()
        for line in [
            *refresh_pair("random_id.id[0]", T0, "2021-06-03T10:00:01Z"),
            *refresh_pair("module.net.aws_subnet.a", T0, "2021-06-03T10:00:02Z"),
            *refresh_pair("random_id.id[1]", T0, "2021-06-03T10:00:03Z"),
        ]:
            parser.feed(line)
        samples = parser.samples()
        assert [s.address for s in samples["random_id"]] == ["random_id.id[0]", "random_id.id[1]"]
        assert [s.address for s in samples["aws_subnet"]] == ["module.net.aws_subnet.a"]


def plan_lines():
    return [
        b'{"@level":"info","@message":"Terraform 1.0.0","type":"version"}',
        *refresh_pair("random_id.id[0]", T0, "2021-06-03T10:00:01.5Z"),
        *refresh_pair("random_id.id[1]", T0, "2021-06-03T10:00:00.5Z"),
        *refresh_pair("aws_s3_bucket.b", T0, "2021-06-03T10:00:03Z"),
        *refresh_pair("data.aws_caller_identity.me", T0, "2021-06-03T10:00:09Z"),
        b"",
    ]


def groups():
    return [
        ResourceTypeGroup("random_id", ["random_id.id[0]", "random_id.id[1]"]),
        ResourceTypeGroup("aws_s3_bucket", ["aws_s3_bucket.b"]),
        ResourceTypeGroup("aws_vpc", ["aws_vpc.main"]),
    ]


class TestEventLogStrategy:
    """Test the combined-refresh measurement."""

    def make(self, runner, tmp_path, recorder=None, version="1.0.0", **config):
        config.setdefault("iterations", 2)
        bench = BenchmarkConfig(workspace=tmp_path, **config)
        return EventLogStrategy(runner, bench, capabilities(version), recorder, runner.clock)

    def test_per_type_statistics(self, fake_runner, recorder, tmp_path):
        fake_runner.on("plan", lines=plan_lines(), duration=4.0)
        result = self.make(fake_runner, tmp_path, recorder).run(groups(), b"{}")

        assert result.strategy == "event-log"
        assert result.total_time == pytest.approx(4.0)
        stats = {s.name: s for s in result.resources}
        assert set(stats) == {"random_id", "aws_s3_bucket"}
        assert stats["random_id"].count == 2
        assert stats["random_id"].mean == pytest.approx(1.0)
        assert stats["random_id"].min_address == "random_id.id[1]"
        assert stats["random_id"].max_address == "random_id.id[0]"
        assert stats["aws_s3_bucket"].mean == pytest.approx(3.0)

    def test_unobserved_types_are_skipped(self, fake_runner, tmp_path):
        fake_runner.on("plan", lines=plan_lines())
        result = self.make(fake_runner, tmp_path).run(groups(), b"{}")
        assert list(result.skipped) == ["aws_vpc"]

    def test_plan_arguments(self, fake_runner, tmp_path):
        fake_runner.on("plan", lines=plan_lines())
        self.make(fake_runner, tmp_path, var_file="prod.tfvars").run(groups(), b"{}")

        calls = fake_runner.calls_to("plan")
        assert len(calls) == 2
        assert calls[0].args == (
            "plan", "-refresh-only", "-json", f"-var-file={tmp_path.resolve() / 'prod.tfvars'}",
        )
        assert calls[0].cwd == tmp_path

    def test_progress_per_iteration_and_address(self, fake_runner, recorder, tmp_path):
        fake_runner.on("plan", lines=plan_lines())
        self.make(fake_runner, tmp_path, recorder).run(groups(), b"{}")

        starts = [e for e in recorder.events if e[0] == "start"]
        assert starts == [("start", "Iteration 1", 4), ("start", "Iteration 2", 4)]
        assert recorder.count("advance") == 6

    def test_iteration_mean_is_averaged_over_iterations(self, fake_runner, tmp_path):
        second = [
            *refresh_pair("random_id.id[0]", T0, "2021-06-03T10:00:03Z"),
            *refresh_pair("random_id.id[1]", T0, "2021-06-03T10:00:03Z"),
        ]
        fake_runner.on("plan", responses=[
            Response(lines=plan_lines(), duration=2.0),
            Response(lines=second, duration=6.0),
        ])
        result = self.make(fake_runner, tmp_path).run(groups(), b"{}")

        stats = {s.name: s for s in result.resources}
        assert stats["random_id"].mean == pytest.approx((1.0 + 3.0) / 2)
        assert stats["random_id"].minimum == pytest.approx(0.5)
        assert stats["random_id"].maximum == pytest.approx(3.0)
        # aws_s3_bucket only appeared in the first of two iterations
        assert stats["aws_s3_bucket"].mean == pytest.approx(1.5)
        assert result.total_time == pytest.approx(4.0)

    def test_plan_exit_failure(self, fake_runner, tmp_path):
        fake_runner.on("plan", lines=plan_lines(), wait_returncode=1)
        with pytest.raises(MeasurementError) as exc_info:
            self.make(fake_runner, tmp_path).run(groups(), b"{}")
        assert exc_info.value.operation == "terraform plan -refresh-only -json"
        assert "Error: plan failed" in exc_info.value.output

    def test_plan_start_failure(self, fake_runner, tmp_path):
        fake_runner.on("plan", returncode=1)
        with pytest.raises(MeasurementError):
            self.make(fake_runner, tmp_path).run(groups(), b"{}")

    def test_failing_consumer_kills_the_plan(self, fake_runner, tmp_path):
        class Interrupting(RecordingProgress):
            def advance(self, amount=1):
                raise KeyboardInterrupt

        fake_runner.on("plan", lines=plan_lines())
        with pytest.raises(KeyboardInterrupt):
            self.make(fake_runner, tmp_path, Interrupting()).run(groups(), b"{}")
        plan = ("plan", "-refresh-only", "-json")
        assert fake_runner.killed == [plan]
        assert fake_runner.waited == [plan]
        assert get_benchmark_context() is None

    def test_completed_plan_is_waited_not_killed(self, fake_runner, tmp_path):
        fake_runner.on("plan", lines=plan_lines())
        self.make(fake_runner, tmp_path).run(groups(), b"{}")
        assert len(fake_runner.waited) == 2
        assert fake_runner.killed == []

    def test_too_old_terraform(self, fake_runner, tmp_path):
        strategy = self.make(fake_runner, tmp_path, version="0.15.3")
        with pytest.raises(CapabilityError) as exc_info:
            strategy.run(groups(), b"{}")
        assert exc_info.value.detected_version == "0.15.3"
        assert exc_info.value.required_version == "0.15.4"
        assert "--no-event-log" in str(exc_info.value)
        assert fake_runner.calls_to("plan") == []

    def test_unknown_version_is_allowed(self, fake_runner, tmp_path):
        fake_runner.on("plan", lines=plan_lines())
        result = self.make(fake_runner, tmp_path, version=None).run(groups(), b"{}")
        assert result.resources

    def test_context_is_cleared(self, fake_runner, tmp_path):
        fake_runner.on("plan", lines=plan_lines(), wait_returncode=1)
        with pytest.raises(MeasurementError):
            self.make(fake_runner, tmp_path).run(groups(), b"{}")
        assert get_benchmark_context() is None
