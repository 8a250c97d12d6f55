"""
Test doubles for tfbench.

Fixture modules:
- fakes: scripted CommandRunner, deterministic clock, recording progress sink
- workspaces: state documents, event lines and configuration files

Usage:
    from fixtures.fakes import FakeClock, FakeRunner

    def test_measure(tmp_path):
        clock = FakeClock()
        runner = FakeRunner(clock)
        runner.on("refresh", durations=[5.0, 1.0])
"""
