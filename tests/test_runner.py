"""Tests for the polling runner."""

import runner
from runner import RunnerOptions, build_parser, extract_run_due_summary, options_from_args, run_cycle


class FakeService:
    def __init__(self, counts, *, fail=False):
        self.counts = list(counts)
        self.fail = fail
        self.calls = []

    async def run_due(self, *, now=None, max_schedules=None):
        self.calls.append(max_schedules)
        if self.fail:
            raise RuntimeError("database unavailable")
        count = self.counts.pop(0) if self.counts else 0
        results = [{"schedule_id": f"s{i}", "status": "completed"} for i in range(count)]
        return {"now": "2024-01-01T03:00:00+00:00", "count": count, "results": results}


class TestExtractSummary:
    def test_counts_and_failures(self):
        result = {
            "count": 3,
            "results": [
                {"schedule_id": "a", "status": "completed"},
                {"schedule_id": "b", "status": "failed", "error_message": "All delivery methods failed"},
                {"schedule_id": "c", "status": "failed"},
            ],
        }

        count, errors = extract_run_due_summary(result)

        assert count == 3
        assert errors == ["schedule_id=b: All delivery methods failed", "schedule_id=c: Unknown error"]

    def test_unexpected_result(self):
        count, errors = extract_run_due_summary(["not", "a", "dict"])

        assert count == 0
        assert len(errors) == 1

    def test_bad_count(self):
        assert extract_run_due_summary({"count": "many"}) == (0, [])


class TestRunCycle:
    async def test_single_batch_without_drain(self):
        service = FakeService([2, 2])

        executed = await run_cycle(RunnerOptions(max_schedules=2), service=service)

        assert executed == 2
        assert service.calls == [2]

    async def test_drain_until_backlog_empty(self):
        service = FakeService([2, 2, 1])

        executed = await run_cycle(RunnerOptions(max_schedules=2, drain=True), service=service)

        assert executed == 5
        assert service.calls == [2, 2, 2]

    async def test_drain_batch_limit(self):
        service = FakeService([2] * 10)

        executed = await run_cycle(RunnerOptions(max_schedules=2, drain=True, drain_max_batches=3), service=service)

        assert executed == 6
        assert len(service.calls) == 3

    async def test_cycle_failure_is_swallowed(self):
        assert await run_cycle(RunnerOptions(), service=FakeService([], fail=True)) == 0


class TestMainLoop:
    async def test_once_opens_and_closes_database(self, monkeypatch):
        events = []

        async def initialize():
            events.append("init")

        async def close():
            events.append("close")

        async def cycle(options, service=None):
            events.append("cycle")
            return 0

        monkeypatch.setattr(runner, "initialize_database", initialize)
        monkeypatch.setattr(runner, "close_database", close)
        monkeypatch.setattr(runner, "run_cycle", cycle)

        await runner.main_loop(RunnerOptions(once=True))

        assert events == ["init", "cycle", "close"]


def test_parser_options():
    options = options_from_args(build_parser().parse_args(["--interval", "5", "--drain", "--once"]))

    assert options.interval == 5
    assert options.drain is True
    assert options.once is True
    assert options.drain_max_batches == 20


def test_parser_defaults_from_settings():
    options = options_from_args(build_parser().parse_args([]))

    assert options.interval == runner.settings.RUNNER_INTERVAL
    assert options.max_schedules == runner.settings.RUNNER_MAX_SCHEDULES
    assert options.drain is False
