"""Tests for fly table parsing, worker convergence and hijacking"""

import json
import time
from unittest.mock import MagicMock, patch

import pytest

from topgun.atc import ConcourseClient, Container
from topgun.context import ScenarioContext
from topgun.errors import AssertionViolation, ConvergenceTimeout, ExternalProcessFailure, SetupFailure
from topgun.fly import (
    FlyCLI,
    containers_by,
    parse_table,
    wait_for_landing_or_landed_worker,
    wait_for_running_worker,
    wait_for_stalled_worker,
    wait_for_worker_count,
    wait_for_worker_in_state,
    workers_by,
    workers_with_containers,
)
from topgun.session import SessionManager

WORKERS_TABLE = """\
name      containers  platform  tags  team  state
worker-a  3           linux     none  none  running
worker-b  0           linux     none  none  stalled

"""


@pytest.fixture
def ctx(config, cleanup_dirs):
    ctx = ScenarioContext.fresh(config, lane=2, sessions=SessionManager())
    cleanup_dirs.extend(ctx.scratch_dirs)
    yield ctx
    for session in ctx.interactive_sessions:
        ctx.sessions.stop(session, timeout=5)


@pytest.fixture
def fly(ctx):
    return FlyCLI(ctx)


def worker(name, state):
    return {"name": name, "state": state}


class TestParseTable:
    def test_rows_keyed_by_header(self):
        rows = parse_table(WORKERS_TABLE)
        assert rows == [
            {"name": "worker-a", "containers": "3", "platform": "linux", "tags": "none", "team": "none", "state": "running"},
            {"name": "worker-b", "containers": "0", "platform": "linux", "tags": "none", "team": "none", "state": "stalled"},
        ]

    def test_single_spaces_stay_inside_a_column(self):
        rows = parse_table("id  name\n1   build #1\n")
        assert rows == [{"id": "1", "name": "build #1"}]

    def test_column_count_mismatch_is_a_violation(self):
        with pytest.raises(AssertionViolation):
            parse_table("name  state\nworker-a  running  extra\n")

    def test_headers_only(self):
        assert parse_table("name  state\n") == []


class TestFlyCLI:
    def test_requires_configured_binary(self, ctx):
        ctx.config.fly_command = []
        with pytest.raises(SetupFailure):
            FlyCLI(ctx)

    def test_table_uses_lane_target(self, fly, fly_state):
        path = fly_state(workers=[worker("worker-a", "running")])

        assert fly.table("workers")[0]["state"] == "running"

        with open(path) as f:
            calls = json.load(f)["calls"]
        assert calls[-1] == ["--verbose", "-t", "concourse-topgun-2", "--print-table-headers", "workers"]

    def test_unexpected_exit_code(self, fly, fly_state):
        with pytest.raises(ExternalProcessFailure) as exc_info:
            fly.run("bogus")
        assert "unknown command" in exc_info.value.stderr

    def test_hijack_chooses_task_step(self, fly, fly_state, ctx):
        fly_state(workers=[])

        session = fly.hijack_task("-j", "pipeline/job", timeout=10)
        ctx.sessions.wait(session, timeout=10)

        assert "selected 2" in session.out
        assert session in ctx.interactive_sessions

    def test_hijack_failure_is_a_violation(self, fly, fly_state):
        fly_state(workers=[], hijack_exit=2)

        with pytest.raises(AssertionViolation) as exc_info:
            fly.hijack_task("-b", "42", timeout=10)
        assert "no containers matched" in exc_info.value.observed


class TestWorkerConvergence:
    def test_returns_single_worker_in_state(self, fly, fly_state):
        fly_state(workers=[worker("worker-a", "running"), worker("worker-b", "stalled")])
        assert wait_for_stalled_worker(fly, timeout=5) == "worker-b"

    def test_two_workers_in_state_fail_fast(self, fly):
        workers = [worker("worker-a", "running"), worker("worker-b", "running")]
        with patch.object(FlyCLI, "table", return_value=workers) as mock_table:
            started = time.monotonic()
            with pytest.raises(AssertionViolation) as exc_info:
                wait_for_running_worker(fly, timeout=60, interval=1)

        assert time.monotonic() - started < 5
        assert mock_table.call_count == 1
        assert "multiple workers" in str(exc_info.value)

    def test_waits_for_worker_to_reach_state(self, fly):
        snapshots = iter([
            [worker("worker-a", "running")],
            [worker("worker-a", "landing")],
        ])
        with patch.object(FlyCLI, "table", side_effect=lambda *a: next(snapshots)):
            assert wait_for_landing_or_landed_worker(fly, timeout=5, interval=0.01) == "worker-a"

    def test_times_out_with_last_table(self, fly):
        with patch.object(FlyCLI, "table", return_value=[worker("worker-a", "running")]):
            with pytest.raises(ConvergenceTimeout) as exc_info:
                wait_for_worker_in_state(fly, "retiring", timeout=0.1, interval=0.02)
        assert exc_info.value.last_observed == [worker("worker-a", "running")]

    def test_worker_count(self, fly, fly_state):
        fly_state(workers=[worker("worker-a", "running"), worker("worker-b", "running")])
        assert len(wait_for_worker_count(fly, 2, timeout=5)) == 2

    def test_workers_and_containers_by(self, fly, fly_state):
        fly_state(
            workers=[worker("worker-a", "running"), worker("worker-b", "stalled")],
            containers=[{"handle": "h-1", "worker": "worker-a", "type": "task"}],
        )
        assert workers_by(fly, "state", "stalled") == ["worker-b"]
        assert containers_by(fly, "worker", "worker-a") == ["h-1"]

    def test_workers_with_containers(self):
        client = MagicMock(spec=ConcourseClient)
        client.list_containers.return_value = [
            Container(id="1", worker_name="worker-b"),
            Container(id="2", worker_name="worker-a"),
            Container(id="3", worker_name="worker-b"),
        ]
        assert workers_with_containers(client) == ["worker-a", "worker-b"]
