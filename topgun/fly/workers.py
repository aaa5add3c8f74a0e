# File: topgun/fly/workers.py
"""Convergence helpers over the workers, containers and volumes fly reports."""

from typing import List, Optional

from ..atc import ConcourseClient
from ..convergence import NotYet, Satisfied, Violation, eventually, poll_until
from .fly_cli import FlyCLI


def _timing(fly: FlyCLI, timeout: Optional[float], interval: Optional[float]):
    config = fly.ctx.config
    return (
        config.poll_timeout if timeout is None else timeout,
        config.poll_interval if interval is None else interval,
    )


def wait_for_worker_in_state(
    fly: FlyCLI,
    *desired_states: str,
    timeout: Optional[float] = None,
    interval: Optional[float] = None,
) -> str:
    """
    Wait until exactly one worker is in one of desired_states and return its name.

    Two workers in those states at once is a violation and fails immediately.
    """
    timeout, interval = _timing(fly, timeout, interval)

    def one_worker_in_state():
        workers = fly.table("workers")
        matching = [w.get("name", "") for w in workers if w.get("state") in desired_states]

        if len(matching) > 1:
            return Violation(
                f"multiple workers in states: {', '.join(desired_states)}",
                observed=workers,
            )
        if matching:
            return Satisfied(matching[0])
        return NotYet(observed=workers)

    return poll_until(
        one_worker_in_state,
        timeout=timeout,
        interval=interval,
        description=f"a worker in state {' or '.join(desired_states)}",
    )


def wait_for_running_worker(fly: FlyCLI, **kwargs) -> str:
    return wait_for_worker_in_state(fly, "running", **kwargs)


def wait_for_stalled_worker(fly: FlyCLI, **kwargs) -> str:
    return wait_for_worker_in_state(fly, "stalled", **kwargs)


def wait_for_landing_or_landed_worker(fly: FlyCLI, **kwargs) -> str:
    return wait_for_worker_in_state(fly, "landing", "landed", **kwargs)


def wait_for_workers_to_be_running(
    fly: FlyCLI, timeout: Optional[float] = None, interval: Optional[float] = None
) -> List[dict]:
    timeout, interval = _timing(fly, timeout, interval)
    return eventually(
        lambda: fly.table("workers"),
        lambda workers: all(w.get("state") == "running" for w in workers),
        timeout=timeout,
        interval=interval,
        description="all workers to be running",
    )


def wait_for_worker_count(
    fly: FlyCLI, count: int, timeout: Optional[float] = None, interval: Optional[float] = None
) -> List[dict]:
    timeout, interval = _timing(fly, timeout, interval)
    return eventually(
        lambda: fly.table("workers"),
        lambda workers: len(workers) == count,
        timeout=timeout,
        interval=interval,
        description=f"{count} registered workers",
    )


def workers_by(fly: FlyCLI, condition: str, value: str) -> List[str]:
    return [w["name"] for w in fly.table("workers") if w.get(condition) == value]


def containers_by(fly: FlyCLI, condition: str, value: str) -> List[str]:
    return [c["handle"] for c in fly.table("containers") if c.get(condition) == value]


def volumes_by_resource_type(fly: FlyCLI, name: str) -> List[str]:
    return [
        v["handle"]
        for v in fly.table("volumes", "-d")
        if v.get("type") == "resource" and v.get("identifier", "").startswith(f"name:{name}")
    ]


def workers_with_containers(client: ConcourseClient, team: str = "main") -> List[str]:
    return sorted({c.worker_name for c in client.list_containers(team)})
