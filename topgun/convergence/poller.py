#!/usr/bin/env python3
"""
Convergence Poller

Waits for state the harness does not control (worker registration,
container lifecycle, build progress) to converge.

A predicate reports one of three outcomes on every evaluation:
- NotYet: keep polling
- Satisfied: stop and return the value
- Violation: stop and fail right away, without waiting out the timeout

Retrying until timeout alone would report a contradicted invariant (say,
two workers both "running" when only one may be) as mere slowness.
"""

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Generic, Optional, TypeVar, Union

from ..errors import AssertionViolation, ConvergenceTimeout
from ..metrics import METRICS

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_TIMEOUT = 300.0
DEFAULT_INTERVAL = 1.0
DEFAULT_CONSISTENTLY_DURATION = 60.0


@dataclass(frozen=True)
class NotYet:
    observed: Any = None


@dataclass(frozen=True)
class Satisfied(Generic[T]):
    value: T


@dataclass(frozen=True)
class Violation:
    reason: str
    observed: Any = None


Outcome = Union[NotYet, Satisfied, Violation]


def poll_until(
    predicate: Callable[[], Outcome],
    timeout: Optional[float] = None,
    interval: Optional[float] = None,
    description: str = "",
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], None] = time.sleep,
) -> Any:
    """
    Evaluate predicate immediately and then every interval seconds.

    Returns the value of the first Satisfied outcome. Raises AssertionViolation
    on the first Violation and ConvergenceTimeout, carrying the last observed
    state, once timeout elapses.
    """
    timeout = DEFAULT_TIMEOUT if timeout is None else timeout
    interval = DEFAULT_INTERVAL if interval is None else interval

    started = clock()
    deadline = started + timeout
    last_observed = None
    attempts = 0

    while True:
        attempts += 1
        outcome = predicate()

        if isinstance(outcome, Satisfied):
            METRICS["poll_duration"].labels(outcome="satisfied").observe(clock() - started)
            logger.debug(f"{description or 'condition'} satisfied after {attempts} attempts")
            return outcome.value

        if isinstance(outcome, Violation):
            METRICS["poll_duration"].labels(outcome="violation").observe(clock() - started)
            raise AssertionViolation(outcome.reason, observed=outcome.observed)

        if not isinstance(outcome, NotYet):
            raise TypeError(
                f"convergence predicate returned {outcome!r}, expected NotYet, Satisfied or Violation"
            )

        last_observed = outcome.observed
        remaining = deadline - clock()
        if remaining <= 0:
            METRICS["poll_duration"].labels(outcome="timeout").observe(clock() - started)
            raise ConvergenceTimeout(description, timeout, last_observed=last_observed)

        sleep(min(interval, remaining))


def eventually(
    fn: Callable[[], T],
    condition: Callable[[T], bool],
    timeout: Optional[float] = None,
    interval: Optional[float] = None,
    description: str = "",
    **kwargs,
) -> T:
    """Poll a plain function until condition holds for its result."""

    def predicate() -> Outcome:
        value = fn()
        if condition(value):
            return Satisfied(value)
        return NotYet(observed=value)

    return poll_until(predicate, timeout=timeout, interval=interval, description=description, **kwargs)


def consistently(
    fn: Callable[[], T],
    condition: Callable[[T], bool],
    duration: Optional[float] = None,
    interval: Optional[float] = None,
    description: str = "",
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Require condition to hold on every evaluation for the whole duration."""
    duration = DEFAULT_CONSISTENTLY_DURATION if duration is None else duration
    interval = DEFAULT_INTERVAL if interval is None else interval

    deadline = clock() + duration
    while True:
        value = fn()
        if not condition(value):
            raise AssertionViolation(
                f"{description or 'condition'} stopped holding", observed=value
            )

        remaining = deadline - clock()
        if remaining <= 0:
            return value
        sleep(min(interval, remaining))
