"""topgun - deployment orchestration and convergence-polling harness."""

from .config import HarnessConfig
from .context import ScenarioContext, lane_index
from .convergence import NotYet, Satisfied, Violation, consistently, eventually, poll_until
from .errors import (
    AssertionViolation,
    AuthenticationError,
    ConvergenceTimeout,
    ExternalProcessFailure,
    HarnessError,
    SessionTimeout,
    SetupFailure,
    TeardownFailure,
)
from .harness import Harness
from .registry import Instance, InstanceRegistry

__all__ = [
    "AssertionViolation",
    "AuthenticationError",
    "ConvergenceTimeout",
    "ExternalProcessFailure",
    "Harness",
    "HarnessConfig",
    "HarnessError",
    "Instance",
    "InstanceRegistry",
    "NotYet",
    "Satisfied",
    "ScenarioContext",
    "SessionTimeout",
    "SetupFailure",
    "TeardownFailure",
    "Violation",
    "consistently",
    "eventually",
    "lane_index",
    "poll_until",
]
