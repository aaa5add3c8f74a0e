from .poller import (
    NotYet,
    Outcome,
    Satisfied,
    Violation,
    consistently,
    eventually,
    poll_until,
)

__all__ = [
    "NotYet",
    "Outcome",
    "Satisfied",
    "Violation",
    "consistently",
    "eventually",
    "poll_until",
]
