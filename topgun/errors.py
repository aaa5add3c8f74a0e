# File: topgun/errors.py
"""
Harness error taxonomy.

Every error aborts the current scenario. Only a convergence predicate's
"not yet" outcome is ever retried, and that never surfaces as an exception.
"""

from typing import Any, List, Optional, Sequence


class HarnessError(Exception):
    """Base class for every error raised by the harness."""


class SetupFailure(HarnessError):
    """The deploy tool failed or the deployed system never became reachable."""

    def __init__(self, message: str, output: str = ""):
        super().__init__(message)
        self.output = output

    def __str__(self):
        message = super().__str__()
        if self.output:
            return f"{message}\n--- captured output ---\n{self.output}"
        return message


class AssertionViolation(HarnessError, AssertionError):
    """Observed state contradicts an invariant that must hold."""

    def __init__(self, message: str, observed: Any = None):
        super().__init__(message)
        self.observed = observed


class ConvergenceTimeout(HarnessError):
    """A convergence predicate was never satisfied within its window."""

    def __init__(self, description: str, timeout: float, last_observed: Any = None):
        super().__init__(
            f"timed out after {timeout}s waiting for {description or 'condition'}; "
            f"last observed: {last_observed!r}"
        )
        self.description = description
        self.timeout = timeout
        self.last_observed = last_observed


class ExternalProcessFailure(HarnessError):
    """A driven subprocess exited with a code the call site did not allow."""

    def __init__(
        self,
        command: Sequence[str],
        exit_code: Optional[int],
        expected: Sequence[int],
        stdout: str = "",
        stderr: str = "",
    ):
        super().__init__(
            f"command {' '.join(command)!r} exited {exit_code}, expected {list(expected)}"
        )
        self.command = list(command)
        self.exit_code = exit_code
        self.expected = list(expected)
        self.stdout = stdout
        self.stderr = stderr

    @property
    def output(self) -> str:
        return self.stdout + self.stderr

    def __str__(self):
        message = super().__str__()
        return f"{message}\n--- stdout ---\n{self.stdout}--- stderr ---\n{self.stderr}"


class SessionTimeout(HarnessError):
    """Waiting on a session exceeded its timeout. The process keeps running.

    ``session`` is the still-running Session, so the caller can stop it.
    """

    def __init__(self, command: Sequence[str], timeout: float, session: Any = None):
        super().__init__(f"command {' '.join(command)!r} still running after {timeout}s")
        self.command = list(command)
        self.timeout = timeout
        self.session = session


class AuthenticationError(HarnessError):
    """A token exchange against the deployed system failed."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.cause = cause


class TeardownFailure(HarnessError):
    """One or more isolated teardown steps failed."""

    def __init__(self, failures: List[str]):
        super().__init__("teardown failed:\n  " + "\n  ".join(failures))
        self.failures = failures
