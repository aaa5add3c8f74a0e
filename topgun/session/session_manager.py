#!/usr/bin/env python3
"""
Session Manager

Owns every external process the harness drives (deploy tool, fly, log
tails, hijacked shells):
- Launch with stdout/stderr streamed into live buffers and the log sink
- One-shot exit notification exposed as a future
- Exit code assertion with whitelisted codes
- Signalling and bounded stop for cleanup

A session keeps running after a wait on it times out. Whoever spawned a
long-lived or interactive session is responsible for stopping it.
"""

import logging
import signal
import subprocess
import threading
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import IO, Dict, Iterable, List, Optional, Sequence, Union

from ..errors import ExternalProcessFailure, SessionTimeout
from ..metrics import METRICS

logger = logging.getLogger(__name__)

DEFAULT_SIGNAL = signal.SIGINT


class Buffer:
    """Thread-safe, append-only text buffer that can be read while it grows."""

    def __init__(self):
        self._lock = threading.Lock()
        self._chunks: List[str] = []

    def write(self, data: str):
        with self._lock:
            self._chunks.append(data)

    def contents(self) -> str:
        with self._lock:
            return "".join(self._chunks)

    def lines(self) -> List[str]:
        return self.contents().splitlines()

    def __contains__(self, text: str) -> bool:
        return text in self.contents()


class Session:
    """A spawned process observed through its buffers and exit future."""

    def __init__(
        self,
        command: Sequence[str],
        process: subprocess.Popen,
        sink: logging.Logger,
    ):
        self.command = list(command)
        self.process = process
        self.out = Buffer()
        self.err = Buffer()
        self.exited: Future = Future()
        self._sink = sink

        self._readers = [
            threading.Thread(
                target=self._pump, args=(process.stdout, self.out, "out"), daemon=True
            ),
            threading.Thread(
                target=self._pump, args=(process.stderr, self.err, "err"), daemon=True
            ),
        ]
        for reader in self._readers:
            reader.start()

        self._watcher = threading.Thread(target=self._watch, daemon=True)
        self._watcher.start()

    @property
    def pid(self) -> int:
        return self.process.pid

    @property
    def exit_code(self) -> Optional[int]:
        """The exit code, or None while the process is still running."""
        if not self.exited.done():
            return None
        return self.exited.result()

    def done(self) -> bool:
        return self.exited.done()

    def wait(self, timeout: Optional[float] = None) -> "Session":
        """Block until the process has exited and all its output is captured."""
        try:
            self.exited.result(timeout=timeout)
        except FutureTimeoutError:
            raise SessionTimeout(self.command, timeout, session=self)
        return self

    def signal(self, sig: int = DEFAULT_SIGNAL):
        """Request termination without waiting for it."""
        if self.done():
            return
        try:
            self.process.send_signal(sig)
        except ProcessLookupError:
            pass

    def interrupt(self):
        self.signal(signal.SIGINT)

    def kill(self):
        self.signal(signal.SIGKILL)

    def write_stdin(self, text: str):
        """Send text to an interactive session."""
        if self.process.stdin is None:
            raise ValueError(f"session {self.command[0]!r} was not spawned interactively")
        self.process.stdin.write(text)
        self.process.stdin.flush()

    def output(self) -> str:
        return self.out.contents() + self.err.contents()

    def _pump(self, stream: IO[str], buffer: Buffer, name: str):
        for line in iter(stream.readline, ""):
            buffer.write(line)
            self._sink.debug(f"[{self.command[0]}:{self.process.pid}:{name}] {line.rstrip()}")
        stream.close()

    def _watch(self):
        code = self.process.wait()
        for reader in self._readers:
            reader.join()
        if self.process.stdin is not None:
            try:
                self.process.stdin.close()
            except OSError:
                pass
        METRICS["live_sessions"].dec()
        self._sink.debug(f"[{self.command[0]}:{self.process.pid}] exited {code}")
        self.exited.set_result(code)

    def __repr__(self):
        return f"<Session {' '.join(self.command)!r} pid={self.pid} exit_code={self.exit_code}>"


class SessionManager:
    """Spawns sessions and enforces exit code expectations on them."""

    def __init__(self, sink: Optional[logging.Logger] = None, env: Optional[Dict[str, str]] = None):
        self.sink = sink or logging.getLogger("topgun.session")
        self.env = env

    def spawn(
        self,
        command: Union[str, Sequence[str]],
        args: Iterable[str] = (),
        interactive: bool = False,
        env: Optional[Dict[str, str]] = None,
    ) -> Session:
        argv = [command] if isinstance(command, str) else list(command)
        argv.extend(args)

        logger.info(f"running: {' '.join(argv)}")
        process = subprocess.Popen(
            argv,
            stdin=subprocess.PIPE if interactive else subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            errors="replace",
            bufsize=1,
            env=env if env is not None else self.env,
        )
        METRICS["live_sessions"].inc()
        return Session(argv, process, self.sink)

    def wait(
        self,
        session: Session,
        expected: Union[int, Sequence[int]] = 0,
        timeout: Optional[float] = None,
    ) -> Session:
        """Wait for exit and require the exit code to be one of expected."""
        allowed = [expected] if isinstance(expected, int) else list(expected)
        session.wait(timeout)

        if session.exit_code not in allowed:
            raise ExternalProcessFailure(
                session.command,
                session.exit_code,
                allowed,
                stdout=session.out.contents(),
                stderr=session.err.contents(),
            )
        return session

    def run(
        self,
        command: Union[str, Sequence[str]],
        args: Iterable[str] = (),
        expected: Union[int, Sequence[int]] = 0,
        timeout: Optional[float] = None,
        env: Optional[Dict[str, str]] = None,
    ) -> Session:
        return self.wait(self.spawn(command, args, env=env), expected=expected, timeout=timeout)

    def signal(self, session: Session, sig: int = DEFAULT_SIGNAL):
        session.signal(sig)

    def stop(self, session: Session, timeout: float = 30.0, sig: int = DEFAULT_SIGNAL) -> Optional[int]:
        """Signal a session and wait for it to exit, killing it if it won't."""
        session.signal(sig)
        try:
            session.wait(timeout)
        except SessionTimeout:
            logger.warning(f"{session!r} ignored signal {sig}, killing")
            session.kill()
            session.wait(timeout)
        return session.exit_code
