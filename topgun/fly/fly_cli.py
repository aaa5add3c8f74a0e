#!/usr/bin/env python3
"""
Fly CLI

Wraps the deployed system's command-line client:
- ``fly --verbose -t <target> <subcommand> ...`` for one-shot commands
- ``fly -t <target> ...`` with stdin attached for interactive commands
- table output parsing (``--print-table-headers``)
- hijacking into the task step of a build

Every invocation is a Session, so stdout, stderr and exit code are always
captured. Interactive sessions are tracked on the scenario context so
teardown stops them.
"""

import logging
import re
from typing import TYPE_CHECKING, Dict, List, Optional

from ..convergence import NotYet, Satisfied, Violation, poll_until
from ..errors import AssertionViolation, SetupFailure
from ..session import Session

if TYPE_CHECKING:
    from ..context import ScenarioContext

logger = logging.getLogger(__name__)

COLUMN_SEPARATOR = re.compile(r"\s{2,}")
TASK_CHOICE = re.compile(r"([0-9]+): .+ type: task")


def split_columns(row: str) -> List[str]:
    return COLUMN_SEPARATOR.split(row.strip())


def parse_table(output: str) -> List[Dict[str, str]]:
    """Turn header-prefixed fly table output into one dict per row."""
    rows = output.split("\n")
    headers = split_columns(rows[0]) if rows else []

    result = []
    for row in rows[1:]:
        if row == "":
            continue

        columns = split_columns(row)
        if len(columns) != len(headers):
            raise AssertionViolation(
                f"table row has {len(columns)} columns, headers have {len(headers)}",
                observed={"headers": headers, "row": row},
            )

        result.append({
            header: column
            for header, column in zip(headers, columns)
            if header and column
        })

    return result


class FlyCLI:
    def __init__(self, ctx: "ScenarioContext"):
        if not ctx.config.fly_command:
            raise SetupFailure("no fly binary configured (set FLY_BIN)")
        self.ctx = ctx
        self.command = list(ctx.config.fly_command)

    @property
    def target(self) -> str:
        return self.ctx.fly_target

    def spawn(self, *argv: str) -> Session:
        return self.ctx.sessions.spawn(self.command, ["--verbose", "-t", self.target, *argv])

    def run(self, *argv: str, expected=0) -> Session:
        return self.ctx.sessions.wait(self.spawn(*argv), expected=expected)

    def spawn_interactive(self, *argv: str) -> Session:
        session = self.ctx.sessions.spawn(
            self.command, ["-t", self.target, *argv], interactive=True
        )
        return self.ctx.track(session)

    def login(self, url: str, *argv: str) -> Session:
        return self.spawn(
            "login", "-u", self.ctx.atc_username, "-p", self.ctx.atc_password, "-c", url, *argv
        )

    def table(self, *argv: str) -> List[Dict[str, str]]:
        session = self.run("--print-table-headers", *argv)
        return parse_table(session.out.contents())

    def hijack_task(self, *argv: str, timeout: Optional[float] = None) -> Session:
        """Hijack a build, answering the step menu with its task step."""
        session = self.spawn_interactive("hijack", *argv)

        def choose_task():
            output = session.out.contents()
            match = TASK_CHOICE.search(output)
            if match:
                session.write_stdin(match.group(1) + "\n")
                return Satisfied(session)

            if session.done():
                if session.exit_code == 0:
                    return Satisfied(session)
                return Violation(
                    f"hijack exited {session.exit_code} before offering a task step",
                    observed=session.output(),
                )

            return NotYet(observed=output[-500:])

        return poll_until(
            choose_task,
            timeout=timeout if timeout is not None else self.ctx.config.poll_timeout,
            interval=self.ctx.config.poll_interval,
            description="hijack to offer a task step",
        )
