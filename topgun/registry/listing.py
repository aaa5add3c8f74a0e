# File: topgun/registry/listing.py
"""
Line grammar for deploy-tool topology listings.

A listing is tabular text where each instance row is followed by the
process (job) rows running on that instance:

    web/7f3a1c  -  running  z1  10.244.0.2
    ~           atc           running  -  -
    worker/0    -  running  z1  10.244.0.3
    ~           worker        running  -  -

Instance rows are ``group/id [-] state [az] address``; process rows are
``<marker> job state - -``. Anything else (headers, blank lines, summaries,
warnings printed by the tool) is not a row and is skipped.
"""

import re
from dataclasses import dataclass
from typing import Iterable, Iterator, Optional, Union

INSTANCE_ROW = re.compile(
    r"^(?P<group>[^/\s]+)/(?P<id>\S+)\s+"
    r"(?:-\s+)?"
    r"(?P<state>\w+)\s+"
    r"(?:(?P<az>\S+)\s+)?"
    r"(?P<address>[0-9]+\.[0-9]+\.[0-9]+\.[0-9]+)\s*$"
)

# The marker column never contains "/", which keeps instance rows out.
PROCESS_ROW = re.compile(r"^[^/\s]+\s+(?P<job>[^\s]+)\s+(?P<state>\w+)\s+-\s+-\s*$")

# An instance that has not been assigned an address yet (e.g. still starting).
UNADDRESSED_ROW = re.compile(r"^(?P<group>[^/\s]+)/(?P<id>\S+)\s+")


@dataclass(frozen=True)
class InstanceRow:
    group: str
    id: str
    state: str
    address: str
    az: Optional[str] = None

    @property
    def name(self) -> str:
        return f"{self.group}/{self.id}"


@dataclass(frozen=True)
class ProcessRow:
    """A job running on the instance described by the preceding InstanceRow."""

    job: str
    state: str


@dataclass(frozen=True)
class UnaddressedRow:
    """An instance row without an address. It owns the process rows below it."""

    group: str
    id: str


ListingRow = Union[InstanceRow, ProcessRow, UnaddressedRow]


def parse_row(line: str) -> Optional[ListingRow]:
    """Parse a single listing line, returning None for anything that isn't a row."""
    stripped = line.strip()
    if not stripped:
        return None

    match = INSTANCE_ROW.match(stripped)
    if match:
        return InstanceRow(
            group=match.group("group"),
            id=match.group("id"),
            state=match.group("state"),
            address=match.group("address"),
            az=match.group("az"),
        )

    match = PROCESS_ROW.match(stripped)
    if match:
        return ProcessRow(job=match.group("job"), state=match.group("state"))

    match = UNADDRESSED_ROW.match(stripped)
    if match:
        return UnaddressedRow(group=match.group("group"), id=match.group("id"))

    return None


def parse_listing(text: Union[str, Iterable[str]]) -> Iterator[ListingRow]:
    """Yield the recognised rows of a listing in order."""
    lines = text.splitlines() if isinstance(text, str) else text
    for line in lines:
        row = parse_row(line)
        if row is not None:
            yield row
