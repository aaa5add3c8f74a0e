# File: topgun/context.py
"""
Per-scenario state.

Everything a scenario knows about "the current deployment" lives on a
ScenarioContext that is built fresh at the start of each scenario and passed
to setup and teardown explicitly. Nothing survives from one scenario to the
next on the same lane.
"""

import logging
import os
import re
import tempfile
from dataclasses import dataclass, field
from typing import List, Mapping, Optional

from .config import HarnessConfig
from .deploy.datastore import DataStore
from .deploy.deployment import Deployment
from .registry import InstanceRegistry
from .session import Session, SessionManager

logger = logging.getLogger(__name__)

XDIST_WORKER = re.compile(r"^gw(\d+)$")


def lane_index(env: Optional[Mapping[str, str]] = None) -> int:
    """1-based lane number of this process (one lane per pytest-xdist worker)."""
    worker = (os.environ if env is None else env).get("PYTEST_XDIST_WORKER", "")
    match = XDIST_WORKER.match(worker)
    if match:
        return int(match.group(1)) + 1
    return 1


@dataclass
class ScenarioContext:
    lane: int
    config: HarnessConfig
    sessions: SessionManager
    registry: InstanceRegistry = field(default_factory=InstanceRegistry)
    deployment: Optional[Deployment] = None
    log_tail: Optional[Session] = None
    datastore: Optional[DataStore] = None
    atc_external_url: str = ""
    atc_username: str = "test"
    atc_password: str = "test"
    interactive_sessions: List[Session] = field(default_factory=list)
    scratch_dirs: List[str] = field(default_factory=list)

    @classmethod
    def fresh(
        cls,
        config: HarnessConfig,
        lane: Optional[int] = None,
        sessions: Optional[SessionManager] = None,
    ) -> "ScenarioContext":
        ctx = cls(
            lane=lane_index() if lane is None else lane,
            config=config,
            sessions=sessions or SessionManager(),
            atc_username=config.atc_username,
            atc_password=config.atc_password,
        )
        ctx.scratch_dir("topgun-tmp")
        logger.info(f"Lane {ctx.lane}: fresh context for deployment {ctx.deployment_name}")
        return ctx

    @property
    def deployment_name(self) -> str:
        return f"{self.config.deployment_prefix}-{self.lane}"

    @property
    def fly_target(self) -> str:
        return self.deployment_name

    @property
    def tmp(self) -> str:
        return self.scratch_dirs[0]

    def scratch_dir(self, prefix: str = "topgun-") -> str:
        """Create a scratch directory that teardown will remove."""
        path = tempfile.mkdtemp(prefix=prefix)
        self.scratch_dirs.append(path)
        return path

    def track(self, session: Session) -> Session:
        """Hand an interactive or long-lived session to teardown."""
        self.interactive_sessions.append(session)
        return session
