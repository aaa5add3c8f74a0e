#!/usr/bin/env python3
"""
Harness

Wires one lane together: context, deploy tool, auth client, fly, deployment
controller and teardown coordinator. Scenarios talk to this object; the
pytest plugin builds one per test and always tears it down.
"""

import logging
import shutil
import time
from typing import Any, Callable, Optional, Tuple

from .atc import AuthClient, ConcourseClient, Token
from .config import HarnessConfig
from .context import ScenarioContext
from .convergence import Outcome, consistently, eventually, poll_until
from .deploy import BoshDeployTool, DataStore, DeploymentController, DeployTool, make_deploy_tool
from .fly import FlyCLI
from .registry import Instance
from .session import Session, SessionManager
from .teardown import TeardownCoordinator, TeardownReport

logger = logging.getLogger(__name__)


class Harness:
    def __init__(
        self,
        ctx: ScenarioContext,
        tool: DeployTool,
        auth: AuthClient,
        fly: Optional[FlyCLI],
        controller: DeploymentController,
    ):
        self.ctx = ctx
        self.tool = tool
        self.auth = auth
        self.fly = fly
        self.controller = controller

    @classmethod
    def for_lane(
        cls,
        config: Optional[HarnessConfig] = None,
        lane: Optional[int] = None,
        tool: Optional[DeployTool] = None,
        auth: Optional[AuthClient] = None,
        sessions: Optional[SessionManager] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> "Harness":
        config = config or HarnessConfig.from_env()
        ctx = ScenarioContext.fresh(config, lane=lane, sessions=sessions)
        try:
            tool = tool or make_deploy_tool(config, ctx.sessions, ctx.deployment_name)
        except Exception:
            shutil.rmtree(ctx.tmp, ignore_errors=True)
            raise

        auth = auth or AuthClient()
        fly = FlyCLI(ctx) if config.fly_command else None
        controller = DeploymentController(ctx, tool, auth, fly=fly, sleep=sleep)
        return cls(ctx, tool, auth, fly, controller)

    def setup(self):
        self.controller.prepare()

    def deploy(self, manifest: str, *args: str):
        self.controller.deploy(manifest, *args)

    def start_deploy(self, manifest: str, *args: str) -> Session:
        return self.controller.start_deploy(manifest, *args)

    def refresh(self):
        self.controller.refresh()

    def instance(self, group: str) -> Optional[Instance]:
        return self.ctx.registry.instance(group)

    def instances(self, group: str) -> Tuple[Instance, ...]:
        return self.ctx.registry.instances(group)

    def job_instance(self, job: str) -> Optional[Instance]:
        return self.ctx.registry.job_instance(job)

    def job_instances(self, job: str) -> Tuple[Instance, ...]:
        return self.ctx.registry.job_instances(job)

    @property
    def atc_external_url(self) -> str:
        return self.ctx.atc_external_url

    @property
    def datastore(self) -> Optional[DataStore]:
        return self.ctx.datastore

    def fetch_token(self, username: Optional[str] = None, password: Optional[str] = None, url: Optional[str] = None) -> Token:
        return self.auth.fetch_token(
            self.ctx.atc_external_url if url is None else url,
            self.ctx.atc_username if username is None else username,
            self.ctx.atc_password if password is None else password,
        )

    def concourse_client(self) -> ConcourseClient:
        return self.auth.build_client(
            self.ctx.atc_external_url, self.ctx.atc_username, self.ctx.atc_password
        )

    def has_release(self, name: str) -> bool:
        if isinstance(self.tool, BoshDeployTool):
            return name in self.tool.releases()
        return True

    def poll_until(self, predicate: Callable[[], Outcome], timeout: Optional[float] = None, description: str = "") -> Any:
        config = self.ctx.config
        return poll_until(
            predicate,
            timeout=config.poll_timeout if timeout is None else timeout,
            interval=config.poll_interval,
            description=description,
        )

    def eventually(self, fn: Callable[[], Any], condition: Callable[[Any], bool], timeout: Optional[float] = None, description: str = "") -> Any:
        config = self.ctx.config
        return eventually(
            fn,
            condition,
            timeout=config.poll_timeout if timeout is None else timeout,
            interval=config.poll_interval,
            description=description,
        )

    def consistently(self, fn: Callable[[], Any], condition: Callable[[Any], bool], duration: Optional[float] = None, description: str = "") -> Any:
        config = self.ctx.config
        return consistently(
            fn,
            condition,
            duration=config.consistently_duration if duration is None else duration,
            interval=config.poll_interval,
            description=description,
        )

    def teardown(self) -> TeardownReport:
        return TeardownCoordinator(self.ctx, self.tool, self.auth).run()

    def __enter__(self) -> "Harness":
        try:
            self.setup()
        except Exception:
            self.teardown()
            raise
        return self

    def __exit__(self, exc_type, exc, tb):
        report = self.teardown()
        if exc_type is None:
            report.raise_for_failures()
        elif not report.ok:
            logger.error("Teardown after a failed scenario also failed:\n  " + "\n  ".join(report.failures))
        return False
