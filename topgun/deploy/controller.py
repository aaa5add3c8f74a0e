#!/usr/bin/env python3
"""
Deployment Controller

Drives the deploy tool end to end for one lane:
1. Release the previous log tail and data store connection
2. Run the deploy tool and require it to succeed (no retry)
3. Refresh the instance registry
4. Start tailing deployment logs
5. Give the web node time to bootstrap (migrations etc.)
6. Resolve the web endpoint from the refreshed registry
7. Wait, within a bounded window, for the endpoint to hand out tokens
8. Open a connection to the backing database

Any failure is a SetupFailure. The only retry is the bounded
reachability wait in step 7.
"""

import logging
import time
from typing import TYPE_CHECKING, Callable, Optional

from sqlalchemy.exc import SQLAlchemyError

from ..atc import AuthClient
from ..convergence import NotYet, Satisfied, poll_until
from ..errors import (
    AuthenticationError,
    ConvergenceTimeout,
    ExternalProcessFailure,
    SetupFailure,
)
from ..metrics import METRICS
from ..session import Session
from .datastore import DataStore
from .deployment import Deployment
from .tools import DeployTool

if TYPE_CHECKING:
    from ..context import ScenarioContext
    from ..fly import FlyCLI

logger = logging.getLogger(__name__)


class DeploymentController:
    def __init__(
        self,
        ctx: "ScenarioContext",
        tool: DeployTool,
        auth: AuthClient,
        fly: Optional["FlyCLI"] = None,
        open_datastore: Callable[[str], DataStore] = DataStore.open,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.ctx = ctx
        self.tool = tool
        self.auth = auth
        self.fly = fly
        self.open_datastore = open_datastore
        self.sleep = sleep

    def prepare(self):
        """Tear down whatever a previous run left behind under this lane's name."""
        try:
            self.tool.teardown()
        except ExternalProcessFailure as e:
            logger.warning(
                f"Lane {self.ctx.lane}: no previous deployment to remove "
                f"(exit {e.exit_code})"
            )

    def start_deploy(self, manifest: str, *args: str) -> Session:
        """Spawn the deploy tool without waiting for it."""
        self.ctx.deployment = Deployment.load(manifest, args)
        return self.tool.start_deploy(manifest, args)

    def deploy(self, manifest: str, *args: str):
        started = time.monotonic()
        self._release_previous()

        logger.info(f"Deploying {manifest} as {self.ctx.deployment_name} {' '.join(args)}")
        try:
            self.ctx.sessions.wait(self.start_deploy(manifest, *args))
        except ExternalProcessFailure as e:
            METRICS["deploy_failures"].labels(step="deploy").inc()
            raise SetupFailure(
                f"deploying {manifest} failed with exit code {e.exit_code}", output=e.output
            ) from e

        self._refresh_registry()

        self.ctx.log_tail = self.tool.follow_logs()

        logger.info(f"Giving the web node {self.ctx.config.warmup_seconds}s to bootstrap")
        self.sleep(self.ctx.config.warmup_seconds)

        try:
            address = self.tool.job_address(self.ctx.registry, self.tool.web_job, 0)
        except LookupError as e:
            METRICS["deploy_failures"].labels(step="endpoint").inc()
            raise SetupFailure(f"deployment has no {self.tool.web_job} instance: {e}") from e
        self.ctx.atc_external_url = f"http://{address}"

        self._wait_for_atc()
        self._open_datastore()

        METRICS["deploy_duration"].observe(time.monotonic() - started)
        logger.info(f"Deployment {self.ctx.deployment_name} ready at {self.ctx.atc_external_url}")

    def refresh(self):
        """Re-read the topology. Scenarios call this after changing instances."""
        self._refresh_registry()

    def _release_previous(self):
        if self.ctx.log_tail is not None:
            self.ctx.sessions.stop(self.ctx.log_tail, timeout=self.ctx.config.session_stop_timeout)
            self.ctx.log_tail = None

        if self.ctx.datastore is not None:
            self.ctx.datastore.close()
            self.ctx.datastore = None

    def _refresh_registry(self):
        try:
            rows = self.tool.topology()
        except ExternalProcessFailure as e:
            METRICS["deploy_failures"].labels(step="topology").inc()
            raise SetupFailure("listing deployment instances failed", output=e.output) from e

        self.ctx.registry.refresh(rows)

        deployment = self.ctx.deployment
        if deployment is not None:
            missing = set(deployment.declared_groups) - set(self.ctx.registry.groups())
            if missing:
                logger.warning(f"Declared groups with no running instances: {sorted(missing)}")

    def _wait_for_atc(self):
        url = self.ctx.atc_external_url
        username, password = self.ctx.atc_username, self.ctx.atc_password

        def accepts_logins():
            try:
                return Satisfied(self.auth.fetch_token(url, username, password))
            except AuthenticationError as e:
                return NotYet(observed=str(e))

        try:
            poll_until(
                accepts_logins,
                timeout=self.ctx.config.login_timeout,
                interval=self.ctx.config.poll_interval,
                description=f"{url} to accept logins",
            )
        except ConvergenceTimeout as e:
            METRICS["deploy_failures"].labels(step="reachability").inc()
            raise SetupFailure(
                f"{url} never became reachable", output=str(e.last_observed or "")
            ) from e

        if self.fly is not None:
            try:
                self.ctx.sessions.wait(self.fly.login(url))
            except ExternalProcessFailure as e:
                METRICS["deploy_failures"].labels(step="fly-login").inc()
                raise SetupFailure(f"fly login to {url} failed", output=e.output) from e

    def _open_datastore(self):
        db_job = self.tool.db_job
        if not self.ctx.registry.job_instances(db_job):
            logger.info(f"Deployment has no {db_job} job, skipping data store connection")
            return

        url = self.ctx.config.datastore_url.format(
            address=self.tool.job_address(self.ctx.registry, db_job, 0)
        )
        try:
            self.ctx.datastore = self.open_datastore(url)
        except SQLAlchemyError as e:
            METRICS["deploy_failures"].labels(step="datastore").inc()
            raise SetupFailure(f"could not connect to the {db_job} data store: {e}") from e
