#!/usr/bin/env python3
"""
Teardown Coordinator

Unconditional post-scenario cleanup for one lane:
1. Stop the log tail and every tracked interactive session
2. Destroy every container the live ATC still reports
3. Close the data store connection
4. Tear the deployment down through the deploy tool
5. Remove scratch directories

Each step runs in isolation. A failing step is recorded and the remaining
steps still run.
"""

import logging
import os
import shutil
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable, List, Optional

from ..atc import AuthClient, GardenClient
from ..diagnostic_logger import DiagnosticLogger
from ..errors import TeardownFailure
from ..metrics import METRICS

if TYPE_CHECKING:
    from ..context import ScenarioContext
    from ..deploy import DeployTool

logger = logging.getLogger(__name__)


@dataclass
class StepResult:
    name: str
    skipped: bool = False
    errors: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


@dataclass
class TeardownReport:
    steps: List[StepResult] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return all(step.ok for step in self.steps)

    @property
    def failures(self) -> List[str]:
        return [f"{step.name}: {error}" for step in self.steps for error in step.errors]

    def step(self, name: str) -> Optional[StepResult]:
        for step in self.steps:
            if step.name == name:
                return step
        return None

    def raise_for_failures(self):
        if not self.ok:
            raise TeardownFailure(self.failures)


class TeardownCoordinator:
    def __init__(
        self,
        ctx: "ScenarioContext",
        tool: "DeployTool",
        auth: AuthClient,
        garden_factory: Callable[[str], GardenClient] = GardenClient,
        diagnostics: Optional[DiagnosticLogger] = None,
    ):
        self.ctx = ctx
        self.tool = tool
        self.auth = auth
        self.garden_factory = garden_factory
        self.diagnostics = diagnostics or DiagnosticLogger("topgun.teardown")

    def run(self) -> TeardownReport:
        report = TeardownReport()
        steps = [
            ("stop-sessions", self._stop_sessions),
            ("delete-containers", self._delete_containers),
            ("close-datastore", self._close_datastore),
            ("teardown-deployment", self._teardown_deployment),
            ("remove-scratch", self._remove_scratch),
        ]

        for name, step in steps:
            result = StepResult(name)
            try:
                step(result)
            except Exception as e:
                result.errors.append(f"{type(e).__name__}: {e}")

            for error in result.errors:
                METRICS["teardown_step_failures"].labels(step=name).inc()
                self.diagnostics.log_error(
                    f"teardown step {name} failed",
                    {"lane": self.ctx.lane, "deployment": self.ctx.deployment_name, "error": error},
                )
            report.steps.append(result)

        if self.ctx.config.log_dir:
            os.makedirs(self.ctx.config.log_dir, exist_ok=True)
            self.diagnostics.generate_report(
                os.path.join(self.ctx.config.log_dir, f"teardown-{self.ctx.deployment_name}.json")
            )

        if report.ok:
            self.diagnostics.log_success(f"lane {self.ctx.lane} torn down")
        return report

    def _stop_sessions(self, result: StepResult):
        sessions = list(self.ctx.interactive_sessions)
        if self.ctx.log_tail is not None:
            sessions.insert(0, self.ctx.log_tail)

        if not sessions:
            result.skipped = True

        for session in sessions:
            try:
                self.ctx.sessions.stop(session, timeout=self.ctx.config.session_stop_timeout)
            except Exception as e:
                result.errors.append(f"could not stop {session!r}: {e}")

        self.ctx.log_tail = None
        self.ctx.interactive_sessions.clear()

    def _delete_containers(self, result: StepResult):
        url = self.ctx.atc_external_url
        if not url:
            result.skipped = True
            return

        # Ask the live system, not our own bookkeeping, what still exists.
        client = self.auth.build_client(url, self.ctx.atc_username, self.ctx.atc_password)
        try:
            gardens = {w.name: w.garden_addr for w in client.list_workers()}
            containers = client.list_containers("main")
        finally:
            client.close()

        for container in containers:
            address = gardens.get(container.worker_name)
            if not address:
                result.errors.append(
                    f"container {container.id} is on unknown worker {container.worker_name!r}"
                )
                continue

            try:
                self.garden_factory(address).destroy(container.id)
            except Exception as e:
                result.errors.append(f"failed to delete container {container.id}: {e}")

    def _close_datastore(self, result: StepResult):
        if self.ctx.datastore is None:
            result.skipped = True
            return
        try:
            self.ctx.datastore.close()
        finally:
            self.ctx.datastore = None

    def _teardown_deployment(self, result: StepResult):
        self.tool.teardown()

    def _remove_scratch(self, result: StepResult):
        for path in self.ctx.scratch_dirs:
            if not os.path.exists(path):
                continue
            try:
                shutil.rmtree(path)
            except OSError as e:
                result.errors.append(f"could not remove {path}: {e}")
        self.ctx.scratch_dirs.clear()
