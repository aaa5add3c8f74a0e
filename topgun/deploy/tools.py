#!/usr/bin/env python3
"""
Deploy Tools

Adapters around the external tool that stands a deployment up:
- BoshDeployTool: manifest + ``-o``/``-v`` overrides, topology from the
  tool's tabular instance listing
- ComposeDeployTool: a docker-compose project per lane, topology and
  published ports read through the Docker Engine API

Both are namespaced by the lane's deployment name, so lanes never share
names or ports on the underlying infrastructure.
"""

import logging
import os
from typing import Dict, List, Optional, Sequence

import docker

from ..config import RELEASE_VERSION_VARS, HarnessConfig
from ..errors import ExternalProcessFailure, SetupFailure
from ..registry import (
    InstanceRegistry,
    InstanceRow,
    ListingRow,
    ProcessRow,
    UnaddressedRow,
    parse_listing,
)
from ..session import Session, SessionManager

logger = logging.getLogger(__name__)

JOB_PORTS = {
    "web": 8080,
    "atc": 8080,
    "garden": 7777,
    "baggageclaim": 7788,
    "db": 5432,
    "postgres": 5432,
}


class DeployTool:
    """Common surface of every deploy tool."""

    web_job = "web"
    db_job = "db"

    def __init__(
        self,
        command: Sequence[str],
        sessions: SessionManager,
        deployment_name: str,
        versions: Optional[Dict[str, str]] = None,
    ):
        self.command = list(command)
        self.sessions = sessions
        self.deployment_name = deployment_name
        self.versions = dict(versions or {})

    def deploy_args(self, manifest: str, args: Sequence[str]) -> List[str]:
        raise NotImplementedError

    def start_deploy(self, manifest: str, args: Sequence[str] = ()) -> Session:
        return self.sessions.spawn(self.command, self.deploy_args(manifest, args), env=self.env())

    def env(self) -> Optional[Dict[str, str]]:
        return None

    def topology(self) -> List[ListingRow]:
        raise NotImplementedError

    def follow_logs(self) -> Session:
        raise NotImplementedError

    def job_address(self, registry: InstanceRegistry, job: str, index: int = 0, port: Optional[int] = None) -> str:
        """host:port of the index'th instance of job, as seen from the harness."""
        instances = registry.job_instances(job)
        if index >= len(instances):
            raise LookupError(f"no instance {index} of job {job} (have {len(instances)})")
        return f"{instances[index].address}:{port or JOB_PORTS.get(job, 8080)}"

    def stop_instance(self, instance: str):
        raise NotImplementedError

    def start_instance(self, instance: str):
        raise NotImplementedError

    def run_on_instance(self, instance: str, shell_command: str) -> str:
        raise NotImplementedError

    def teardown(self):
        raise NotImplementedError


class BoshDeployTool(DeployTool):
    web_job = "atc"
    db_job = "postgres"

    def _args(self, *argv: str) -> List[str]:
        return ["-n", "-d", self.deployment_name, *argv]

    def _run(self, *argv: str) -> Session:
        return self.sessions.run(self.command, self._args(*argv))

    def deploy_args(self, manifest: str, args: Sequence[str]) -> List[str]:
        variables = ["-v", f"deployment_name={self.deployment_name}"]
        for key in RELEASE_VERSION_VARS:
            variables += ["-v", f"{key}={self.versions.get(key, 'latest')}"]
        return self._args("deploy", manifest, *variables, *args)

    def topology(self) -> List[ListingRow]:
        session = self._run("instances", "-p")
        return list(parse_listing(session.out.contents()))

    def follow_logs(self) -> Session:
        return self.sessions.spawn(self.command, ["-d", self.deployment_name, "logs", "-f"])

    def stop_instance(self, instance: str):
        self._run("stop", instance)

    def start_instance(self, instance: str):
        self._run("start", instance)

    def run_on_instance(self, instance: str, shell_command: str) -> str:
        return self._run("ssh", instance, "-c", shell_command).out.contents()

    def releases(self) -> str:
        return self.sessions.run(self.command, ["releases"]).out.contents()

    def teardown(self):
        self._run("delete-deployment", "--force")


class ComposeDeployTool(DeployTool):
    PROJECT_LABEL = "com.docker.compose.project"
    SERVICE_LABEL = "com.docker.compose.service"
    NUMBER_LABEL = "com.docker.compose.container-number"

    def __init__(self, *args, docker_client=None, **kwargs):
        super().__init__(*args, **kwargs)
        self._docker = docker_client
        self.manifest: Optional[str] = None

    @property
    def docker_client(self):
        if self._docker is None:
            self._docker = docker.from_env()
        return self._docker

    def _args(self, *argv: str) -> List[str]:
        args = ["-p", self.deployment_name]
        if self.manifest:
            args += ["-f", self.manifest]
        return args + list(argv)

    def env(self) -> Dict[str, str]:
        env = dict(os.environ)
        for key, var in RELEASE_VERSION_VARS.items():
            env[var] = self.versions.get(key, "latest")
        return env

    def deploy_args(self, manifest: str, args: Sequence[str]) -> List[str]:
        self.manifest = manifest
        return self._args("up", "-d", *args)

    def _containers(self) -> list:
        containers = self.docker_client.containers.list(
            filters={"label": f"{self.PROJECT_LABEL}={self.deployment_name}"}
        )
        return sorted(
            containers,
            key=lambda c: (c.labels.get(self.SERVICE_LABEL, ""), int(c.labels.get(self.NUMBER_LABEL, "1"))),
        )

    def container(self, job: str, index: int = 0):
        for c in self._containers():
            if c.labels.get(self.SERVICE_LABEL) == job and int(c.labels.get(self.NUMBER_LABEL, "1")) == index + 1:
                return c
        raise LookupError(f"no container for {job}/{index} in project {self.deployment_name}")

    def container_id(self, job: str, index: int = 0) -> str:
        return self.container(job, index).id

    def topology(self) -> List[ListingRow]:
        rows: List[ListingRow] = []
        for c in self._containers():
            service = c.labels.get(self.SERVICE_LABEL, c.name)
            index = str(int(c.labels.get(self.NUMBER_LABEL, "1")) - 1)
            networks = c.attrs.get("NetworkSettings", {}).get("Networks") or {}
            addresses = [n.get("IPAddress") for n in networks.values() if n.get("IPAddress")]

            if addresses:
                rows.append(InstanceRow(group=service, id=index, state=c.status, address=addresses[0]))
            else:
                rows.append(UnaddressedRow(group=service, id=index))
            rows.append(ProcessRow(job=service, state=c.status))
        return rows

    def job_address(self, registry: InstanceRegistry, job: str, index: int = 0, port: Optional[int] = None) -> str:
        port = port or JOB_PORTS.get(job, 8080)
        try:
            bindings = self.container(job, index).ports.get(f"{port}/tcp") or []
        except LookupError:
            bindings = []

        if bindings:
            host_ip = bindings[0].get("HostIp") or "127.0.0.1"
            if host_ip in ("0.0.0.0", "::"):
                host_ip = "127.0.0.1"
            return f"{host_ip}:{bindings[0]['HostPort']}"

        return super().job_address(registry, job, index, port)

    def follow_logs(self) -> Session:
        return self.sessions.spawn(self.command, self._args("logs", "-f"), env=self.env())

    def _split_instance(self, instance: str):
        job, _, index = instance.partition("/")
        return self.container(job, int(index or 0))

    def stop_instance(self, instance: str):
        self._split_instance(instance).stop()

    def start_instance(self, instance: str):
        self._split_instance(instance).start()

    def run_on_instance(self, instance: str, shell_command: str) -> str:
        result = self._split_instance(instance).exec_run(["sh", "-c", shell_command])
        output = result.output.decode(errors="replace")
        if result.exit_code != 0:
            raise ExternalProcessFailure(
                ["docker", "exec", instance, "sh", "-c", shell_command],
                result.exit_code,
                [0],
                stdout=output,
            )
        return output

    def teardown(self):
        self.sessions.run(self.command, self._args("down"), env=self.env())


def make_deploy_tool(config: HarnessConfig, sessions: SessionManager, deployment_name: str) -> DeployTool:
    if config.deploy_tool == "bosh":
        return BoshDeployTool(config.bosh_command, sessions, deployment_name, config.versions)
    if config.deploy_tool == "compose":
        return ComposeDeployTool(config.compose_command, sessions, deployment_name, config.versions)
    raise SetupFailure(f"unknown deploy tool {config.deploy_tool!r}, expected 'bosh' or 'compose'")
