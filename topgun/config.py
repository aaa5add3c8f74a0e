# File: topgun/config.py
"""
Harness configuration.

Everything is read from the environment with a sensible default, so a lane
can be driven from CI variables without any config file.
"""

import os
import shlex
from dataclasses import dataclass, field
from typing import Dict, List

RELEASE_VERSION_VARS = {
    "concourse_release_version": "CONCOURSE_RELEASE_VERSION",
    "garden_runc_release_version": "GARDEN_RUNC_RELEASE_VERSION",
    "postgres_release_version": "POSTGRES_RELEASE_VERSION",
    "git_server_release_version": "GIT_SERVER_RELEASE_VERSION",
    "vault_release_version": "VAULT_RELEASE_VERSION",
    "credhub_release_version": "CREDHUB_RELEASE_VERSION",
    "stemcell_version": "STEMCELL_VERSION",
}

DEFAULT_DATASTORE_URL = "postgresql+psycopg2://atc:dummy-password@{address}/atc?sslmode=disable"


def _command(var: str, default: str) -> List[str]:
    return shlex.split(os.getenv(var, default))


def release_versions() -> Dict[str, str]:
    """Per-component release versions; unset means "latest"."""
    return {key: os.getenv(var) or "latest" for key, var in RELEASE_VERSION_VARS.items()}


@dataclass
class HarnessConfig:
    deploy_tool: str = "bosh"
    bosh_command: List[str] = field(default_factory=lambda: ["bosh"])
    compose_command: List[str] = field(default_factory=lambda: ["docker-compose"])
    fly_command: List[str] = field(default_factory=list)
    deployment_prefix: str = "concourse-topgun"
    warmup_seconds: float = 20.0
    login_timeout: float = 30.0
    poll_timeout: float = 300.0
    poll_interval: float = 1.0
    consistently_duration: float = 60.0
    session_stop_timeout: float = 30.0
    atc_username: str = "test"
    atc_password: str = "test"
    datastore_url: str = DEFAULT_DATASTORE_URL
    log_level: str = "INFO"
    log_dir: str = ""
    versions: Dict[str, str] = field(default_factory=release_versions)

    @classmethod
    def from_env(cls) -> "HarnessConfig":
        return cls(
            deploy_tool=os.getenv("TOPGUN_DEPLOY_TOOL", "bosh"),
            bosh_command=_command("TOPGUN_BOSH", "bosh"),
            compose_command=_command("TOPGUN_COMPOSE", "docker-compose"),
            fly_command=_command("FLY_BIN", ""),
            deployment_prefix=os.getenv("TOPGUN_DEPLOYMENT_PREFIX", "concourse-topgun"),
            warmup_seconds=float(os.getenv("TOPGUN_WARMUP_SECONDS", "20")),
            login_timeout=float(os.getenv("TOPGUN_LOGIN_TIMEOUT", "30")),
            poll_timeout=float(os.getenv("TOPGUN_POLL_TIMEOUT", "300")),
            poll_interval=float(os.getenv("TOPGUN_POLL_INTERVAL", "1")),
            consistently_duration=float(os.getenv("TOPGUN_CONSISTENTLY_DURATION", "60")),
            session_stop_timeout=float(os.getenv("TOPGUN_SESSION_STOP_TIMEOUT", "30")),
            atc_username=os.getenv("TOPGUN_ATC_USERNAME", "test"),
            atc_password=os.getenv("TOPGUN_ATC_PASSWORD", "test"),
            datastore_url=os.getenv("TOPGUN_DATASTORE_URL", DEFAULT_DATASTORE_URL),
            log_level=os.getenv("TOPGUN_LOG_LEVEL", "INFO"),
            log_dir=os.getenv("TOPGUN_LOG_DIR", ""),
            versions=release_versions(),
        )
