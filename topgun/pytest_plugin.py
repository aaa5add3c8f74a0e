# File: topgun/pytest_plugin.py
"""
pytest fixtures for scenarios.

Run scenarios in parallel lanes with pytest-xdist (``pytest -n 4``); each
worker gets its own deployment name and fly target.
"""

import os
from typing import Dict, Iterator

import pytest

from .config import HarnessConfig
from .context import lane_index
from .diagnostic_logger import configure_logging
from .harness import Harness


def skip_unless_env(*names: str, reason: str = "") -> Dict[str, str]:
    """Skip the calling scenario unless every named variable is set."""
    missing = [name for name in names if not os.getenv(name)]
    if missing:
        pytest.skip(reason or "must set $" + ", $".join(missing) + " to run this scenario")
    return {name: os.environ[name] for name in names}


def skip_unless_release(harness: Harness, name: str):
    if not harness.has_release(name):
        pytest.skip(f"{name} release not uploaded")


@pytest.fixture(scope="session")
def topgun_config() -> HarnessConfig:
    config = HarnessConfig.from_env()
    configure_logging(config.log_level, config.log_dir)
    return config


@pytest.fixture
def topgun_lane() -> int:
    return lane_index()


@pytest.fixture
def topgun(topgun_config: HarnessConfig, topgun_lane: int) -> Iterator[Harness]:
    """A freshly prepared lane, torn down after the test whatever its outcome."""
    with Harness.for_lane(topgun_config, lane=topgun_lane) as harness:
        yield harness
