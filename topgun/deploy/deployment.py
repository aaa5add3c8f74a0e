# File: topgun/deploy/deployment.py

import os
from dataclasses import dataclass
from typing import List, Sequence, Tuple

import yaml

from ..errors import SetupFailure


@dataclass(frozen=True)
class Deployment:
    """The manifest and ordered overrides of the most recent deploy."""

    manifest: str
    args: Tuple[str, ...] = ()
    declared_groups: Tuple[str, ...] = ()

    @classmethod
    def load(cls, manifest: str, args: Sequence[str] = ()) -> "Deployment":
        """Read the manifest to learn which instance groups it declares."""
        if not os.path.exists(manifest):
            raise SetupFailure(f"deployment manifest {manifest} not found")

        try:
            with open(manifest, "r") as f:
                document = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise SetupFailure(f"deployment manifest {manifest} is not valid YAML: {e}") from e

        groups: List[str] = []
        if isinstance(document, dict):
            # bosh manifests list instance_groups, compose files map services
            for group in document.get("instance_groups") or []:
                if isinstance(group, dict) and group.get("name"):
                    groups.append(group["name"])
            services = document.get("services")
            if isinstance(services, dict):
                groups.extend(services.keys())

        return cls(manifest=manifest, args=tuple(args), declared_groups=tuple(groups))
