# File: topgun/registry/instance_registry.py
"""
Instance Registry

Snapshot of the deployment topology:
- group name -> instances, in discovery order
- job name -> instances running that job, in discovery order

The registry is rebuilt only by an explicit refresh. Between refreshes it
describes the deployment as it was, not as it is.
"""

import logging
import threading
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple, Union

from .listing import InstanceRow, ListingRow, ProcessRow, UnaddressedRow, parse_listing

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Instance:
    """A running unit of the deployed system."""

    name: str
    address: str


class InstanceRegistry:
    def __init__(self):
        self._lock = threading.Lock()
        self._instances: Dict[str, Tuple[Instance, ...]] = {}
        self._job_instances: Dict[str, Tuple[Instance, ...]] = {}

    def refresh(self, rows: Iterable[ListingRow]) -> None:
        """Replace the snapshot with the topology described by rows."""
        instances: Dict[str, List[Instance]] = {}
        job_instances: Dict[str, List[Instance]] = {}
        current: Optional[Instance] = None

        for row in rows:
            if isinstance(row, InstanceRow):
                current = Instance(name=row.name, address=row.address)
                instances.setdefault(row.group, []).append(current)
            elif isinstance(row, UnaddressedRow):
                current = None
            elif isinstance(row, ProcessRow):
                if current is None:
                    logger.debug(f"Skipping process row {row.job} with no owning instance")
                    continue
                job_instances.setdefault(row.job, []).append(current)

        with self._lock:
            self._instances = {k: tuple(v) for k, v in instances.items()}
            self._job_instances = {k: tuple(v) for k, v in job_instances.items()}

        logger.info(
            f"Registry refreshed: {sum(len(v) for v in instances.values())} instances "
            f"in {len(instances)} groups, {len(job_instances)} jobs"
        )

    def refresh_from_listing(self, listing: Union[str, Iterable[str]]) -> None:
        self.refresh(parse_listing(listing))

    def instance(self, group: str) -> Optional[Instance]:
        instances = self.instances(group)
        return instances[0] if instances else None

    def instances(self, group: str) -> Tuple[Instance, ...]:
        with self._lock:
            return self._instances.get(group, ())

    def job_instance(self, job: str) -> Optional[Instance]:
        instances = self.job_instances(job)
        return instances[0] if instances else None

    def job_instances(self, job: str) -> Tuple[Instance, ...]:
        # A job with no instances and a job never seen both come back empty.
        with self._lock:
            return self._job_instances.get(job, ())

    def groups(self) -> List[str]:
        with self._lock:
            return list(self._instances)

    def jobs(self) -> List[str]:
        with self._lock:
            return list(self._job_instances)
