from .fly_cli import FlyCLI, parse_table, split_columns
from .workers import (
    containers_by,
    volumes_by_resource_type,
    wait_for_landing_or_landed_worker,
    wait_for_running_worker,
    wait_for_stalled_worker,
    wait_for_worker_count,
    wait_for_worker_in_state,
    wait_for_workers_to_be_running,
    workers_by,
    workers_with_containers,
)

__all__ = [
    "FlyCLI",
    "containers_by",
    "parse_table",
    "split_columns",
    "volumes_by_resource_type",
    "wait_for_landing_or_landed_worker",
    "wait_for_running_worker",
    "wait_for_stalled_worker",
    "wait_for_worker_count",
    "wait_for_worker_in_state",
    "wait_for_workers_to_be_running",
    "workers_by",
    "workers_with_containers",
]
