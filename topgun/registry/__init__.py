from .instance_registry import Instance, InstanceRegistry
from .listing import (
    InstanceRow,
    ListingRow,
    ProcessRow,
    UnaddressedRow,
    parse_listing,
    parse_row,
)

__all__ = [
    "Instance",
    "InstanceRegistry",
    "InstanceRow",
    "ListingRow",
    "ProcessRow",
    "UnaddressedRow",
    "parse_listing",
    "parse_row",
]
