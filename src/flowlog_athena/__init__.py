"""
Athena tooling for VPC Flow Logs delivered to S3.

Creates the Athena database and table over the flow log bucket and registers
the date partitions found in S3.
"""

__version__ = "0.1.0"

from .partitions import (
    PartitionKey,
    discover_partitions,
    generate_speculative_partitions,
    partition_location,
)
from .reconciler import (
    AthenaPartitionCatalog,
    GluePartitionCatalog,
    PartitionReconciler,
    PartitionStatus,
    ReconcileReport,
)

__all__ = [
    "PartitionKey",
    "discover_partitions",
    "generate_speculative_partitions",
    "partition_location",
    "AthenaPartitionCatalog",
    "GluePartitionCatalog",
    "PartitionReconciler",
    "PartitionStatus",
    "ReconcileReport",
]
