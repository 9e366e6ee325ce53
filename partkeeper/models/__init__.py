"""Configuration records and run summaries."""

from partkeeper.models.summary import (
    ExtendSummary,
    PartitionOutcome,
    PurgeMode,
    PurgeStatus,
    PurgeSummary,
    SkipReason,
)
from partkeeper.models.target import LifecycleTarget, TimestampRepresentation

__all__ = [
    "ExtendSummary",
    "LifecycleTarget",
    "PartitionOutcome",
    "PurgeMode",
    "PurgeStatus",
    "PurgeSummary",
    "SkipReason",
    "TimestampRepresentation",
]
