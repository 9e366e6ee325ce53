"""Structured results of extend and purge runs."""

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any, Optional


class PurgeMode(str, Enum):
    """How old data is retired."""

    PARTITIONED = "partitioned"  # Drop whole monthly partitions
    FLAT = "flat"  # Delete rows from an unpartitioned table


class PurgeStatus(str, Enum):
    """Overall outcome of a purge run."""

    COMPLETED = "completed"
    PARTIAL = "partial"  # Some partitions or phases failed, others succeeded
    FAILED = "failed"
    NO_DATA = "no_data"


class SkipReason(str, Enum):
    """Why a discovered partition was left alone."""

    MALFORMED = "malformed"
    UNSAFE = "unsafe"


# Row-deletion phases, in execution order
PHASE_DEPENDENTS = "dependents"
PHASE_BASE = "base"
PHASE_ORPHANS = "orphans"


@dataclass
class PartitionOutcome:
    """A partition that was skipped or failed, and why."""

    name: str
    reason: str
    detail: str = ""

    def to_dict(self) -> dict[str, str]:
        return {"name": self.name, "reason": self.reason, "detail": self.detail}


@dataclass
class ExtendSummary:
    """Result of ensuring partitions for a month range."""

    target: str
    created: list[str] = field(default_factory=list)
    existing: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "target": self.target,
            "created": list(self.created),
            "existing": list(self.existing),
            "created_count": len(self.created),
        }


@dataclass
class PurgeSummary:
    """Result of one purge run.

    Attributes:
        target: ``schema.table`` of the base table.
        mode: Partitioned or flat retirement.
        dry_run: When True nothing was deleted; ``eligible`` and
            ``rows_deleted`` describe what would have been removed.
        status: Overall outcome.
        latest_month: Month of the freshest base row.
        cutoff: Months strictly before this are eligible.
        eligible: Partitions past the cutoff that passed validation.
        dropped: Partitions actually dropped.
        retained: Partitions at or after the cutoff.
        skipped: Partitions left alone (malformed or unsafe).
        failed: Partitions whose retirement raised a storage error.
        rows_deleted: Row counts per phase (dependents, base, orphans).
        errors: Phase-level failures that stopped part of the run.
    """

    target: str
    mode: PurgeMode
    dry_run: bool = False
    status: PurgeStatus = PurgeStatus.COMPLETED
    latest_month: Optional[date] = None
    cutoff: Optional[date] = None
    eligible: list[str] = field(default_factory=list)
    dropped: list[str] = field(default_factory=list)
    retained: list[str] = field(default_factory=list)
    skipped: list[PartitionOutcome] = field(default_factory=list)
    failed: list[PartitionOutcome] = field(default_factory=list)
    rows_deleted: dict[str, int] = field(
        default_factory=lambda: {PHASE_DEPENDENTS: 0, PHASE_BASE: 0, PHASE_ORPHANS: 0}
    )
    errors: list[str] = field(default_factory=list)
    duration_seconds: float = 0.0

    def add_rows(self, phase: str, count: int) -> None:
        self.rows_deleted[phase] = self.rows_deleted.get(phase, 0) + count

    @property
    def total_rows_deleted(self) -> int:
        return sum(self.rows_deleted.values())

    def finalize(self) -> None:
        """Derive the overall status from failures recorded so far."""
        if self.status == PurgeStatus.NO_DATA:
            return
        if not self.failed and not self.errors:
            self.status = PurgeStatus.COMPLETED
        elif self.dropped or self.total_rows_deleted:
            self.status = PurgeStatus.PARTIAL
        else:
            self.status = PurgeStatus.FAILED

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-serializable dictionary."""
        return {
            "target": self.target,
            "mode": self.mode.value,
            "dry_run": self.dry_run,
            "status": self.status.value,
            "latest_month": self.latest_month.isoformat() if self.latest_month else None,
            "cutoff": self.cutoff.isoformat() if self.cutoff else None,
            "eligible": list(self.eligible),
            "dropped": list(self.dropped),
            "retained": list(self.retained),
            "skipped": [s.to_dict() for s in self.skipped],
            "failed": [f.to_dict() for f in self.failed],
            "rows_deleted": dict(self.rows_deleted),
            "total_rows_deleted": self.total_rows_deleted,
            "errors": list(self.errors),
            "duration_seconds": round(self.duration_seconds, 3),
        }
