"""Admin-only endpoints for partition maintenance and retention."""

from typing import Annotated, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from partkeeper.config import settings
from partkeeper.core.exceptions import MalformedPartitionName
from partkeeper.core.security import require_admin
from partkeeper.db.session import get_partition_store
from partkeeper.models.target import LifecycleTarget
from partkeeper.services import partition_namer, time_codec
from partkeeper.services.metrics_service import record_extend
from partkeeper.services.partition_extender import PartitionExtender
from partkeeper.services.purger import DependencyAwarePurger, PartitionCatalog
from partkeeper.storage.base import PartitionStore

router = APIRouter()


class TargetResponse(BaseModel):
    """Response model for a configured table."""

    schema_name: str
    base_table: str
    dependent_table: Optional[str]
    timestamp_column: str
    timestamp_representation: str
    months_to_keep: int
    months_ahead: int


class PartitionResponse(BaseModel):
    """A table found under the partition name prefix."""

    name: str
    month: Optional[str]
    malformed: bool


class EnsureRangeRequest(BaseModel):
    """Request model for creating partitions over a month range."""

    start_year: int = Field(ge=1, le=9999)
    start_month: int = Field(ge=1, le=12)
    end_year: int = Field(ge=1, le=9999)
    end_month: int = Field(ge=1, le=12)


class EnsureRangeResult(BaseModel):
    """Result of a partition range request."""

    target: str
    created: List[str]
    existing: List[str]
    created_count: int


class PurgeRequest(BaseModel):
    """Request model for running a purge."""

    months_to_keep: Optional[int] = Field(default=None, ge=0)
    dry_run: bool = True


def get_targets() -> List[LifecycleTarget]:
    """Dependency returning the configured tables."""
    return settings.targets


def _find_target(base_table: str, targets: List[LifecycleTarget]) -> LifecycleTarget:
    for target in targets:
        if target.base_table == base_table:
            return target
    raise HTTPException(status_code=404, detail="Table is not managed")


@router.get("/targets", response_model=List[TargetResponse])
async def list_targets(
    targets: Annotated[List[LifecycleTarget], Depends(get_targets)],
    _admin: Annotated[None, Depends(require_admin)],
) -> List[TargetResponse]:
    """List managed tables.

    Admin only.
    """
    return [
        TargetResponse(
            schema_name=t.schema_name,
            base_table=t.base_table,
            dependent_table=t.dependent_table,
            timestamp_column=t.timestamp_column,
            timestamp_representation=t.timestamp_representation.value,
            months_to_keep=t.months_to_keep,
            months_ahead=t.months_ahead,
        )
        for t in targets
    ]


@router.get("/partitions/{base_table}", response_model=List[PartitionResponse])
async def list_partitions(
    base_table: str,
    store: Annotated[PartitionStore, Depends(get_partition_store)],
    targets: Annotated[List[LifecycleTarget], Depends(get_targets)],
    _admin: Annotated[None, Depends(require_admin)],
) -> List[PartitionResponse]:
    """List the partitions of a managed table.

    Tables that share the name prefix but do not follow the naming convention
    are included with ``malformed`` set. Admin only.
    """
    target = _find_target(base_table, targets)
    partitions = []
    async for name in PartitionCatalog(store, target):
        try:
            year, month = partition_namer.parse(target.base_table, name)
        except MalformedPartitionName:
            partitions.append(PartitionResponse(name=name, month=None, malformed=True))
            continue
        partitions.append(
            PartitionResponse(
                name=name,
                month=time_codec.month_start(year, month).isoformat(),
                malformed=False,
            )
        )
    return partitions


@router.post("/partitions/{base_table}/ensure", response_model=EnsureRangeResult)
async def ensure_partitions(
    base_table: str,
    request: EnsureRangeRequest,
    store: Annotated[PartitionStore, Depends(get_partition_store)],
    targets: Annotated[List[LifecycleTarget], Depends(get_targets)],
    _admin: Annotated[None, Depends(require_admin)],
) -> EnsureRangeResult:
    """Create any missing partitions for a month range (inclusive).

    Admin only.
    """
    target = _find_target(base_table, targets)
    summary = await PartitionExtender(store).ensure_range(
        target,
        request.start_year,
        request.start_month,
        request.end_year,
        request.end_month,
    )
    record_extend(summary)
    return EnsureRangeResult(**summary.to_dict())


@router.post("/retention/{base_table}/purge")
async def run_purge(
    base_table: str,
    request: PurgeRequest,
    store: Annotated[PartitionStore, Depends(get_partition_store)],
    targets: Annotated[List[LifecycleTarget], Depends(get_targets)],
    _admin: Annotated[None, Depends(require_admin)],
) -> dict:
    """Run the retention purge for a managed table.

    Set dry_run=False to actually delete data.
    Admin only.
    """
    target = _find_target(base_table, targets)
    summary = await DependencyAwarePurger(store).purge(
        target,
        months_to_keep=request.months_to_keep,
        dry_run=request.dry_run,
    )
    return summary.to_dict()
