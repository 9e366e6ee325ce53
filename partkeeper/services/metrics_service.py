"""Prometheus metrics for partition lifecycle runs."""

import os

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    REGISTRY,
    CollectorRegistry,
    Counter,
    Histogram,
    Info,
    generate_latest,
    multiprocess,
)

from partkeeper import __version__
from partkeeper.models.summary import ExtendSummary, PurgeSummary


# Check if we're in multiprocess mode
def _is_multiprocess() -> bool:
    return "prometheus_multiproc_dir" in os.environ


# Use default registry or multiprocess registry
if _is_multiprocess():
    registry = CollectorRegistry()
    multiprocess.MultiProcessCollector(registry)  # type: ignore[no-untyped-call]
else:
    registry = REGISTRY


APP_INFO = Info(
    "partkeeper",
    "PartKeeper application information",
    registry=registry if _is_multiprocess() else REGISTRY,
)
APP_INFO.info({
    "version": __version__,
    "name": "PartKeeper",
})

PARTITIONS_CREATED_TOTAL = Counter(
    "partkeeper_partitions_created_total",
    "Partitions created ahead of data",
    ["table"],
    registry=registry if _is_multiprocess() else REGISTRY,
)

PARTITIONS_DROPPED_TOTAL = Counter(
    "partkeeper_partitions_dropped_total",
    "Partitions dropped by retention",
    ["table"],
    registry=registry if _is_multiprocess() else REGISTRY,
)

PARTITIONS_SKIPPED_TOTAL = Counter(
    "partkeeper_partitions_skipped_total",
    "Partitions skipped during purge",
    ["table", "reason"],
    registry=registry if _is_multiprocess() else REGISTRY,
)

PARTITIONS_FAILED_TOTAL = Counter(
    "partkeeper_partitions_failed_total",
    "Partitions whose retirement failed",
    ["table"],
    registry=registry if _is_multiprocess() else REGISTRY,
)

ROWS_DELETED_TOTAL = Counter(
    "partkeeper_rows_deleted_total",
    "Rows deleted by retention",
    ["table", "phase"],
    registry=registry if _is_multiprocess() else REGISTRY,
)

PURGE_RUNS_TOTAL = Counter(
    "partkeeper_purge_runs_total",
    "Purge runs by outcome",
    ["table", "status"],
    registry=registry if _is_multiprocess() else REGISTRY,
)

PURGE_DURATION_SECONDS = Histogram(
    "partkeeper_purge_duration_seconds",
    "Purge run duration in seconds",
    ["table"],
    buckets=[0.1, 0.5, 1.0, 5.0, 15.0, 60.0, 300.0, 900.0, 3600.0],
    registry=registry if _is_multiprocess() else REGISTRY,
)


def get_metrics() -> bytes:
    """Generate metrics in Prometheus format."""
    if _is_multiprocess():
        return generate_latest(registry)
    return generate_latest(REGISTRY)


def get_metrics_content_type() -> str:
    """Get the content type for metrics response."""
    return CONTENT_TYPE_LATEST


def record_extend(summary: ExtendSummary) -> None:
    """Record the partitions created by an extend run."""
    if summary.created:
        PARTITIONS_CREATED_TOTAL.labels(table=summary.target).inc(len(summary.created))


def record_purge(summary: PurgeSummary) -> None:
    """Record the outcome of a purge run. Dry runs only count the run itself."""
    table = summary.target
    PURGE_RUNS_TOTAL.labels(table=table, status=summary.status.value).inc()
    PURGE_DURATION_SECONDS.labels(table=table).observe(summary.duration_seconds)
    if summary.dry_run:
        return

    if summary.dropped:
        PARTITIONS_DROPPED_TOTAL.labels(table=table).inc(len(summary.dropped))
    if summary.failed:
        PARTITIONS_FAILED_TOTAL.labels(table=table).inc(len(summary.failed))
    for skipped in summary.skipped:
        PARTITIONS_SKIPPED_TOTAL.labels(table=table, reason=skipped.reason).inc()
    for phase, count in summary.rows_deleted.items():
        if count:
            ROWS_DELETED_TOTAL.labels(table=table, phase=phase).inc(count)
