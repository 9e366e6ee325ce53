"""Prometheus metrics endpoint."""

from fastapi import APIRouter, Response
from fastapi.responses import PlainTextResponse

from partkeeper.services.metrics_service import get_metrics, get_metrics_content_type

router = APIRouter(prefix="/metrics", tags=["metrics"])


@router.get("", response_class=PlainTextResponse)
async def metrics() -> Response:
    """
    Expose Prometheus metrics.

    Metrics include partitions created, dropped, skipped and failed, rows
    deleted per purge phase, and purge run durations.
    """
    metrics_data = get_metrics()
    return Response(
        content=metrics_data,
        media_type=get_metrics_content_type(),
    )
