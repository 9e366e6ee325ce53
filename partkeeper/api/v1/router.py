"""Main API router aggregating all v1 endpoints."""

from fastapi import APIRouter

from partkeeper.api.v1 import metrics, partitions

api_router = APIRouter()

# Partition and retention maintenance endpoints
api_router.include_router(partitions.router, tags=["Maintenance"])

# Prometheus metrics endpoint
api_router.include_router(metrics.router)
