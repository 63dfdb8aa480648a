# =============================================
# File: companion/routers/metrics.py
# Purpose: Expose internal metrics and per-family cache stats as JSON
# =============================================
from __future__ import annotations
from fastapi import APIRouter, Depends

from companion.services.container import Services, get_services
from companion.utils.metrics import snapshot

router = APIRouter(tags=["metrics"])

@router.get("/metrics")
def get_metrics(services: Services = Depends(get_services)):
    """Return in-process metrics (JSON)."""
    body = snapshot()
    body["caches"] = services.registry.stats()
    return body

@router.post("/metrics/cache/maintain")
def run_cache_maintenance(services: Services = Depends(get_services)):
    """Run the expiry/size sweep now instead of waiting for the background loop."""
    return {"removed": services.registry.maintain()}
