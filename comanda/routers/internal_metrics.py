from __future__ import annotations

from fastapi import APIRouter

from comanda.core.metrics import pipeline_metrics, request_metrics

router = APIRouter(prefix="/internal/metrics", tags=["internal-metrics"])


@router.get("/pipeline")
def pipeline_metrics_snapshot():
    return {
        "outcomes": pipeline_metrics.snapshot(),
        "restaurants": pipeline_metrics.snapshot_per_restaurant(),
        "requests": request_metrics.snapshot(),
    }
