"""Prometheus scrape endpoint."""

from fastapi import APIRouter
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from proof_rewards.core.auth import RequireMetricsToken

router = APIRouter(tags=["Monitoring"])


@router.get("/metrics")
async def get_metrics(_auth: RequireMetricsToken) -> Response:
    """Expose the rewards_* counters, histograms and observer gauge."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
