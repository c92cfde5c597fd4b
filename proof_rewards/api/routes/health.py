"""Health check routes."""

import logging

from fastapi import APIRouter, Request

from proof_rewards.core.dependencies import ConnectionRegistryDep
from proof_rewards.schemas.v1.health import HealthResponse, ReadyResponse, RootResponse

router = APIRouter(tags=["health"])
root_router = APIRouter(tags=["health"])
logger = logging.getLogger(__name__)


@root_router.get("/", response_model=RootResponse)
async def root():
    return RootResponse(message="Solana Rewards API is running")


@router.get("/health", response_model=HealthResponse)
async def health_check():
    """Basic health check."""
    return HealthResponse(status="ok")


@router.get("/health/live", response_model=HealthResponse)
async def liveness_check():
    """Liveness check."""
    return HealthResponse(status="alive")


@router.get("/health/ready", response_model=ReadyResponse)
async def readiness_check(request: Request, registry: ConnectionRegistryDep):
    """Readiness check: ledger RPC reachable and sender wallet loaded."""
    engine = getattr(request.app.state, "transfer_engine", None)

    rpc_ok = False
    if engine is not None:
        rpc_ok = await engine.is_healthy()
    else:
        logger.warning("Transfer engine not available on app.state for readiness check")

    dependencies = {"solana_rpc": rpc_ok, "wallet": engine is not None}
    return ReadyResponse(
        status="ready" if all(dependencies.values()) else "degraded",
        dependencies=dependencies,
        observers=len(registry),
    )
