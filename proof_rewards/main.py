"""Proof Rewards Service.

Verifies e-commerce loyalty-balance proofs and pays the extracted reward
out as an SPL token transfer, notifying connected observers of outcomes.
"""

import uuid
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.sdk.resources import SERVICE_NAME, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from proof_rewards.api.routes.health import root_router
from proof_rewards.api.routes.health import router as health_router
from proof_rewards.api.routes.monitoring import router as monitoring_router
from proof_rewards.api.routes.notifications import router as notifications_router
from proof_rewards.api.routes.proofs import router as proofs_router
from proof_rewards.api.routes.reclaim import router as reclaim_router
from proof_rewards.api.routes.transfers import router as transfers_router
from proof_rewards.clients.reclaim_client import ProofRequestClient
from proof_rewards.clients.verifier_client import ProofVerifier
from proof_rewards.core.config import (
    AppEnvironment,
    Settings,
    get_settings,
    missing_required_settings,
)
from proof_rewards.core.errors import RewardsError, get_status_code
from proof_rewards.core.logging import bind_request_context, clear_request_context, setup_logging
from proof_rewards.notifications.registry import ConnectionRegistry
from proof_rewards.services.reward_service import RewardService
from proof_rewards.transfers.engine import RewardTransferEngine
from proof_rewards.utils.idempotency import ProofDeduplicator

logger = structlog.get_logger(__name__)

API_V1_PREFIX = "/api/v1"


def _request_log_context(request: Request) -> dict[str, str]:
    return {
        "path": request.url.path,
        "method": request.method,
        "client_host": request.client.host if request.client else "",
    }


def build_reward_service(
    settings: Settings, engine: RewardTransferEngine, registry: ConnectionRegistry
) -> RewardService:
    deduplicator = (
        ProofDeduplicator(settings.idempotency.window_seconds)
        if settings.idempotency.enabled
        else None
    )
    return RewardService(
        verifier=ProofVerifier(timeout_s=settings.reclaim.verify_timeout_s),
        transfer_engine=engine,
        broadcaster=registry,
        deduplicator=deduplicator,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan context manager."""
    settings = get_settings()
    setup_logging()

    missing = missing_required_settings(settings)
    if missing:
        for name in missing:
            logger.error("Required environment variable is not set", variable=name)
        raise RuntimeError(f"Required environment variables are not set: {', '.join(missing)}")

    engine = RewardTransferEngine.from_config(settings.solana)
    registry: ConnectionRegistry = app.state.connection_registry

    app.state.settings = settings
    app.state.transfer_engine = engine
    app.state.reward_service = build_reward_service(settings, engine, registry)
    app.state.proof_request_client = ProofRequestClient(settings.reclaim)

    logger.info(
        "Starting Proof Rewards Service",
        env=settings.app.env.value,
        version=settings.app.version,
        wallet=str(engine.sender),
        mint=str(engine.mint),
        rpc_url=settings.solana.rpc_url,
    )

    yield

    await registry.drain()
    await engine.close()

    logger.info("Proof Rewards Service stopped")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Proof Rewards Service",
        description="Pays SPL token rewards for verified e-commerce loyalty-balance proofs.",
        version=settings.app.version,
        lifespan=lifespan,
        docs_url="/docs" if settings.app.env != AppEnvironment.PROD else None,
        redoc_url="/redoc" if settings.app.env != AppEnvironment.PROD else None,
        openapi_url="/openapi.json" if settings.app.env != AppEnvironment.PROD else None,
    )
    app.state.connection_registry = ConnectionRegistry()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.security.cors_allowed_origins,
        allow_methods=settings.security.cors_allow_methods,
        allow_headers=settings.security.cors_allow_headers,
    )

    app.include_router(root_router)
    app.include_router(proofs_router)
    app.include_router(transfers_router)
    app.include_router(reclaim_router)
    app.include_router(notifications_router)
    app.include_router(health_router, prefix=API_V1_PREFIX)
    app.include_router(monitoring_router, prefix=API_V1_PREFIX)

    setup_telemetry(app, settings)

    @app.middleware("http")
    async def payload_size_guard(request: Request, call_next):
        max_request = settings.security.max_request_size_bytes
        content_length = request.headers.get("content-length")
        if content_length:
            try:
                too_large = int(content_length) > max_request
            except ValueError:
                logger.warning(
                    "Invalid Content-Length header",
                    **_request_log_context(request),
                    content_length=content_length,
                )
                too_large = False
            if too_large:
                logger.warning(
                    "Request payload exceeds configured size limit",
                    **_request_log_context(request),
                    content_length=content_length,
                    max_request_size_bytes=max_request,
                )
                return JSONResponse(
                    status_code=413,
                    content={"success": False, "error": "Request payload too large"},
                )
        return await call_next(request)

    @app.middleware("http")
    async def request_id_middleware(request: Request, call_next):
        """Bind X-Request-ID (or a fresh UUID) to every log line of the request."""
        request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        bind_request_context(request_id)
        request.state.request_id = request_id
        try:
            response = await call_next(request)
        finally:
            clear_request_context()
        response.headers["X-Request-ID"] = request_id
        return response

    @app.middleware("http")
    async def security_headers_middleware(request: Request, call_next):
        response = await call_next(request)
        response.headers.setdefault("X-Content-Type-Options", "nosniff")
        response.headers.setdefault("X-Frame-Options", "DENY")
        return response

    @app.exception_handler(RewardsError)
    async def domain_error_handler(request: Request, exc: RewardsError) -> JSONResponse:
        """Render domain errors as ``{success, error, code}``."""
        status_code = get_status_code(exc)
        logger.warning(
            "Domain exception",
            **_request_log_context(request),
            status_code=status_code,
            error=exc.message,
            code=exc.code,
            error_details=exc.details or {},
        )
        return JSONResponse(
            status_code=status_code,
            content={"success": False, "error": exc.message, "code": exc.code},
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Handle unexpected exceptions."""
        logger.exception(
            "Unhandled exception",
            **_request_log_context(request),
            error=str(exc),
        )
        return JSONResponse(
            status_code=500,
            content={"success": False, "error": "Internal server error"},
        )

    return app


def setup_telemetry(app: FastAPI, settings: Settings) -> None:
    """Setup OpenTelemetry instrumentation."""
    if not settings.observability.otlp_endpoint:
        return

    resource = Resource(attributes={SERVICE_NAME: settings.observability.service_name})
    provider = TracerProvider(resource=resource)
    exporter = OTLPSpanExporter(
        endpoint=settings.observability.otlp_endpoint,
        insecure=settings.observability.otlp_insecure,
    )
    provider.add_span_processor(BatchSpanProcessor(exporter))
    trace.set_tracer_provider(provider)

    FastAPIInstrumentor.instrument_app(app)


def run() -> None:
    """Run the application using uvicorn."""
    import uvicorn

    settings = get_settings()

    uvicorn.run(
        "proof_rewards.main:create_app",
        factory=True,
        host=settings.server.host,
        port=settings.server.port,
        reload=settings.app.env == AppEnvironment.LOCAL,
        workers=1 if settings.app.env == AppEnvironment.LOCAL else settings.server.workers,
        log_level=settings.app.log_level.value.lower(),
    )


if __name__ == "__main__":
    run()
