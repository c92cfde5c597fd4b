"""Static-token guards for the trusted transfer route and the metrics scrape."""

import hmac
from typing import Annotated

import structlog
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from proof_rewards.core.config import get_settings
from proof_rewards.core.errors import ForbiddenError, RewardsError, UnauthorizedError

logger = structlog.get_logger(__name__)

METRICS_TOKEN_HEADER = "X-Metrics-Token"

_optional_security = HTTPBearer(auto_error=False)


def _client_ip(request: Request) -> str:
    return request.client.host if request.client else "unknown"


def _token_matches(provided: str | None, expected: str) -> bool:
    return hmac.compare_digest((provided or "").encode(), expected.encode())


async def require_transfer_token(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(_optional_security),
) -> str:
    """Admit callers presenting ``SECURITY_TRANSFER_API_TOKEN``.

    With no token configured the direct transfer route is closed to everyone.
    """
    expected_token = get_settings().security.transfer_api_token.get_secret_value()

    if not expected_token:
        logger.error(
            "Direct transfer attempted but SECURITY_TRANSFER_API_TOKEN not configured",
            security_event=True,
            client_ip=_client_ip(request),
        )
        raise ForbiddenError("Direct transfers are disabled")

    if credentials is None:
        raise UnauthorizedError("Missing authorization header")

    if not _token_matches(credentials.credentials, expected_token):
        logger.warning(
            "Unauthorized direct transfer attempt",
            security_event=True,
            client_ip=_client_ip(request),
        )
        raise ForbiddenError("Invalid transfer token")

    return "transfer-api"


async def require_metrics_token(request: Request) -> str:
    """Admit scrapers presenting ``METRICS_TOKEN`` in ``X-Metrics-Token``."""
    expected_token = get_settings().metrics_token
    if not expected_token:
        logger.error(
            "Metrics scraped but METRICS_TOKEN not configured",
            security_event=True,
            client_ip=_client_ip(request),
        )
        raise RewardsError("Metrics token not configured")

    if not _token_matches(request.headers.get(METRICS_TOKEN_HEADER), expected_token):
        logger.warning(
            "Unauthorized metrics access attempt",
            security_event=True,
            client_ip=_client_ip(request),
        )
        raise ForbiddenError("Invalid metrics token")

    return "metrics"


RequireTransferToken = Annotated[str, Depends(require_transfer_token)]
RequireMetricsToken = Annotated[str, Depends(require_metrics_token)]
