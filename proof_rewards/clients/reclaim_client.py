"""Proof-issuance passthrough: mints proof request URLs for a platform."""

from __future__ import annotations

import inspect
import json
from typing import Any

import structlog

from proof_rewards.core.config import ReclaimConfig
from proof_rewards.core.errors import ProofRequestError, UnsupportedPlatformError
from proof_rewards.core.metrics import rewards_dependency_failures_total
from proof_rewards.schemas.v1.common import Platform
from proof_rewards.schemas.v1.proofs import GenerateConfigResponse

logger = structlog.get_logger(__name__)


async def _maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


def _session_id(request: Any) -> str | None:
    """Read the session id from the request's serialized form."""
    try:
        data = json.loads(request.to_json_string())
    except Exception:
        logger.warning("Could not serialize proof request", exc_info=True)
        return None
    session_id = data.get("sessionId") if isinstance(data, dict) else None
    return str(session_id) if session_id else None


class ProofRequestClient:
    """Thin wrapper over ``ReclaimProofRequest``."""

    def __init__(self, config: ReclaimConfig, request_factory: Any = None):
        self.config = config
        self._request_factory = request_factory

    def _factory(self) -> Any:
        if self._request_factory is None:
            from reclaim_python_sdk import ReclaimProofRequest

            self._request_factory = ReclaimProofRequest
        return self._request_factory

    def _provider_id(self, platform: Platform) -> str:
        if platform is Platform.AMAZON:
            return self.config.amazon_provider_id
        if platform is Platform.FLIPKART:
            return self.config.flipkart_provider_id
        raise UnsupportedPlatformError("Unsupported platform")

    @staticmethod
    def _test_data(platform: Platform, user_address: str | None) -> dict[str, str]:
        if platform is Platform.AMAZON:
            return {"balance": "₹1000", "contextMessage": user_address or ""}
        return {"text": "500", "contextMessage": user_address or ""}

    async def generate_config(
        self, platform: Platform, user_address: str | None = None
    ) -> GenerateConfigResponse:
        """Create a signed proof request for ``platform``.

        Raises:
            ProofRequestError: the issuance SDK failed.
        """
        provider_id = self._provider_id(platform)
        options: dict[str, Any] = {}
        if self.config.test_mode:
            options = {"isTestMode": True, "testData": self._test_data(platform, user_address)}

        try:
            request = await _maybe_await(
                self._factory().init(
                    self.config.app_id,
                    self.config.app_secret.get_secret_value(),
                    provider_id,
                    options,
                )
            )
            request.set_redirect_url(self.config.callback_url)
            if user_address:
                request.add_context("address", user_address)

            request_url = await _maybe_await(request.get_request_url())
            status_url = await _maybe_await(request.get_status_url())
        except Exception as e:
            rewards_dependency_failures_total.labels(dependency="proof_request").inc()
            logger.exception(
                "Error generating proof request config", platform=platform.value, error=str(e)
            )
            raise ProofRequestError("Failed to generate configuration") from e

        session_id = _session_id(request)
        logger.info("Generated proof request config", platform=platform.value)
        return GenerateConfigResponse(
            request_url=str(request_url),
            status_url=str(status_url),
            session_id=session_id,
        )
