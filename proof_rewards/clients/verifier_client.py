"""Adapter over the external proof verification capability."""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Awaitable, Callable
from typing import Any

import structlog

from proof_rewards.core.errors import VerificationFailedError, VerificationTimeoutError
from proof_rewards.core.metrics import rewards_dependency_failures_total

logger = structlog.get_logger(__name__)

VerifyFn = Callable[[dict[str, Any]], Awaitable[bool] | bool]


async def reclaim_verify_proof(proof: dict[str, Any]) -> bool:
    """Verify signatures and claim integrity with the Reclaim SDK.

    The SDK checks a ``Proof`` object, built here from the whole envelope.
    """
    from reclaim_python_sdk import Proof, verify_proof

    result = verify_proof(Proof.from_json(proof))
    if inspect.isawaitable(result):
        result = await result
    return bool(result)


class ProofVerifier:
    """Returns the authenticity verdict for a full, unaltered proof envelope.

    A ``False`` verdict is returned as-is. Errors raised by the capability are
    wrapped in ``VerificationFailedError`` carrying the original message.
    """

    def __init__(self, verify_fn: VerifyFn | None = None, timeout_s: float = 30.0):
        self._verify_fn = verify_fn or reclaim_verify_proof
        self.timeout_s = timeout_s

    async def _call(self, proof: dict[str, Any]) -> bool:
        result = self._verify_fn(proof)
        if inspect.isawaitable(result):
            result = await result
        return bool(result)

    async def verify(self, proof: dict[str, Any]) -> bool:
        try:
            return await asyncio.wait_for(self._call(proof), timeout=self.timeout_s)
        except TimeoutError as e:
            rewards_dependency_failures_total.labels(dependency="verifier").inc()
            logger.warning("Proof verification timed out", timeout_s=self.timeout_s)
            raise VerificationTimeoutError(
                f"Proof verification timed out after {self.timeout_s:g}s"
            ) from e
        except VerificationFailedError:
            raise
        except Exception as e:
            rewards_dependency_failures_total.labels(dependency="verifier").inc()
            logger.exception("Proof verification raised", error=str(e))
            raise VerificationFailedError(str(e) or type(e).__name__) from e
