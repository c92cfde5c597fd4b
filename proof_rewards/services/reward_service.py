"""Proof-to-payout pipeline.

Stages run strictly in order and any of them can end the request:

    decode -> classify -> verify -> extract/validate -> transfer -> notify

Verification always runs on the unaltered envelope before anything extracted
from it is trusted, and the transfer is attempted at most once per request.
Outcomes are handed to the broadcaster without waiting for delivery.
"""

from __future__ import annotations

import time
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any, Protocol

import structlog

from proof_rewards.core.errors import (
    RewardsError,
    TransferError,
    TransferExecutionError,
    TransferOutcomeUnknownError,
    VerificationFailedError,
)
from proof_rewards.core.metrics import (
    rewards_pipeline_latency_seconds,
    rewards_pipeline_stage_latency_seconds,
    rewards_proof_submissions_total,
    rewards_transfers_total,
)
from proof_rewards.proofs import parser
from proof_rewards.schemas.v1.common import NotificationType, Platform
from proof_rewards.schemas.v1.proofs import (
    ExtractedReward,
    NotificationMessage,
    ReceiveProofResponse,
    TransferResult,
    TransferTokensRequest,
)
from proof_rewards.utils.amounts import check_base_units, to_base_units
from proof_rewards.utils.idempotency import ProofDeduplicator, compute_proof_key

logger = structlog.get_logger(__name__)


class Verifier(Protocol):
    async def verify(self, proof: dict[str, Any]) -> bool: ...


class TransferEngine(Protocol):
    async def token_decimals(self) -> int: ...

    async def transfer(self, amount: str, recipient_address: str) -> TransferResult: ...


class Broadcaster(Protocol):
    def publish(self, message: NotificationMessage) -> None: ...


def success_notification(
    reward_amount: str, address: str, result: TransferResult
) -> NotificationMessage:
    return NotificationMessage(
        type=NotificationType.AGENT,
        content=(
            f"Reward of {reward_amount} tokens has been successfully transferred to wallet "
            f"{address}. Transaction URL: {result.transaction_url}"
        ),
    )


def failure_notification(error: Exception) -> NotificationMessage:
    message = getattr(error, "message", None) or str(error)
    return NotificationMessage(
        type=NotificationType.ERROR,
        content=f"Error processing reward: {message}",
    )


@contextmanager
def _stage(name: str) -> Iterator[None]:
    started = time.perf_counter()
    try:
        yield
    finally:
        rewards_pipeline_stage_latency_seconds.labels(stage=name).observe(
            time.perf_counter() - started
        )


class RewardService:
    """Orchestrates proof submissions and trusted direct transfers.

    The two entry points share the transfer engine but not a trust level:
    ``process_proof`` pays only after the verifier accepts the proof, while
    ``transfer_direct`` pays whatever its already-authorised caller asks for.
    """

    def __init__(
        self,
        verifier: Verifier,
        transfer_engine: TransferEngine,
        broadcaster: Broadcaster,
        deduplicator: ProofDeduplicator | None = None,
    ):
        self.verifier = verifier
        self.transfer_engine = transfer_engine
        self.broadcaster = broadcaster
        self.deduplicator = deduplicator

    def _notify(self, message: NotificationMessage) -> None:
        try:
            self.broadcaster.publish(message)
        except Exception:
            logger.exception("Failed to schedule notification", type=message.type.value)

    async def _validate_reward(self, reward: ExtractedReward) -> ExtractedReward:
        parser.require_fields(reward)
        decimals = await self.transfer_engine.token_decimals()
        check_base_units(to_base_units(reward.amount, decimals), reward.amount)
        return reward

    async def _transfer(self, reward: ExtractedReward, entrypoint: str) -> TransferResult:
        try:
            result = await self.transfer_engine.transfer(reward.amount, reward.address)
        except TransferError:
            rewards_transfers_total.labels(entrypoint=entrypoint, status="failed").inc()
            raise
        except RewardsError:
            rewards_transfers_total.labels(entrypoint=entrypoint, status="rejected").inc()
            raise
        except Exception as e:
            rewards_transfers_total.labels(entrypoint=entrypoint, status="failed").inc()
            logger.exception("Transfer failed", error=str(e))
            raise TransferExecutionError(str(e) or type(e).__name__) from e
        rewards_transfers_total.labels(entrypoint=entrypoint, status="success").inc()
        return result

    async def process_proof(self, body: str | bytes) -> ReceiveProofResponse:
        """Run a raw proof submission through the pipeline.

        Raises:
            DecodeError: body is not a URL-escaped JSON envelope.
            UnsupportedPlatformError: request URL matches no known platform.
            VerificationFailedError: verifier rejected the proof or raised.
            MissingFieldError: amount or address missing after extraction.
            InvalidAmountError: amount is not a positive decimal a transfer can carry.
            DuplicateProofError: the proof already paid out within the window.
            TransferError: the transfer engine failed.
        """
        started = time.perf_counter()
        platform = Platform.UNSUPPORTED
        log = logger
        proof_key: str | None = None
        try:
            with _stage("decode"):
                proof = parser.decode_envelope(body)

            with _stage("classify"):
                platform = parser.classify(proof)
            log = logger.bind(platform=platform.value)
            log.info("Processing proof", stage="classified")

            with _stage("verify"):
                is_valid = await self.verifier.verify(proof)
            if not is_valid:
                raise VerificationFailedError("Invalid proof")
            log.info("Proof verified", stage="verified")

            with _stage("extract"):
                reward = await self._validate_reward(parser.extract(proof, platform))
            log.info(
                "Reward extracted",
                stage="extracted",
                amount=reward.amount,
                address=reward.address,
            )

            if self.deduplicator is not None:
                proof_key = compute_proof_key(proof)
                await self.deduplicator.reserve(proof_key)

            with _stage("transfer"):
                try:
                    result = await self._transfer(reward, entrypoint="proof")
                except TransferOutcomeUnknownError as e:
                    # The payout may still land; a resubmission must not pay again.
                    if proof_key is not None:
                        log.warning(
                            "Keeping proof reserved after unconfirmed transfer",
                            signature=(e.details or {}).get("signature"),
                        )
                    raise
                except Exception:
                    if proof_key is not None:
                        await self.deduplicator.release(proof_key)
                    raise
            log.info("Reward transferred", stage="transferred", signature=result.signature)

        except RewardsError as e:
            outcome = "failed" if e.status_code >= 500 else "rejected"
            if e.status_code == 409:
                outcome = "duplicate"
            rewards_proof_submissions_total.labels(platform=platform.value, outcome=outcome).inc()
            if e.status_code >= 500:
                log.error("Error processing proof", error=e.message, code=e.code)
                self._notify(failure_notification(e))
            else:
                log.warning("Proof rejected", error=e.message, code=e.code)
            raise
        except Exception as e:
            rewards_proof_submissions_total.labels(platform=platform.value, outcome="failed").inc()
            log.exception("Unexpected error processing proof", error=str(e))
            self._notify(failure_notification(e))
            raise RewardsError(str(e) or type(e).__name__) from e
        finally:
            rewards_pipeline_latency_seconds.observe(time.perf_counter() - started)

        self._notify(success_notification(reward.amount, reward.address, result))
        rewards_proof_submissions_total.labels(platform=platform.value, outcome="success").inc()
        return ReceiveProofResponse(transaction=result)

    async def transfer_direct(self, request: TransferTokensRequest) -> ReceiveProofResponse:
        """Pay a pre-extracted reward without classification or verification.

        Only reachable by callers that passed the transfer API token check.
        """
        reward = ExtractedReward(
            amount=request.amount.strip(),
            address=request.address.strip(),
            platform=request.platform or Platform.UNSUPPORTED,
        )
        log = logger.bind(entrypoint="direct", platform=reward.platform.value)
        try:
            await self._validate_reward(reward)
            result = await self._transfer(reward, entrypoint="direct")
        except RewardsError as e:
            if e.status_code >= 500:
                log.error("Direct transfer failed", error=e.message, code=e.code)
                self._notify(failure_notification(e))
            else:
                log.warning("Direct transfer rejected", error=e.message, code=e.code)
            raise

        log.info("Direct transfer completed", signature=result.signature)
        self._notify(success_notification(reward.amount, reward.address, result))
        return ReceiveProofResponse(transaction=result)
