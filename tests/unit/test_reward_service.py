"""Unit tests for the proof-to-payout pipeline."""

import json

import pytest
from conftest import (
    RECIPIENT,
    FakeTransferEngine,
    FakeVerifier,
    RecordingBroadcaster,
    build_proof,
    encode_proof,
)

from proof_rewards.core.errors import (
    AccountCreationError,
    ConfirmationTimeoutError,
    DecodeError,
    DuplicateProofError,
    InvalidAddressError,
    InvalidAmountError,
    MalformedProofError,
    MissingFieldError,
    RewardsError,
    TransferExecutionError,
    TransferOutcomeUnknownError,
    UnsupportedPlatformError,
    VerificationFailedError,
)
from proof_rewards.schemas.v1.common import NotificationType, Platform
from proof_rewards.schemas.v1.proofs import TransferTokensRequest
from proof_rewards.services.reward_service import RewardService
from proof_rewards.utils.idempotency import ProofDeduplicator


def _service(verifier, engine, broadcaster, deduplicator=None) -> RewardService:
    return RewardService(verifier, engine, broadcaster, deduplicator=deduplicator)


# --- happy paths ---


@pytest.mark.asyncio
async def test_amazon_proof_pays_out(fake_verifier, fake_engine, broadcaster):
    proof = build_proof("https://www.amazon.in/apay", {"balance": "₹250"}, address="ADDR1")
    service = _service(fake_verifier, fake_engine, broadcaster)

    response = await service.process_proof(encode_proof(proof))

    assert fake_engine.calls == [("250", "ADDR1")]
    assert response.success is True
    assert response.message == "Reward processed successfully"
    assert response.transaction.amount == "250"
    assert fake_verifier.calls == [proof]

    [message] = broadcaster.messages
    assert message.type is NotificationType.AGENT
    assert "Reward of 250 tokens" in message.content
    assert "wallet ADDR1" in message.content
    assert response.transaction.transaction_url in message.content


@pytest.mark.asyncio
async def test_flipkart_proof_pays_out(fake_verifier, fake_engine, broadcaster, flipkart_proof):
    service = _service(fake_verifier, fake_engine, broadcaster)

    response = await service.process_proof(encode_proof(flipkart_proof).encode())

    assert fake_engine.calls == [("500", RECIPIENT)]
    assert response.transaction.signature == "sig1"


@pytest.mark.asyncio
async def test_amazon_html_entity_balance(fake_verifier, fake_engine, broadcaster, amazon_proof):
    await _service(fake_verifier, fake_engine, broadcaster).process_proof(
        encode_proof(amazon_proof)
    )
    assert fake_engine.calls == [("1000", RECIPIENT)]


# --- early termination ---


@pytest.mark.asyncio
async def test_undecodable_body_halts_before_verification(fake_verifier, fake_engine, broadcaster):
    service = _service(fake_verifier, fake_engine, broadcaster)
    with pytest.raises(DecodeError):
        await service.process_proof("%7Bnot json")
    assert fake_verifier.calls == []
    assert fake_engine.calls == []
    assert broadcaster.messages == []


@pytest.mark.asyncio
async def test_unsupported_platform_never_transfers(fake_verifier, fake_engine, broadcaster):
    proof = build_proof("https://www.myntra.com/insider", {"text": "100"})
    service = _service(fake_verifier, fake_engine, broadcaster)

    with pytest.raises(UnsupportedPlatformError) as exc_info:
        await service.process_proof(encode_proof(proof))

    assert exc_info.value.status_code == 400
    assert fake_verifier.calls == []
    assert fake_engine.calls == []
    assert all(m.type is not NotificationType.AGENT for m in broadcaster.messages)


@pytest.mark.asyncio
async def test_malformed_parameters_rejected(fake_verifier, fake_engine, broadcaster, amazon_proof):
    amazon_proof["claimData"]["parameters"] = "not json"
    with pytest.raises(MalformedProofError):
        await _service(fake_verifier, fake_engine, broadcaster).process_proof(
            encode_proof(amazon_proof)
        )
    assert fake_engine.calls == []


@pytest.mark.asyncio
async def test_false_verdict_never_transfers(fake_engine, broadcaster, amazon_proof):
    service = _service(FakeVerifier(result=False), fake_engine, broadcaster)

    with pytest.raises(VerificationFailedError, match="Invalid proof") as exc_info:
        await service.process_proof(encode_proof(amazon_proof))

    assert exc_info.value.status_code == 500
    assert fake_engine.calls == []
    [message] = broadcaster.messages
    assert message.type is NotificationType.ERROR
    assert message.content == "Error processing reward: Invalid proof"


@pytest.mark.asyncio
async def test_verifier_error_is_broadcast(fake_engine, broadcaster, amazon_proof):
    verifier = FakeVerifier(error=VerificationFailedError("claim identifier mismatch"))
    service = _service(verifier, fake_engine, broadcaster)

    with pytest.raises(VerificationFailedError):
        await service.process_proof(encode_proof(amazon_proof))

    assert fake_engine.calls == []
    assert "claim identifier mismatch" in broadcaster.messages[0].content


@pytest.mark.asyncio
async def test_unexpected_verifier_exception_is_wrapped(fake_engine, broadcaster, amazon_proof):
    service = _service(FakeVerifier(error=RuntimeError("sdk exploded")), fake_engine, broadcaster)

    with pytest.raises(RewardsError, match="sdk exploded") as exc_info:
        await service.process_proof(encode_proof(amazon_proof))

    assert exc_info.value.status_code == 500
    assert fake_engine.calls == []
    assert broadcaster.messages[0].type is NotificationType.ERROR
    assert "sdk exploded" in broadcaster.messages[0].content


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("extracted", "address"),
    [({}, RECIPIENT), ({"balance": "&#x20b9;10"}, None), ({"balance": "&#x20b9;"}, RECIPIENT)],
)
async def test_missing_fields_short_circuit(
    fake_verifier, fake_engine, broadcaster, extracted, address
):
    proof = build_proof("https://amazon.in/pay", extracted, address=address)
    service = _service(fake_verifier, fake_engine, broadcaster)

    with pytest.raises(MissingFieldError) as exc_info:
        await service.process_proof(encode_proof(proof))

    assert exc_info.value.status_code == 400
    assert fake_engine.calls == []
    assert broadcaster.messages == []


@pytest.mark.asyncio
@pytest.mark.parametrize("amount", ["abc", "-5", "0.0000000004", "0", "20000000000"])
async def test_unpayable_amount_rejected(fake_verifier, fake_engine, broadcaster, amount):
    proof = build_proof("https://flipkart.com/coins", {"text": amount})
    with pytest.raises(InvalidAmountError):
        await _service(fake_verifier, fake_engine, broadcaster).process_proof(
            encode_proof(proof)
        )
    assert fake_engine.calls == []


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "error",
    [
        InvalidAddressError("Invalid recipient address: 'ADDR1'"),
        AccountCreationError("Failed to create token account"),
        TransferExecutionError("Transaction simulation failed"),
    ],
)
async def test_transfer_failure_is_broadcast(fake_verifier, broadcaster, amazon_proof, error):
    engine = FakeTransferEngine(error=error)
    service = _service(fake_verifier, engine, broadcaster)

    with pytest.raises(type(error)) as exc_info:
        await service.process_proof(encode_proof(amazon_proof))

    assert exc_info.value.status_code == 500
    assert len(engine.calls) == 1
    [message] = broadcaster.messages
    assert message.type is NotificationType.ERROR
    assert error.message in message.content


@pytest.mark.asyncio
async def test_unexpected_transfer_exception_becomes_execution_error(
    fake_verifier, broadcaster, amazon_proof
):
    engine = FakeTransferEngine(error=ConnectionResetError("rpc reset"))
    with pytest.raises(TransferExecutionError, match="rpc reset"):
        await _service(fake_verifier, engine, broadcaster).process_proof(
            encode_proof(amazon_proof)
        )


@pytest.mark.asyncio
async def test_broadcaster_failure_does_not_fail_request(fake_verifier, fake_engine, amazon_proof):
    class ExplodingBroadcaster:
        def publish(self, message):
            raise RuntimeError("no running loop")

    service = _service(fake_verifier, fake_engine, ExplodingBroadcaster())
    response = await service.process_proof(encode_proof(amazon_proof))
    assert response.success is True


# --- duplicate suppression ---


@pytest.mark.asyncio
async def test_duplicate_proof_rejected(fake_verifier, fake_engine, broadcaster, amazon_proof):
    service = _service(fake_verifier, fake_engine, broadcaster, ProofDeduplicator(60))
    body = encode_proof(amazon_proof)

    await service.process_proof(body)
    with pytest.raises(DuplicateProofError):
        await service.process_proof(body)

    assert len(fake_engine.calls) == 1
    assert len(broadcaster.messages) == 1


@pytest.mark.asyncio
async def test_failed_transfer_releases_proof(fake_verifier, broadcaster, amazon_proof):
    engine = FakeTransferEngine(error=TransferExecutionError("blockhash expired"))
    service = _service(fake_verifier, engine, broadcaster, ProofDeduplicator(60))
    body = encode_proof(amazon_proof)

    with pytest.raises(TransferExecutionError):
        await service.process_proof(body)
    engine.error = None
    response = await service.process_proof(body)

    assert response.success is True
    assert len(engine.calls) == 2


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "error",
    [
        ConfirmationTimeoutError("not confirmed within 60s", details={"signature": "sig1"}),
        TransferOutcomeUnknownError("confirmation failed", details={"signature": "sig1"}),
    ],
)
async def test_unconfirmed_transfer_keeps_proof_reserved(
    fake_verifier, broadcaster, amazon_proof, error
):
    engine = FakeTransferEngine(error=error)
    service = _service(fake_verifier, engine, broadcaster, ProofDeduplicator(60))
    body = encode_proof(amazon_proof)

    with pytest.raises(TransferOutcomeUnknownError):
        await service.process_proof(body)
    engine.error = None
    with pytest.raises(DuplicateProofError):
        await service.process_proof(body)

    assert engine.calls == [("1000", RECIPIENT)]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "error",
    [
        InvalidAddressError("Invalid recipient address"),
        AccountCreationError("Failed to create token account"),
        TransferExecutionError("Transaction failed: InsufficientFunds"),
    ],
)
async def test_settled_transfer_failure_releases_proof(
    fake_verifier, broadcaster, amazon_proof, error
):
    engine = FakeTransferEngine(error=error)
    service = _service(fake_verifier, engine, broadcaster, ProofDeduplicator(60))
    body = encode_proof(amazon_proof)

    with pytest.raises(type(error)):
        await service.process_proof(body)
    engine.error = None
    await service.process_proof(body)

    assert len(engine.calls) == 2


@pytest.mark.asyncio
async def test_without_deduplicator_same_proof_pays_twice(
    fake_verifier, fake_engine, broadcaster, amazon_proof
):
    service = _service(fake_verifier, fake_engine, broadcaster)
    body = encode_proof(amazon_proof)
    await service.process_proof(body)
    await service.process_proof(body)
    assert len(fake_engine.calls) == 2


# --- trusted direct transfers ---


@pytest.mark.asyncio
async def test_transfer_direct_skips_verification(fake_verifier, fake_engine, broadcaster):
    service = _service(fake_verifier, fake_engine, broadcaster)
    request = TransferTokensRequest(
        amount=" 42 ", address=RECIPIENT, platform=Platform.FLIPKART, proof={"any": "thing"}
    )

    response = await service.transfer_direct(request)

    assert fake_verifier.calls == []
    assert fake_engine.calls == [("42", RECIPIENT)]
    assert response.transaction.amount == "42"
    assert broadcaster.messages[0].type is NotificationType.AGENT


@pytest.mark.asyncio
async def test_transfer_direct_failure_is_broadcast(fake_verifier, broadcaster):
    engine = FakeTransferEngine(error=TransferExecutionError("insufficient funds"))
    service = _service(fake_verifier, engine, broadcaster)

    with pytest.raises(TransferExecutionError):
        await service.transfer_direct(TransferTokensRequest(amount="1", address=RECIPIENT))

    assert "insufficient funds" in broadcaster.messages[0].content


@pytest.mark.asyncio
async def test_transfer_direct_rejects_zero(fake_verifier, fake_engine, broadcaster):
    with pytest.raises(InvalidAmountError):
        await _service(fake_verifier, fake_engine, broadcaster).transfer_direct(
            TransferTokensRequest(amount="0", address=RECIPIENT)
        )
    assert fake_engine.calls == []


def test_notification_payload_shape():
    from proof_rewards.services.reward_service import failure_notification

    payload = json.loads(failure_notification(ValueError("boom")).model_dump_json())
    assert payload == {"type": "error", "content": "Error processing reward: boom"}
