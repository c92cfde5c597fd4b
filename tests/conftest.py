"""Root conftest for tests."""

import json
import os
from typing import Any
from urllib.parse import quote

import pytest

if os.getenv("APP_ENV", "").strip().lower() == "prod":
    raise RuntimeError("Refusing to run tests with APP_ENV=prod")

os.environ["APP_ENV"] = "local"
os.environ.setdefault("METRICS_TOKEN", "test-metrics-token")
os.environ.setdefault("SECURITY_TRANSFER_API_TOKEN", "test-transfer-token")

from proof_rewards.schemas.v1.proofs import NotificationMessage, TransferResult  # noqa: E402

RECIPIENT = "9xQeWvG816bUx9EPjHmaT23yvVM2ZWbrrpZb9PusVFin"


def pytest_collection_modifyitems(items: list[pytest.Item]) -> None:
    """Auto-apply markers based on test directory structure."""
    dir_marker_map = {
        "unit": pytest.mark.unit,
        "smoke": pytest.mark.smoke,
    }
    for item in items:
        test_path = str(item.fspath)
        for dir_name, marker in dir_marker_map.items():
            if f"/{dir_name}/" in test_path or f"\\{dir_name}\\" in test_path:
                item.add_marker(marker)
                break


def build_proof(
    url: str,
    extracted: dict[str, Any] | None = None,
    address: str | None = RECIPIENT,
    identifier: str | None = "0x8f1c2d",
) -> dict[str, Any]:
    context: dict[str, Any] = {"extractedParameters": extracted or {}}
    if address is not None:
        context["contextMessage"] = address
    claim: dict[str, Any] = {
        "provider": "http",
        "parameters": json.dumps({"url": url, "method": "GET", "responseMatches": []}),
        "context": json.dumps(context),
        "owner": "0x3f2a9b",
        "timestampS": 1717000000,
        "epoch": 1,
    }
    proof: dict[str, Any] = {
        "claimData": claim,
        "signatures": ["0xsig"],
        "witnesses": [{"id": "0xwitness", "url": "wss://witness.example"}],
    }
    if identifier is not None:
        claim["identifier"] = identifier
        proof["identifier"] = identifier
    return proof


def encode_proof(proof: dict[str, Any]) -> str:
    return quote(json.dumps(proof))


@pytest.fixture
def amazon_proof() -> dict[str, Any]:
    return build_proof(
        "https://www.amazon.in/apay/balance",
        {"balance": "&#x20b9;1000"},
    )


@pytest.fixture
def flipkart_proof() -> dict[str, Any]:
    return build_proof(
        "https://www.flipkart.com/api/supercoins",
        {"text": "500"},
        identifier="0x77aa01",
    )


class FakeVerifier:
    def __init__(self, result: bool = True, error: Exception | None = None):
        self.result = result
        self.error = error
        self.calls: list[dict[str, Any]] = []

    async def verify(self, proof: dict[str, Any]) -> bool:
        self.calls.append(proof)
        if self.error is not None:
            raise self.error
        return self.result


class FakeTransferEngine:
    def __init__(self, decimals: int = 9, error: Exception | None = None):
        self.decimals = decimals
        self.error = error
        self.calls: list[tuple[str, str]] = []

    async def token_decimals(self) -> int:
        return self.decimals

    async def transfer(self, amount: str, recipient_address: str) -> TransferResult:
        self.calls.append((amount, recipient_address))
        if self.error is not None:
            raise self.error
        signature = f"sig{len(self.calls)}"
        return TransferResult(
            success=True,
            signature=signature,
            transaction_url=f"https://explorer.solana.com/tx/{signature}?cluster=devnet",
            amount=amount,
        )


class RecordingBroadcaster:
    def __init__(self):
        self.messages: list[NotificationMessage] = []

    def publish(self, message: NotificationMessage) -> None:
        self.messages.append(message)


@pytest.fixture
def fake_verifier() -> FakeVerifier:
    return FakeVerifier()


@pytest.fixture
def fake_engine() -> FakeTransferEngine:
    return FakeTransferEngine()


@pytest.fixture
def broadcaster() -> RecordingBroadcaster:
    return RecordingBroadcaster()
