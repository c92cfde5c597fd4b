"""Proof envelope decoding, platform classification and reward extraction.

Nothing here checks authenticity; callers must run the verifier on the
unaltered envelope before trusting what ``extract`` returns.
"""

from __future__ import annotations

import json
from typing import Any
from urllib.parse import unquote

from proof_rewards.core.errors import (
    DecodeError,
    MalformedProofError,
    MissingFieldError,
    UnsupportedPlatformError,
)
from proof_rewards.schemas.v1.common import Platform
from proof_rewards.schemas.v1.proofs import ExtractedReward

# Amazon renders the balance with an HTML-entity rupee sign; some providers emit the glyph.
AMAZON_CURRENCY_PREFIXES = ("&#x20b9;", "₹")

# Checked in order: a URL naming both platforms classifies as Amazon.
PLATFORM_URL_MARKERS: tuple[tuple[str, Platform], ...] = (
    ("amazon", Platform.AMAZON),
    ("flipkart", Platform.FLIPKART),
)


def decode_envelope(body: str | bytes) -> dict[str, Any]:
    """Decode a URL-escaped JSON proof envelope."""
    if isinstance(body, bytes):
        try:
            body = body.decode("utf-8")
        except UnicodeDecodeError as e:
            raise DecodeError("Proof body is not valid UTF-8") from e

    text = unquote(body).strip()
    if not text:
        raise DecodeError("Proof body is empty")
    try:
        proof = json.loads(text)
    except json.JSONDecodeError as e:
        raise DecodeError(f"Proof body is not valid JSON: {e.msg}") from e
    if not isinstance(proof, dict):
        raise DecodeError("Proof body must be a JSON object")
    return proof


def _claim_data(proof: dict[str, Any]) -> dict[str, Any]:
    claim = proof.get("claimData")
    if not isinstance(claim, dict):
        raise MalformedProofError("Proof is missing claimData")
    return claim


def _load_json_field(claim: dict[str, Any], field: str) -> dict[str, Any]:
    raw = claim.get(field)
    if not isinstance(raw, str) or not raw.strip():
        raise MalformedProofError(f"Proof claimData.{field} is missing")
    try:
        value = json.loads(raw)
    except json.JSONDecodeError as e:
        raise MalformedProofError(f"Proof claimData.{field} is not valid JSON") from e
    if not isinstance(value, dict):
        raise MalformedProofError(f"Proof claimData.{field} must be a JSON object")
    return value


def request_url(proof: dict[str, Any]) -> str:
    """Return the provider request URL embedded in the claim parameters."""
    parameters = _load_json_field(_claim_data(proof), "parameters")
    url = parameters.get("url")
    if not isinstance(url, str):
        raise MalformedProofError("Proof parameters do not contain a request url")
    return url


def classify_url(url: str) -> Platform:
    for marker, platform in PLATFORM_URL_MARKERS:
        if marker in url:
            return platform
    return Platform.UNSUPPORTED


def classify(proof: dict[str, Any]) -> Platform:
    """Classify the proof by its request URL; unknown URLs are rejected."""
    url = request_url(proof)
    platform = classify_url(url)
    if platform is Platform.UNSUPPORTED:
        raise UnsupportedPlatformError("Unsupported platform", details={"url": url})
    return platform


def strip_currency_prefix(balance: str) -> str:
    for prefix in AMAZON_CURRENCY_PREFIXES:
        if balance.startswith(prefix):
            return balance[len(prefix) :]
    return balance


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, int | float) and not isinstance(value, bool):
        return str(value)
    raise MalformedProofError(f"Unexpected proof field type: {type(value).__name__}")


def extract(proof: dict[str, Any], platform: Platform) -> ExtractedReward:
    """Read the reward amount and destination address for ``platform``."""
    if platform is Platform.UNSUPPORTED:
        raise UnsupportedPlatformError("Unsupported platform")

    context = _load_json_field(_claim_data(proof), "context")
    extracted = context.get("extractedParameters") or {}
    if not isinstance(extracted, dict):
        raise MalformedProofError("Proof context extractedParameters must be an object")

    if platform is Platform.AMAZON:
        amount = strip_currency_prefix(_as_text(extracted.get("balance")))
    else:
        amount = _as_text(extracted.get("text"))

    return ExtractedReward(
        amount=amount,
        address=_as_text(context.get("contextMessage")),
        platform=platform,
    )


def require_fields(reward: ExtractedReward) -> ExtractedReward:
    missing = [name for name in ("amount", "address") if not getattr(reward, name)]
    if missing:
        raise MissingFieldError(
            "Missing amount or address in proof",
            details={"missing": missing, "platform": reward.platform.value},
        )
    return reward
