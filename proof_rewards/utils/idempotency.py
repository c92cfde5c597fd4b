"""Duplicate proof suppression keyed by a SHA-256 of the proof claim."""

from __future__ import annotations

import asyncio
import hashlib
import json
import time
from collections.abc import Callable
from typing import Any

from proof_rewards.core.errors import DuplicateProofError


def compute_proof_key(proof: dict[str, Any]) -> str:
    """Compute the idempotency key for a proof envelope.

    Uses the issuer's claim ``identifier`` when present, otherwise the
    canonical JSON of ``claimData``.
    """
    identifier = proof.get("identifier")
    if isinstance(identifier, str) and identifier.strip():
        raw = f"identifier|{identifier.strip()}"
    else:
        claim = proof.get("claimData") or {}
        raw = "claim|" + json.dumps(claim, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


class ProofDeduplicator:
    """In-memory TTL table of proof keys that were paid or are being paid.

    State is per process; a multi-worker deployment deduplicates per worker.
    """

    def __init__(
        self,
        window_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.window_seconds = window_seconds
        self._clock = clock
        self._entries: dict[str, float] = {}
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._entries)

    def _evict_expired(self, now: float) -> None:
        expired = [key for key, expires_at in self._entries.items() if expires_at <= now]
        for key in expired:
            del self._entries[key]

    async def reserve(self, key: str) -> None:
        """Claim ``key`` for the window or raise ``DuplicateProofError``."""
        async with self._lock:
            now = self._clock()
            self._evict_expired(now)
            if key in self._entries:
                raise DuplicateProofError(
                    "Proof has already been submitted",
                    details={"proof_key": key},
                )
            self._entries[key] = now + self.window_seconds

    async def release(self, key: str) -> None:
        async with self._lock:
            self._entries.pop(key, None)
