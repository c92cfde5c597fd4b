"""Live observer connections and best-effort outcome broadcasting."""

from __future__ import annotations

import asyncio
from typing import Any, Protocol

import structlog
from starlette.websockets import WebSocketState

from proof_rewards.core.metrics import (
    rewards_broadcast_deliveries_total,
    rewards_observers_connected,
)
from proof_rewards.schemas.v1.common import NotificationType
from proof_rewards.schemas.v1.proofs import NotificationMessage

logger = structlog.get_logger(__name__)

GREETING = NotificationMessage(
    type=NotificationType.AGENT,
    content="Connected to Solana Rewards server. Ready to process verification requests.",
)


class Observer(Protocol):
    client_state: WebSocketState
    application_state: WebSocketState

    async def send_text(self, data: str) -> None: ...


def is_open(connection: Any) -> bool:
    return (
        getattr(connection, "client_state", None) == WebSocketState.CONNECTED
        and getattr(connection, "application_state", None) == WebSocketState.CONNECTED
    )


class ConnectionRegistry:
    """Set of connected observers owned by the server.

    ``publish`` schedules a broadcast and returns immediately; the task is
    tracked so shutdown can ``drain`` it.
    """

    def __init__(self, send_timeout_s: float = 5.0):
        self.send_timeout_s = send_timeout_s
        self._connections: set[Observer] = set()
        self._lock = asyncio.Lock()
        self._pending: set[asyncio.Task[int]] = set()

    def __len__(self) -> int:
        return len(self._connections)

    async def register(self, connection: Observer) -> None:
        async with self._lock:
            self._connections.add(connection)
            rewards_observers_connected.set(len(self._connections))
        logger.info("Client connected to notifications", observers=len(self._connections))

    async def unregister(self, connection: Observer) -> None:
        async with self._lock:
            self._connections.discard(connection)
            rewards_observers_connected.set(len(self._connections))
        logger.info("Client disconnected from notifications", observers=len(self._connections))

    async def send(self, connection: Observer, message: NotificationMessage) -> None:
        await asyncio.wait_for(
            connection.send_text(message.model_dump_json()), timeout=self.send_timeout_s
        )

    async def _deliver(self, connection: Observer, payload: str) -> bool:
        try:
            await asyncio.wait_for(connection.send_text(payload), timeout=self.send_timeout_s)
        except Exception as e:
            rewards_broadcast_deliveries_total.labels(status="failed").inc()
            logger.warning("Dropping observer after failed send", error=str(e) or type(e).__name__)
            await self.unregister(connection)
            return False
        rewards_broadcast_deliveries_total.labels(status="sent").inc()
        return True

    async def broadcast(self, message: NotificationMessage) -> int:
        """Send ``message`` to every open observer; returns the delivery count."""
        async with self._lock:
            connections = list(self._connections)

        payload = message.model_dump_json()
        targets = []
        for connection in connections:
            if is_open(connection):
                targets.append(connection)
            else:
                rewards_broadcast_deliveries_total.labels(status="skipped").inc()

        if not targets:
            return 0
        results = await asyncio.gather(*(self._deliver(c, payload) for c in targets))
        return sum(results)

    def publish(self, message: NotificationMessage) -> None:
        """Fire-and-forget broadcast from within a running event loop."""
        task = asyncio.get_running_loop().create_task(self.broadcast(message))
        self._pending.add(task)
        task.add_done_callback(self._on_published)

    def _on_published(self, task: asyncio.Task[int]) -> None:
        self._pending.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Broadcast task failed", error=str(task.exception()))

    async def drain(self) -> None:
        """Wait for scheduled broadcasts to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
