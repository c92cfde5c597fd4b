"""Real-time outcome channel for observers."""

import structlog
from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from proof_rewards.core.dependencies import ConnectionRegistryDep
from proof_rewards.notifications.registry import GREETING

router = APIRouter(tags=["notifications"])
logger = structlog.get_logger(__name__)


@router.websocket("/ws")
async def notifications_socket(websocket: WebSocket, registry: ConnectionRegistryDep):
    await websocket.accept()
    await registry.register(websocket)
    try:
        await registry.send(websocket, GREETING)
        while True:
            message = await websocket.receive_text()
            logger.info("Received observer message", message=message[:500])
    except WebSocketDisconnect:
        pass
    finally:
        await registry.unregister(websocket)
