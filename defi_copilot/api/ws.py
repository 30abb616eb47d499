"""
Chat WebSocket endpoint.

The upgrade is accepted only for a logged-in session. Frames:

    client -> server   {"type": "request", "content": "<message>"}
    server -> client   {"type": "success" | "response" | "error", "data": {...}}
"""

import logging

from fastapi import APIRouter, Depends, WebSocket, status

from ..auth.middleware import session_user_id
from ..core.connections import (
    ConnectionRegistry,
    ConnectionSession,
    StarletteTransport,
    error_frame,
)
from ..core.orchestrator import AgentOrchestrator
from ..db.users import UserStore
from .dependencies import get_connection_registry, get_orchestrator, get_user_store

router = APIRouter()
logger = logging.getLogger(__name__)


@router.websocket("/ws")
async def chat_socket(
    websocket: WebSocket,
    orchestrator: AgentOrchestrator = Depends(get_orchestrator),
    registry: ConnectionRegistry = Depends(get_connection_registry),
    users: UserStore = Depends(get_user_store),
):
    user_id = session_user_id(websocket)
    if user_id is None:
        logger.info("Rejected unauthenticated WebSocket upgrade")
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason="Unauthorized")
        return

    await websocket.accept()

    user = await users.get_user(user_id)
    if user is None:
        await websocket.send_json(error_frame("Authentication failed - invalid user"))
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    session = ConnectionSession(user.id, StarletteTransport(websocket))
    registry.register(session)
    logger.info("WebSocket connected for user %s", user.id)

    try:
        await session.send("success", {"message": "Authentication successful"})
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
            raw = message.get("text")
            if raw is None:
                raw = (message.get("bytes") or b"").decode("utf-8", errors="replace")
            await session.handle_text(raw, orchestrator.process_message)
    except Exception as exc:
        logger.warning("WebSocket error for user %s: %s", user.id, exc)
    finally:
        session.cancel()
        registry.deregister(session)
        logger.info("WebSocket closed for user %s", user.id)
