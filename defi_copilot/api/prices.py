"""
Live price stream for the UI.

``/ws/prices/{asset_id}`` subscribes the shared price feed to the asset and
forwards each matching tick as ``{"type": "update", "data": tick}``. The
upstream stream is closed when the last UI subscriber for the asset leaves.
"""

import asyncio
import logging
from collections import Counter
from typing import Any

from fastapi import APIRouter, Depends, WebSocket, status

from ..auth.middleware import session_user_id
from ..services.price_feed import PRICE_UPDATE, PriceFeedManager
from .dependencies import get_price_feed

router = APIRouter()
logger = logging.getLogger(__name__)

MAX_PENDING_TICKS = 100


def _watchers(websocket: WebSocket) -> Counter:
    state = websocket.app.state
    if getattr(state, "price_watchers", None) is None:
        state.price_watchers = Counter()
    return state.price_watchers


@router.websocket("/ws/prices/{asset_id}")
async def price_socket(
    websocket: WebSocket,
    asset_id: str,
    feed: PriceFeedManager = Depends(get_price_feed),
):
    if session_user_id(websocket) is None:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason="Unauthorized")
        return

    await websocket.accept()

    queue: asyncio.Queue = asyncio.Queue(maxsize=MAX_PENDING_TICKS)

    def on_tick(tick: Any) -> None:
        if not isinstance(tick, dict) or asset_id not in tick:
            return
        try:
            queue.put_nowait(tick)
        except asyncio.QueueFull:
            logger.debug("Dropping price tick for slow subscriber of %s", asset_id)

    async def forward() -> None:
        while True:
            tick = await queue.get()
            await websocket.send_json({"type": "update", "data": tick})

    watchers = _watchers(websocket)
    feed.on(PRICE_UPDATE, on_tick)
    feed.subscribe(asset_id)
    watchers[asset_id] += 1
    sender = asyncio.create_task(forward())

    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
    finally:
        feed.off(PRICE_UPDATE, on_tick)
        sender.cancel()
        await asyncio.gather(sender, return_exceptions=True)
        watchers[asset_id] -= 1
        if watchers[asset_id] <= 0:
            del watchers[asset_id]
            await feed.unsubscribe(asset_id)
