"""
Real-time price feed over the CoinCap streaming API.

One outbound WebSocket per subscribed asset; inbound ticks are fanned out to
local listeners under a fixed event name. Unexpected closes are retried with
exponential backoff up to a fixed number of attempts per asset.
"""

import asyncio
import json
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

import websockets
from websockets.exceptions import ConnectionClosed

from ..config import settings

logger = logging.getLogger(__name__)

PRICE_UPDATE = "price_update"
ERROR = "error"
MAX_RECONNECT_ATTEMPTS_REACHED = "max_reconnect_attempts_reached"

Listener = Callable[[Any], Union[None, Awaitable[None]]]
Connector = Callable[[str], Any]


class PriceFeedManager:
    """
    Multiplex per-asset streaming price connections to local listeners.

    Usage:
        feed = PriceFeedManager()
        feed.on(PRICE_UPDATE, my_callback)
        feed.subscribe("bitcoin")
        ...
        await feed.close_all()
    """

    def __init__(
        self,
        *,
        url: Optional[str] = None,
        max_reconnect_attempts: Optional[int] = None,
        reconnect_delay: Optional[float] = None,
        connect: Optional[Connector] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.url = url or settings.price_feed_url
        self.max_reconnect_attempts = (
            settings.price_feed_max_reconnect_attempts if max_reconnect_attempts is None else max_reconnect_attempts
        )
        self.reconnect_delay = (
            settings.price_feed_reconnect_delay_seconds if reconnect_delay is None else reconnect_delay
        )
        self._connect = connect or websockets.connect
        self._sleep = sleep
        self._tasks: Dict[str, asyncio.Task] = {}
        self._connections: Dict[str, Any] = {}
        self._reconnect_attempts: Dict[str, int] = {}
        self._listeners: Dict[str, List[Listener]] = {}

    # Listener registry

    def on(self, event: str, callback: Listener) -> None:
        self._listeners.setdefault(event, []).append(callback)

    def off(self, event: str, callback: Listener) -> None:
        callbacks = self._listeners.get(event, [])
        if callback in callbacks:
            callbacks.remove(callback)

    async def _emit(self, event: str, payload: Any) -> None:
        for callback in list(self._listeners.get(event, [])):
            try:
                result = callback(payload)
                if asyncio.iscoroutine(result):
                    await result
            except Exception as e:
                logger.error(f"Price feed listener error for {event}: {e}")

    # Subscriptions

    def subscribe(self, asset_id: str) -> None:
        """Open the stream for ``asset_id`` unless one is already running."""
        task = self._tasks.get(asset_id)
        if task is not None and not task.done():
            return

        self._reconnect_attempts[asset_id] = 0
        self._tasks[asset_id] = asyncio.create_task(self._run(asset_id), name=f"price-feed:{asset_id}")
        logger.info(f"Subscribed to price updates for {asset_id}")

    async def unsubscribe(self, asset_id: str) -> None:
        """Close the stream for ``asset_id`` and forget it."""
        task = self._tasks.pop(asset_id, None)
        connection = self._connections.pop(asset_id, None)
        self._reconnect_attempts.pop(asset_id, None)

        if connection is not None:
            try:
                await connection.close()
            except Exception as e:
                logger.warning(f"Error closing price feed for {asset_id}: {e}")

        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        logger.info(f"Unsubscribed from price updates for {asset_id}")

    def active_subscriptions(self) -> List[str]:
        return [asset_id for asset_id, task in self._tasks.items() if not task.done()]

    async def close_all(self) -> None:
        for asset_id in list(self._tasks):
            await self.unsubscribe(asset_id)

    # Connection loop

    async def _run(self, asset_id: str) -> None:
        url = f"{self.url}{asset_id}"

        while True:
            try:
                async with self._connect(url) as ws:
                    self._connections[asset_id] = ws
                    self._reconnect_attempts[asset_id] = 0
                    logger.info(f"Connected to price feed for {asset_id}")
                    await self._listen(asset_id, ws)
            except asyncio.CancelledError:
                raise
            except ConnectionClosed as e:
                logger.warning(f"Price feed closed for {asset_id}: {e}")
            except Exception as e:
                logger.error(f"Price feed error for {asset_id}: {e}")
                await self._emit(ERROR, {"asset_id": asset_id, "error": str(e)})
            finally:
                self._connections.pop(asset_id, None)

            if asset_id not in self._tasks:
                return

            attempts = self._reconnect_attempts.get(asset_id, 0)
            if attempts >= self.max_reconnect_attempts:
                logger.error(f"Max reconnect attempts reached for {asset_id}")
                await self._emit(MAX_RECONNECT_ATTEMPTS_REACHED, asset_id)
                self._tasks.pop(asset_id, None)
                self._reconnect_attempts.pop(asset_id, None)
                return

            delay = self.reconnect_delay * (2 ** attempts)
            self._reconnect_attempts[asset_id] = attempts + 1
            logger.info(f"Reconnecting price feed for {asset_id} in {delay}s (attempt {attempts + 1})")
            await self._sleep(delay)

    async def _listen(self, asset_id: str, ws) -> None:
        async for message in ws:
            try:
                data = json.loads(message)
            except (TypeError, json.JSONDecodeError):
                logger.warning(f"Invalid price frame for {asset_id}: {str(message)[:100]}")
                continue

            await self._emit(PRICE_UPDATE, data)


__all__ = [
    "PriceFeedManager",
    "PRICE_UPDATE",
    "ERROR",
    "MAX_RECONNECT_ATTEMPTS_REACHED",
]
