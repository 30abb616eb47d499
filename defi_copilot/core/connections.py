"""
Duplex connection sessions.

Each authenticated ``/ws`` connection is a ``ConnectionSession`` bound to one
user. The ``ConnectionRegistry`` keeps the live sessions keyed by user id and
runs the heartbeat sweep that drops peers which stop answering probes.

Transports are abstracted behind ``ConnectionTransport`` so the sweep and the
frame handling do not depend on Starlette.
"""

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Dict, List, Optional

from pydantic import ValidationError
from starlette.websockets import WebSocket, WebSocketState

from ..config import settings
from ..errors import ConnectionBusy
from ..types.requests import RequestFrame

logger = logging.getLogger(__name__)

PARSE_ERROR_MESSAGE = "Failed to process message"
BUSY_MESSAGE = "A request is already in progress"

# (message, user_id) -> result with ``model_dump()``
MessageProcessor = Callable[[str, Optional[int]], Awaitable[Any]]


class ConnectionTransport(ABC):
    """What a session needs from the underlying socket."""

    @abstractmethod
    async def send_json(self, data: Dict[str, Any]) -> None:
        pass

    @abstractmethod
    async def ping(self) -> bool:
        """Probe the peer; True when the probe was acknowledged."""
        pass

    @abstractmethod
    async def terminate(self) -> None:
        pass


class StarletteTransport(ConnectionTransport):
    """
    Adapter over a Starlette ``WebSocket``.

    ``ping`` sends nothing itself. Protocol-level ping/pong is done by uvicorn
    (``ws_ping_interval`` / ``ws_ping_timeout``), which ``main.serve`` and
    ``defi-copilot serve`` set to the heartbeat interval; a bare
    ``uvicorn defi_copilot.main:app`` falls back to uvicorn's 20 s defaults.
    A peer that misses a pong is closed by the server, so a probe counts as
    acknowledged exactly when the socket is still connected.
    """

    def __init__(self, websocket: WebSocket):
        self.websocket = websocket

    @property
    def connected(self) -> bool:
        return (
            self.websocket.client_state == WebSocketState.CONNECTED
            and self.websocket.application_state == WebSocketState.CONNECTED
        )

    async def send_json(self, data: Dict[str, Any]) -> None:
        await self.websocket.send_json(data)

    async def ping(self) -> bool:
        return self.connected

    async def terminate(self) -> None:
        if self.websocket.application_state == WebSocketState.DISCONNECTED:
            return
        try:
            await self.websocket.close(code=1001)
        except RuntimeError as exc:
            # Already closed by the peer or the server
            logger.debug("WebSocket close skipped: %s", exc)


def error_frame(message: str, code: Optional[str] = None) -> Dict[str, Any]:
    data: Dict[str, Any] = {"error": message}
    if code:
        data["code"] = code
    return {"type": "error", "data": data}


class ConnectionSession:
    """One authenticated duplex connection and its in-flight request."""

    def __init__(self, user_id: int, transport: ConnectionTransport):
        self.user_id = user_id
        self.transport = transport
        self.is_alive = True
        self.pending_ping = False
        self._task: Optional[asyncio.Task] = None

    @property
    def busy(self) -> bool:
        return self._task is not None and not self._task.done()

    async def send(self, frame_type: str, data: Any) -> None:
        await self.transport.send_json({"type": frame_type, "data": data})

    async def safe_send(self, frame: Dict[str, Any]) -> bool:
        try:
            await self.transport.send_json(frame)
            return True
        except Exception as exc:
            logger.warning("Failed to send frame to user %s: %s", self.user_id, exc)
            return False

    async def handle_text(self, raw: str, process: MessageProcessor) -> None:
        """
        Handle one inbound text frame.

        Non-JSON or non-object frames, and ``request`` frames without a
        non-empty string ``content``, get a single error frame. Other frame
        types are ignored. A ``request`` arriving while another is in flight
        is rejected as busy.
        """
        try:
            frame = json.loads(raw)
        except (json.JSONDecodeError, TypeError):
            await self.safe_send(error_frame(PARSE_ERROR_MESSAGE))
            return

        if not isinstance(frame, dict):
            await self.safe_send(error_frame(PARSE_ERROR_MESSAGE))
            return

        if frame.get("type") != "request":
            return

        try:
            request = RequestFrame.model_validate(frame)
        except ValidationError:
            await self.safe_send(error_frame(PARSE_ERROR_MESSAGE))
            return

        try:
            self.start_request(request.content, process)
        except ConnectionBusy as exc:
            await self.safe_send(error_frame(exc.message, exc.code))

    def start_request(self, content: str, process: MessageProcessor) -> asyncio.Task:
        if self.busy:
            raise ConnectionBusy(BUSY_MESSAGE)
        self._task = asyncio.create_task(self._run_request(content, process))
        return self._task

    async def _run_request(self, content: str, process: MessageProcessor) -> None:
        try:
            result = await process(content, self.user_id)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.error("Request processing failed for user %s: %s", self.user_id, exc)
            await self.safe_send(error_frame(getattr(exc, "message", None) or str(exc)))
            return
        payload = result.model_dump() if hasattr(result, "model_dump") else result
        await self.safe_send({"type": "response", "data": payload})

    async def wait_idle(self) -> None:
        if self._task is not None:
            await asyncio.gather(self._task, return_exceptions=True)

    def cancel(self) -> None:
        """Cancel the in-flight request; it is never resumed."""
        if self._task is not None and not self._task.done():
            self._task.cancel()


class ConnectionRegistry:
    """Live sessions keyed by user id plus the heartbeat sweep."""

    def __init__(
        self,
        *,
        heartbeat_interval: Optional[float] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.heartbeat_interval = (
            settings.heartbeat_interval_seconds if heartbeat_interval is None else heartbeat_interval
        )
        self._sleep = sleep
        self._sessions: Dict[int, ConnectionSession] = {}
        self._heartbeat_task: Optional[asyncio.Task] = None

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, user_id: int) -> bool:
        return user_id in self._sessions

    def get(self, user_id: int) -> Optional[ConnectionSession]:
        return self._sessions.get(user_id)

    def sessions(self) -> List[ConnectionSession]:
        return list(self._sessions.values())

    def register(self, session: ConnectionSession) -> None:
        previous = self._sessions.get(session.user_id)
        if previous is not None and previous is not session:
            logger.info("Replacing existing connection for user %s", session.user_id)
        self._sessions[session.user_id] = session

    def deregister(self, session: ConnectionSession) -> bool:
        """Remove ``session`` if it is still the one registered for its user."""
        if self._sessions.get(session.user_id) is session:
            del self._sessions[session.user_id]
            return True
        return False

    async def sweep(self) -> List[int]:
        """
        One heartbeat round.

        A session whose previous probe went unanswered is terminated and
        removed; every other session is probed again. Returns the user ids
        that were removed.
        """
        removed: List[int] = []
        for session in self.sessions():
            if not session.is_alive:
                logger.info("Connection for user %s missed its heartbeat, terminating", session.user_id)
                self.deregister(session)
                session.cancel()
                try:
                    await session.transport.terminate()
                except Exception as exc:
                    logger.warning("Terminate failed for user %s: %s", session.user_id, exc)
                removed.append(session.user_id)
                continue

            session.is_alive = False
            session.pending_ping = True
            try:
                acknowledged = await session.transport.ping()
            except Exception as exc:
                logger.debug("Ping failed for user %s: %s", session.user_id, exc)
                acknowledged = False
            if acknowledged:
                session.is_alive = True
                session.pending_ping = False
        return removed

    async def _heartbeat_loop(self) -> None:
        while True:
            await self._sleep(self.heartbeat_interval)
            try:
                await self.sweep()
            except Exception as exc:
                logger.error("Heartbeat sweep failed: %s", exc, exc_info=True)

    def start_heartbeat(self) -> None:
        if self._heartbeat_task is None or self._heartbeat_task.done():
            self._heartbeat_task = asyncio.create_task(self._heartbeat_loop())

    async def stop_heartbeat(self) -> None:
        task, self._heartbeat_task = self._heartbeat_task, None
        if task is None:
            return
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)

    async def close_all(self) -> None:
        await self.stop_heartbeat()
        for session in self.sessions():
            self.deregister(session)
            session.cancel()
            try:
                await session.transport.terminate()
            except Exception as exc:
                logger.warning("Terminate failed for user %s: %s", session.user_id, exc)


__all__ = [
    "ConnectionTransport",
    "StarletteTransport",
    "ConnectionSession",
    "ConnectionRegistry",
    "MessageProcessor",
    "error_frame",
    "PARSE_ERROR_MESSAGE",
    "BUSY_MESSAGE",
]
