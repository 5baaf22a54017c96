import asyncio
import inspect
import json
import uuid
from typing import Any, Awaitable, Callable, Optional

from constants import SEND_QUEUE_SIZE
from logging_config import get_logger

logger = get_logger(__name__)


def _find_transport_ping(websocket) -> Optional[Callable[[], Awaitable]]:
    # uvicorn's websockets protocol hands the app its own bound receive callable,
    # and its ping() writes a control frame and returns the pong waiter
    protocol = getattr(getattr(websocket, "_receive", None), "__self__", None)
    ping = getattr(protocol, "ping", None)
    return ping if inspect.iscoroutinefunction(ping) else None


class Connection:
    """One accepted relay socket.

    Writes never block the caller: ``send`` enqueues the encoded frame and a
    per-connection writer task pushes it to the socket. A peer that stops
    reading fills its queue and further frames to it are dropped; the liveness
    monitor is what eventually removes it.
    """

    def __init__(self, websocket, max_pending: int = SEND_QUEUE_SIZE):
        self.websocket = websocket
        self.connection_id = uuid.uuid4().hex
        client = getattr(websocket, "client", None)
        self.remote = f"{client.host}:{client.port}" if client else "unknown"

        # Liveness state
        self.awaiting_probe = False
        self.probe_sent_at: Optional[float] = None
        self._transport_ping = _find_transport_ping(websocket)

        self.is_open = True
        self._outbox: asyncio.Queue = asyncio.Queue(maxsize=max_pending)
        self._writer: Optional[asyncio.Task] = None

    def start(self):
        if self._writer is None:
            self._writer = asyncio.create_task(self._drain())

    def send(self, frame: dict[str, Any]) -> bool:
        if not self.is_open:
            return False
        try:
            self._outbox.put_nowait(json.dumps(frame))
        except asyncio.QueueFull:
            logger.warning(f"Send queue full for connection {self.connection_id}, dropping {frame.get('type')} frame")
            return False
        return True

    def ping(self) -> Optional[asyncio.Future]:
        """Send a control-frame ping; the returned future completes when the pong arrives.

        Returns None when the server gives no access to control-frame pings.
        """
        if not self.is_open or self._transport_ping is None:
            return None
        return asyncio.ensure_future(self._await_pong())

    async def _await_pong(self):
        pong_waiter = await self._transport_ping()
        await pong_waiter

    async def _drain(self):
        while True:
            text = await self._outbox.get()
            try:
                await self.websocket.send_text(text)
            except Exception as e:
                logger.warning(f"Write to connection {self.connection_id} failed: {e}")
                self.is_open = False
                self._discard_pending()
                break
            finally:
                self._outbox.task_done()

    def _discard_pending(self):
        while not self._outbox.empty():
            self._outbox.get_nowait()
            self._outbox.task_done()

    async def close(self, code: int = 1000, reason: str = ""):
        if self._writer is not None:
            self._writer.cancel()
            try:
                await self._writer
            except asyncio.CancelledError:
                pass
            self._writer = None
        self._discard_pending()
        was_open = self.is_open
        self.is_open = False
        if not was_open:
            return
        try:
            await self.websocket.close(code=code, reason=reason)
        except Exception as e:
            logger.debug(f"Error closing WebSocket {self.connection_id}: {e}")

    def __repr__(self):
        return f"<Connection {self.connection_id} {self.remote}>"
