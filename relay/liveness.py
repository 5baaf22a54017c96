import asyncio
import functools
import time
from typing import Awaitable, Callable, Iterable, Optional

from constants import CHECK_INTERVAL_SECONDS, PING_INTERVAL_SECONDS
from logging_config import get_logger

logger = get_logger(__name__)


class LivenessMonitor:
    """Probes open connections and evicts the ones that stop answering.

    Two independent loops: the probe loop sends a WebSocket control-frame ping
    to every connection that is not already waiting on one, and the check loop
    evicts every connection whose ping has gone unanswered for a full check
    interval. The pong, or any inbound frame, acknowledges the probe.
    """

    def __init__(
        self,
        connections: Iterable,
        evict: Callable[..., Awaitable],
        ping_interval: float = PING_INTERVAL_SECONDS,
        check_interval: float = CHECK_INTERVAL_SECONDS,
        clock: Optional[Callable[[], float]] = None,
    ):
        self.connections = connections
        self.evict = evict
        self.ping_interval = ping_interval
        self.check_interval = check_interval
        self.clock = clock or time.monotonic
        self._tasks: list[asyncio.Task] = []

    def track(self, connection):
        self.acknowledge(connection)

    def acknowledge(self, connection):
        connection.awaiting_probe = False
        connection.probe_sent_at = None

    def _pong_received(self, connection, waiter):
        if waiter.cancelled() or waiter.exception() is not None:
            return
        self.acknowledge(connection)

    def probe(self) -> int:
        now = self.clock()
        sent = 0
        for connection in list(self.connections):
            if not connection.is_open or connection.awaiting_probe:
                continue
            waiter = connection.ping()
            if waiter is None:
                # No control-frame ping on this transport; the server keepalive closes it if it dies
                continue
            connection.awaiting_probe = True
            connection.probe_sent_at = now
            waiter.add_done_callback(functools.partial(self._pong_received, connection))
            sent += 1
        logger.debug(f"Sent liveness probe to {sent} connections")
        return sent

    async def check(self) -> list:
        now = self.clock()
        stale = []
        for connection in list(self.connections):
            if not connection.awaiting_probe or connection.probe_sent_at is None:
                continue
            if now - connection.probe_sent_at >= self.check_interval:
                stale.append(connection)

        for connection in stale:
            logger.info(f"Connection {connection} failed to answer liveness probe, terminating")
            try:
                await self.evict(connection)
            except Exception as e:
                logger.error(f"Error evicting connection {connection}: {e}", exc_info=True)
        return stale

    async def _probe_loop(self):
        while True:
            await asyncio.sleep(self.ping_interval)
            try:
                self.probe()
            except Exception as e:
                logger.error(f"Liveness probe cycle failed: {e}", exc_info=True)

    async def _check_loop(self):
        while True:
            await asyncio.sleep(self.check_interval)
            await self.check()

    def start(self):
        if self._tasks:
            return
        self._tasks = [
            asyncio.create_task(self._probe_loop()),
            asyncio.create_task(self._check_loop()),
        ]
        logger.info(
            f"Liveness monitor started (ping every {self.ping_interval}s, check every {self.check_interval}s)"
        )

    async def stop(self):
        tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        if tasks:
            logger.info("Liveness monitor stopped")

    @property
    def running(self) -> bool:
        return any(not task.done() for task in self._tasks)
