from constants import CHECK_INTERVAL_SECONDS, PING_INTERVAL_SECONDS
from logging_config import get_logger
from relay.broadcaster import RoomBroadcaster
from relay.liveness import LivenessMonitor
from relay.registry import ConnectionRegistry
from relay.rooms import RoomDirectory
from relay.router import MessageRouter

logger = get_logger(__name__)


class RelayContext:
    """Relay state for one application instance.

    Built once at startup and handed to every connection handler. Everything
    here runs on the event loop thread, and no join/leave/broadcast sequence
    awaits in the middle, so each sequence is applied as a unit.
    """

    def __init__(
        self,
        ping_interval: float = PING_INTERVAL_SECONDS,
        check_interval: float = CHECK_INTERVAL_SECONDS,
        clock=None,
    ):
        self.connections: set = set()
        self.registry = ConnectionRegistry()
        self.rooms = RoomDirectory()
        self.broadcaster = RoomBroadcaster(self.registry, self.connections)
        self.monitor = LivenessMonitor(
            self.connections,
            evict=self.disconnect,
            ping_interval=ping_interval,
            check_interval=check_interval,
            clock=clock,
        )
        self.router = MessageRouter(self.registry, self.rooms, self.broadcaster)

    def attach(self, connection):
        self.connections.add(connection)
        self.monitor.track(connection)
        logger.info(f"New client connected from {connection.remote} ({len(self.connections)} open)")

    def handle_frame(self, connection, raw):
        # Any inbound frame shows the peer is alive
        self.monitor.acknowledge(connection)
        self.router.handle(connection, raw)

    async def disconnect(self, connection, code: int = 1000, reason: str = ""):
        """Single cleanup path for a closed or evicted connection."""
        if connection not in self.connections:
            return
        self.connections.discard(connection)

        record = self.registry.lookup_by_connection(connection)
        if record is not None:
            self.router.leave_current_room(connection, record)
            self.registry.remove(connection)
        logger.info(f"Client disconnected ({record.id if record else 'unknown'}), {len(self.connections)} open")

        await connection.close(code=code, reason=reason)

    async def start(self):
        self.monitor.start()

    async def stop(self):
        await self.monitor.stop()
        for connection in list(self.connections):
            await self.disconnect(connection, code=1001, reason="Server shutting down")

    def stats(self) -> dict:
        return {
            "open_connections": len(self.connections),
            "registered_clients": len(self.registry),
            "rooms": len(self.rooms.rooms()),
        }
