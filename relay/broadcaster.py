from typing import Any, Iterable

from logging_config import get_logger
from relay.registry import ConnectionRegistry

logger = get_logger(__name__)


class RoomBroadcaster:
    """Delivers a frame to every open connection whose client sits in a room.

    The scan is driven by the open connections rather than by the member ids of
    the room, so a member whose socket is already gone is never written to.
    """

    def __init__(self, registry: ConnectionRegistry, connections: Iterable):
        self.registry = registry
        self.connections = connections

    def broadcast(self, room_id: str, frame: dict[str, Any], exclude=None) -> int:
        delivered = 0
        for connection in list(self.connections):
            if connection is exclude or not connection.is_open:
                continue
            record = self.registry.lookup_by_connection(connection)
            if record is None or record.current_room != room_id:
                continue
            if connection.send(frame):
                delivered += 1
        logger.debug(f"Broadcast {frame.get('type')} to {delivered} connections in room {room_id}")
        return delivered
