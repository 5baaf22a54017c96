from typing import Dict, Set

from logging_config import get_logger

logger = get_logger(__name__)


class RoomDirectory:
    """Room id -> set of member client ids.

    Rooms come into existence on first join. A room whose last member leaves is
    dropped from the map; for routing an absent room and an empty one are the
    same thing.
    """

    def __init__(self):
        self._rooms: Dict[str, Set[str]] = {}

    def join(self, room_id: str, client_id: str):
        self._rooms.setdefault(room_id, set()).add(client_id)
        logger.debug(f"{client_id} joined room {room_id} ({len(self._rooms[room_id])} members)")

    def leave(self, room_id: str, client_id: str):
        members = self._rooms.get(room_id)
        if members is None:
            return
        members.discard(client_id)
        if not members:
            del self._rooms[room_id]
            logger.debug(f"Room {room_id} is empty, dropping it")

    def members_of(self, room_id: str) -> Set[str]:
        return set(self._rooms.get(room_id, ()))

    def rooms(self) -> list[str]:
        return list(self._rooms)
