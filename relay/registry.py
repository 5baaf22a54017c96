import random
import string
from typing import Dict, List, Optional

from pydantic import BaseModel

from logging_config import get_logger

logger = get_logger(__name__)


def generate_client_id(length: int = 6) -> str:
    return ''.join(random.choices(string.ascii_lowercase + string.digits, k=length))


class ClientRecord(BaseModel):
    id: str
    public_key: bytes = b""
    current_room: Optional[str] = None

    def public_key_list(self) -> list[int]:
        return list(self.public_key)


class ConnectionRegistry:
    """Connection -> ClientRecord map with an id -> connections index.

    Ids are self-asserted and not arbitrated: two connections may register the
    same id, in which case lookups by id resolve to the one that registered
    first.
    """

    def __init__(self):
        self._records: Dict[object, ClientRecord] = {}
        self._by_id: Dict[str, List[object]] = {}

    def register(self, connection, requested_id: Optional[str], public_key: bytes = b"") -> str:
        client_id = requested_id if requested_id else generate_client_id()

        previous = self._records.get(connection)
        if previous is not None:
            self._unindex(previous.id, connection)

        self._records[connection] = ClientRecord(id=client_id, public_key=bytes(public_key))
        self._by_id.setdefault(client_id, []).append(connection)
        logger.debug(f"Registered {client_id} on {connection} ({len(self._records)} registered)")
        return client_id

    def lookup_by_connection(self, connection) -> Optional[ClientRecord]:
        return self._records.get(connection)

    def lookup_by_id(self, client_id: str):
        connections = self._by_id.get(client_id)
        if not connections:
            return None
        return connections[0]

    def remove(self, connection) -> Optional[ClientRecord]:
        record = self._records.pop(connection, None)
        if record is not None:
            self._unindex(record.id, connection)
            logger.debug(f"Removed {record.id} on {connection}")
        return record

    def _unindex(self, client_id: str, connection):
        connections = self._by_id.get(client_id)
        if not connections:
            return
        if connection in connections:
            connections.remove(connection)
        if not connections:
            del self._by_id[client_id]

    def __len__(self) -> int:
        return len(self._records)
