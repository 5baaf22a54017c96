import json
import time
from typing import Any, Optional

from pydantic import ValidationError

from logging_config import get_logger
from relay.broadcaster import RoomBroadcaster
from relay.registry import ClientRecord, ConnectionRegistry
from relay.rooms import RoomDirectory
from schemas.frames import JoinRoomFrame, KeyExchangeFrame, MessageFrame, RegisterFrame

logger = get_logger(__name__)

# Frame types that require a prior `register` on the same connection
REGISTERED_ONLY = ("join_room", "key_exchange", "message")


class FrameError(Exception):
    """Raised for a frame that cannot be handled; the text is sent back as an `error`."""


def error_frame(message: str) -> dict:
    return {"type": "error", "message": message}


def verify_room_token(room_id: str, auth_token: Any) -> bool:
    # Weak by design: any non-empty string counts as knowing the room password.
    # A real deployment swaps in a check against the provisioned password hash.
    return isinstance(auth_token, str) and len(auth_token) > 0


def parse_frame(raw) -> dict:
    try:
        data = json.loads(raw)
    except (ValueError, TypeError) as e:
        raise FrameError(f"Invalid frame: {e}")
    if not isinstance(data, dict):
        raise FrameError("Invalid frame: expected a JSON object")
    if not isinstance(data.get("type"), str):
        raise FrameError("Invalid frame: missing 'type'")
    return data


def _validate(model, data: dict, frame_type: str):
    try:
        return model.model_validate(data)
    except ValidationError as e:
        details = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or frame_type}: {err['msg']}" for err in e.errors()
        )
        raise FrameError(f"Invalid {frame_type} frame: {details}")


class MessageRouter:
    """Dispatches inbound relay frames by their `type` field.

    Recipients are resolved by client id through the registry, never by
    connection, and a recipient that cannot be found is dropped without
    telling the sender.
    """

    def __init__(
        self,
        registry: ConnectionRegistry,
        rooms: RoomDirectory,
        broadcaster: RoomBroadcaster,
    ):
        self.registry = registry
        self.rooms = rooms
        self.broadcaster = broadcaster
        self._handlers = {
            "ping": self.handle_ping,
            "register": self.handle_register,
            "join_room": self.handle_join_room,
            "key_exchange": self.handle_key_exchange,
            "message": self.handle_message,
        }

    def handle(self, connection, raw):
        """Handle one inbound frame. Never raises; failures become an `error` reply."""
        try:
            data = parse_frame(raw)
            frame_type = data["type"]
            handler = self._handlers.get(frame_type)
            if handler is None:
                raise FrameError(f"Unknown message type: {frame_type}")

            record = self.registry.lookup_by_connection(connection)
            if frame_type in REGISTERED_ONLY and record is None:
                logger.warning(f"Rejected {frame_type} from unregistered connection {connection}")
                connection.send(error_frame("Not registered"))
                return

            logger.debug(f"Received {frame_type} from {record.id if record else 'unknown'}")
            handler(connection, record, data)
        except FrameError as e:
            logger.warning(f"Rejected frame from {connection}: {e}")
            connection.send(error_frame(str(e)))
        except Exception as e:
            logger.error(f"Error processing frame from {connection}: {e}", exc_info=True)
            connection.send(error_frame(f"Failed to process message: {e}"))

    def handle_ping(self, connection, record: Optional[ClientRecord], data: dict):
        connection.send({"type": "pong"})

    def handle_register(self, connection, record: Optional[ClientRecord], data: dict):
        frame = _validate(RegisterFrame, data, "register")
        if record is not None and record.current_room:
            # Re-registering replaces the identity; the old one leaves its room first
            self.leave_current_room(connection, record)
        client_id = self.registry.register(connection, frame.clientId, bytes(frame.publicKey))
        logger.info(f"Client registered: clientId={client_id}, connection={connection}")
        connection.send({"type": "registered", "clientId": client_id})

    def handle_join_room(self, connection, record: ClientRecord, data: dict):
        frame = _validate(JoinRoomFrame, data, "join_room")
        room_id = frame.roomId

        if not verify_room_token(room_id, frame.authToken):
            logger.warning(f"Join of room {room_id} by {record.id} rejected: invalid room password")
            connection.send(error_frame("Invalid room password"))
            return

        if record.current_room:
            self.leave_current_room(connection, record)

        self.rooms.join(room_id, record.id)
        record.current_room = room_id
        logger.info(f"{record.id} joined room {room_id}")

        connection.send({
            "type": "room_joined",
            "roomId": room_id,
            "users": self.room_users(room_id),
        })
        self.broadcaster.broadcast(
            room_id,
            {"type": "user_joined", "userId": record.id, "publicKey": record.public_key_list()},
            exclude=connection,
        )

    def handle_key_exchange(self, connection, record: ClientRecord, data: dict):
        frame = _validate(KeyExchangeFrame, data, "key_exchange")
        recipient = self.registry.lookup_by_id(frame.recipientId)
        if recipient is None or not recipient.is_open:
            logger.debug(f"Key exchange from {record.id} to unknown recipient {frame.recipientId} dropped")
            return
        recipient.send({
            "type": "key_exchange",
            "senderId": record.id,
            "publicKey": frame.publicKey,
        })
        logger.debug(f"Key exchange relayed {record.id} -> {frame.recipientId}")

    def handle_message(self, connection, record: ClientRecord, data: dict):
        frame = _validate(MessageFrame, data, "message")
        timestamp = frame.timestamp if frame.timestamp is not None else int(time.time() * 1000)
        public_key = record.public_key_list()

        for entry in frame.messages:
            if entry.recipientId == record.id:
                continue
            recipient = self.registry.lookup_by_id(entry.recipientId)
            if recipient is None or not recipient.is_open:
                continue
            recipient.send({
                "type": "message",
                "senderId": record.id,
                "encryptedData": entry.encryptedData,
                "timestamp": timestamp,
                "publicKey": public_key,
            })
            logger.debug(f"Message relayed {record.id} -> {entry.recipientId}")

    def leave_current_room(self, connection, record: ClientRecord):
        """Remove the client from its room and tell the rest of the room."""
        room_id = record.current_room
        if not room_id:
            return
        self.rooms.leave(room_id, record.id)
        self.broadcaster.broadcast(room_id, {"type": "user_left", "userId": record.id}, exclude=connection)
        record.current_room = None
        logger.info(f"{record.id} left room {room_id}")

    def room_users(self, room_id: str) -> list[dict]:
        users = []
        for member_id in sorted(self.rooms.members_of(room_id)):
            member_connection = self.registry.lookup_by_id(member_id)
            member = self.registry.lookup_by_connection(member_connection) if member_connection else None
            if member is None:
                continue
            users.append({"id": member.id, "publicKey": member.public_key_list()})
        return users
