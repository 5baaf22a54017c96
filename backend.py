import hashlib
import secrets
from datetime import datetime, timedelta

import redis

from constants import REDIS_HOST, REDIS_PORT, REDIS_PASSWORD, ROOM_TTL_SECONDS
from redis_keys import REDIS_META_KEY
from logging_config import get_logger

logger = get_logger(__name__)

PBKDF2_ITERATIONS = 200_000


def hash_room_password(password: str, salt: bytes) -> str:
    return hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, PBKDF2_ITERATIONS).hex()


class RedisBackend:
    """Provisioned room metadata kept in Redis.

    The relay itself keeps its membership state in memory; Redis only holds
    rooms created through the HTTP API, each with a TTL.
    """

    def __init__(self, redis_client=None):
        self.redis_client = redis_client or redis.Redis(
            host=REDIS_HOST, port=REDIS_PORT, password=REDIS_PASSWORD, decode_responses=True
        )
        logger.info(f"Initializing RedisBackend with connection to {REDIS_HOST}:{REDIS_PORT}")

    def check_connection(self) -> bool:
        try:
            self.redis_client.ping()
            logger.info(f"Redis client connected successfully to {REDIS_HOST}:{REDIS_PORT}")
            return True
        except Exception as e:
            logger.error(f"Failed to connect to Redis at {REDIS_HOST}:{REDIS_PORT}: {e}")
            return False

    def create_room(self, room_id: str, password: str, ttl: int = ROOM_TTL_SECONDS):
        logger.info(f"Creating room {room_id} with TTL {ttl} seconds")
        key = REDIS_META_KEY.format(slug=room_id)
        salt = secrets.token_bytes(16)
        now = datetime.now()
        room_data = {
            "room_id": room_id,
            "created_at": now.isoformat(),
            "expires_at": (now + timedelta(seconds=ttl)).isoformat() if ttl else "",
            "password_salt": salt.hex(),
            "password_hash": hash_room_password(password, salt),
        }
        self.redis_client.hset(key, mapping=room_data)
        if ttl:
            self.redis_client.expire(key, ttl)
        logger.debug(f"Room {room_id} created successfully with key: {key}")
        return room_data

    def get_room(self, room_id: str):
        logger.debug(f"Fetching room {room_id}")
        key = REDIS_META_KEY.format(slug=room_id)
        room_data = self.redis_client.hgetall(key)
        if not room_data:
            logger.debug(f"Room {room_id} not found in Redis")
            return None
        return dict(room_data)

    def verify_room_password(self, room_id: str, password: str) -> bool:
        room = self.get_room(room_id)
        if not room or "password_hash" not in room:
            return False
        expected = hash_room_password(password, bytes.fromhex(room["password_salt"]))
        return secrets.compare_digest(expected, room["password_hash"])

    def delete_room(self, room_id: str):
        logger.info(f"Deleting room {room_id}")
        deleted = self.redis_client.delete(REDIS_META_KEY.format(slug=room_id))
        logger.debug(f"Room {room_id} deleted: meta_key={deleted}")
        return bool(deleted)


redis_backend = RedisBackend()
