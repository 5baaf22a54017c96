import os

HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", 8080))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FILE = os.getenv("LOG_FILE", None)

REDIS_HOST = os.getenv("REDIS_HOST", "localhost")
REDIS_PORT = int(os.getenv("REDIS_PORT", 6379))
REDIS_PASSWORD = os.getenv("REDIS_PASSWORD", None)

# Sub-protocol token negotiated on the relay socket
RELAY_SUBPROTOCOL = os.getenv("RELAY_SUBPROTOCOL", "pqchat")

# Liveness: probes go out every PING_INTERVAL, outstanding probes are judged every CHECK_INTERVAL
PING_INTERVAL_SECONDS = float(os.getenv("PING_INTERVAL_SECONDS", 30))
CHECK_INTERVAL_SECONDS = float(os.getenv("CHECK_INTERVAL_SECONDS", 10))

# Outbound frames buffered per connection before new ones are dropped
SEND_QUEUE_SIZE = int(os.getenv("SEND_QUEUE_SIZE", 256))

ROOM_TTL_SECONDS = int(os.getenv("ROOM_TTL_SECONDS", 86400))

# uvicorn WebSocket implementation and its own transport keepalive.
# The "websockets" implementation exposes control-frame pings to the liveness monitor.
WS_IMPL = os.getenv("WS_IMPL", "websockets")
WS_PING_INTERVAL_SECONDS = float(os.getenv("WS_PING_INTERVAL_SECONDS", 20))
WS_PING_TIMEOUT_SECONDS = float(os.getenv("WS_PING_TIMEOUT_SECONDS", 20))
