import uvicorn
from constants import HOST, PORT, LOG_LEVEL, LOG_FILE, WS_IMPL, WS_PING_INTERVAL_SECONDS, WS_PING_TIMEOUT_SECONDS
from logging_config import setup_logging

# Setup logging before importing app
setup_logging(log_level=LOG_LEVEL, log_file=LOG_FILE)

from app import app
from logging_config import get_logger

logger = get_logger(__name__)


def main():
    logger.info(f"Starting relay server on {HOST}:{PORT}")
    logger.info(f"WebSocket URL: ws://localhost:{PORT}")
    uvicorn.run(
        app,
        host=HOST,
        port=PORT,
        log_config=None,
        ws=WS_IMPL,
        ws_ping_interval=WS_PING_INTERVAL_SECONDS,
        ws_ping_timeout=WS_PING_TIMEOUT_SECONDS,
    )


if __name__ == "__main__":
    main()
