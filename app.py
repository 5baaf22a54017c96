from contextlib import asynccontextmanager

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware

from backend import redis_backend
from constants import (
    CHECK_INTERVAL_SECONDS,
    LOG_FILE,
    LOG_LEVEL,
    PING_INTERVAL_SECONDS,
    RELAY_SUBPROTOCOL,
    SEND_QUEUE_SIZE,
)
from logging_config import get_logger, setup_logging
from relay.connection import Connection
from relay.context import RelayContext
from routers.rooms import rooms_router
from schemas.rooms import HealthResponse

# Setup logging
setup_logging(log_level=LOG_LEVEL, log_file=LOG_FILE)
logger = get_logger(__name__)


def create_app(
    ping_interval: float = PING_INTERVAL_SECONDS,
    check_interval: float = CHECK_INTERVAL_SECONDS,
    send_queue_size: int = SEND_QUEUE_SIZE,
) -> FastAPI:
    relay = RelayContext(ping_interval=ping_interval, check_interval=check_interval)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        redis_backend.check_connection()
        await relay.start()
        logger.info("Relay started")
        try:
            yield
        finally:
            await relay.stop()
            logger.info("Relay stopped")

    app = FastAPI(lifespan=lifespan)
    app.state.relay = relay

    # Configure CORS to allow all origins
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    app.include_router(rooms_router)

    @app.get("/health", response_model=HealthResponse)
    async def health():
        return HealthResponse(status="ok", **relay.stats())

    @app.websocket("/")
    async def relay_endpoint(websocket: WebSocket):
        """Relay socket: one client, frames dispatched by `type` until the socket closes."""
        offered = websocket.scope.get("subprotocols") or []
        subprotocol = RELAY_SUBPROTOCOL if RELAY_SUBPROTOCOL in offered else None
        await websocket.accept(subprotocol=subprotocol)

        connection = Connection(websocket, max_pending=send_queue_size)
        connection.start()
        relay.attach(connection)

        try:
            while True:
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    raise WebSocketDisconnect(message.get("code", 1000))
                # Binary frames carry the same JSON as text frames
                data = message.get("text")
                if data is None:
                    data = message.get("bytes") or b""
                relay.handle_frame(connection, data)
        except WebSocketDisconnect:
            logger.info(f"WebSocket disconnected normally for connection {connection.connection_id}")
        except Exception as e:
            if not connection.is_open:
                logger.debug(f"Read loop for closed connection {connection.connection_id} ended: {e}")
            else:
                logger.error(f"WebSocket error for connection {connection.connection_id}: {e}", exc_info=True)
        finally:
            await relay.disconnect(connection)

    logger.info("FastAPI application initialized")
    return app


app = create_app()
