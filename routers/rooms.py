from fastapi import APIRouter, HTTPException, Request
from starlette.concurrency import run_in_threadpool
from schemas.rooms import CreateRoomRequest, CreateRoomResponse, CloseRoomRequest, RoomDetailsResponse
from backend import redis_backend
from logging_config import get_logger

logger = get_logger(__name__)

rooms_router = APIRouter(prefix="/api/rooms", tags=["rooms"])


def _client_host(request: Request) -> str:
    return request.client.host if request and request.client else "unknown"


# Plain def: password hashing and redis calls block, so these routes run in the threadpool
@rooms_router.post("", response_model=CreateRoomResponse)
def create_room(room: CreateRoomRequest, request: Request):
    # Body: { "roomId": "...", "password": "..." } -> { "success": true, "roomId": "..." }
    # Provisioning is housekeeping only: joining over the relay socket does not consult this record.
    logger.info(f"Room creation request from {_client_host(request)}, roomId: {room.roomId}")
    if not room.roomId or not room.password:
        logger.warning("Room creation failed: roomId or password missing")
        raise HTTPException(status_code=400, detail="Room ID and password are required")

    try:
        redis_backend.create_room(room.roomId, room.password)
    except Exception as e:
        logger.error(f"Error creating room: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to create room")

    logger.info(f"Room {room.roomId} created successfully")
    return CreateRoomResponse(success=True, roomId=room.roomId)


@rooms_router.get("/{room_id}", response_model=RoomDetailsResponse)
async def get_room_details(room_id: str, request: Request):
    """
    Get room details: provisioning metadata (if the room was created through
    this API) and the members currently joined on the relay.
    """
    logger.info(f"Room details request for {room_id} from {_client_host(request)}")
    relay = request.app.state.relay

    try:
        room = await run_in_threadpool(redis_backend.get_room, room_id)
    except Exception as e:
        logger.error(f"Error fetching room {room_id}: {e}", exc_info=True)
        room = None

    members = sorted(relay.rooms.members_of(room_id))
    if not room and not members:
        logger.warning(f"Room details failed: Room {room_id} not found")
        raise HTTPException(status_code=404, detail="Room not found")

    logger.info(f"Room details retrieved for {room_id}: {len(members)} users online")
    return RoomDetailsResponse(
        roomId=room_id,
        provisioned=bool(room),
        created_at=room.get("created_at") if room else None,
        expires_at=room.get("expires_at") if room else None,
        online_users_count=len(members),
        online_users=members,
    )


@rooms_router.post("/{room_id}/close")
def close_room(room_id: str, close_room_request: CloseRoomRequest, request: Request):
    # Deletes the provisioned record; members already joined on the relay are not disconnected.
    logger.info(f"Close room request for {room_id} from {_client_host(request)}")

    room = redis_backend.get_room(room_id)
    if not room:
        logger.warning(f"Close room failed: Room {room_id} not found")
        raise HTTPException(status_code=404, detail="Room not found")

    if not close_room_request.password or not redis_backend.verify_room_password(room_id, close_room_request.password):
        logger.warning(f"Close room failed: Invalid password for room {room_id}")
        raise HTTPException(status_code=401, detail="Invalid password")

    redis_backend.delete_room(room_id)
    logger.info(f"Room {room_id} closed successfully")
    return {"message": "Room closed successfully"}
