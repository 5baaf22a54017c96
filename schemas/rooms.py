from pydantic import BaseModel
from typing import Optional


class CreateRoomRequest(BaseModel):
    roomId: Optional[str] = None
    password: Optional[str] = None

class CreateRoomResponse(BaseModel):
    success: bool
    roomId: str

class CloseRoomRequest(BaseModel):
    password: Optional[str] = None

class RoomDetailsResponse(BaseModel):
    roomId: str
    provisioned: bool
    created_at: Optional[str] = None
    expires_at: Optional[str] = None
    online_users_count: int
    online_users: list[str]

class HealthResponse(BaseModel):
    status: str
    open_connections: int
    registered_clients: int
    rooms: int
