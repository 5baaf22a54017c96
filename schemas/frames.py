from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, Field, conint


Byte = conint(ge=0, le=255)


class RegisterFrame(BaseModel):
    clientId: Optional[str] = None
    publicKey: list[Byte] = Field(
        default_factory=list,
        validation_alias=AliasChoices("kyberPublicKey", "publicKey"),
    )


class JoinRoomFrame(BaseModel):
    roomId: str = Field(..., min_length=1)
    # Any non-empty string passes; see verify_room_token
    authToken: Any = None


class KeyExchangeFrame(BaseModel):
    recipientId: str
    publicKey: Any = None


class MessageEntry(BaseModel):
    recipientId: str
    encryptedData: Any = None


class MessageFrame(BaseModel):
    roomId: Optional[str] = None
    messages: list[MessageEntry]
    timestamp: Any = None
