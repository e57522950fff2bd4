"""Chat data models shared by the directory, connection and controller.

Field names follow the socket/REST wire format (camelCase), the same way the
payloads arrive from the server:

    Room descriptor:  {roomName, toName: {name, avatar: {url}}, fromName?}
    Room list entry:  {userId, room: RoomDescriptor}
    Chat unlocked:    {users: [id, id], room: RoomDescriptor}
    Message:          {fromUserId|from, toUserId|to, message, createdAt, room}
"""
from datetime import datetime, timezone
from typing import List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


def room_key(user_a: str, user_b: str) -> str:
    """Canonical room key for two participants.

    Order-independent, so both sides derive the same key before the server
    has assigned a room name.
    """
    return "-".join(sorted([user_a, user_b]))


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class Avatar(BaseModel):
    url: Optional[str] = None


class DisplayInfo(BaseModel):
    """Counterpart name and avatar, as supplied by the server."""
    name: Optional[str] = None
    avatar: Avatar = Field(default_factory=Avatar)


class RoomDescriptor(BaseModel):
    roomName: str = Field(..., min_length=1)
    toName: DisplayInfo = Field(default_factory=DisplayInfo)
    fromName: Optional[DisplayInfo] = None


class RoomListEntry(BaseModel):
    """One entry of a ``rooms`` push: the counterpart and their room."""
    userId: str = Field(..., min_length=1)
    room: RoomDescriptor


class ChatUnlocked(BaseModel):
    """A ``chat-unlocked`` push announcing a new mutual match."""
    users: List[str]
    room: RoomDescriptor


class ChatMessage(BaseModel):
    """An immutable chat message.

    Attributes:
        fromUserId: Sender id (``from`` on some server payloads).
        toUserId: Recipient id (``to`` on some server payloads); pushes may omit it.
        message: Message text.
        createdAt: ISO-8601 timestamp.
        room: Key of the room this message belongs to.
    """
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    fromUserId: str = Field(..., validation_alias=AliasChoices("fromUserId", "from"))
    toUserId: Optional[str] = Field(None, validation_alias=AliasChoices("toUserId", "to"))
    message: str = ""
    createdAt: str = Field(default_factory=utc_now_iso)
    room: Optional[str] = None


class OutboundMessage(BaseModel):
    """Payload of the outbound ``message`` socket event."""
    toUserId: str
    message: str
    room: str


class Room(BaseModel):
    """A conversation with exactly one counterpart.

    Attributes:
        roomName: Canonical room key.
        userId: Counterpart id.
        toName: Counterpart display info.
        fromName: Own display info, when the server sends it.
        messages: Message log in append order.
    """
    roomName: str
    userId: str
    toName: DisplayInfo = Field(default_factory=DisplayInfo)
    fromName: Optional[DisplayInfo] = None
    messages: List[ChatMessage] = Field(default_factory=list)

    @classmethod
    def from_descriptor(cls, counterpart_id: str, descriptor: RoomDescriptor) -> "Room":
        return cls(
            roomName=descriptor.roomName,
            userId=counterpart_id,
            toName=descriptor.toName,
            fromName=descriptor.fromName,
        )
