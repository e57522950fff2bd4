"""Chat REST API router for the UI layer.

Endpoints:
    GET  /chat/rooms                       - Room summaries
    GET  /chat/rooms/{room_name}/messages  - Message log of one room
    GET  /chat/view                        - Selection, draft and active log
    POST /chat/select                      - Select a counterpart and backfill
    POST /chat/draft                       - Update the draft text
    POST /chat/send                        - Send a message optimistically
    POST /chat/unmatch                     - Unmatch and retract the room
"""
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from matchchat.context import ChatAppContext
from matchchat.deps import get_context

from .models import ChatMessage, DisplayInfo

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/chat", tags=["chat"])


class RoomSummary(BaseModel):
    roomName: str
    userId: str
    toName: DisplayInfo
    messageCount: int
    lastMessage: Optional[ChatMessage] = None


class ChatViewResponse(BaseModel):
    selectedUserId: Optional[str] = None
    roomName: Optional[str] = None
    draft: str = ""
    loading: bool = False
    error: Optional[str] = None
    messages: List[ChatMessage] = Field(default_factory=list)


class SelectRequest(BaseModel):
    counterpartId: str = Field(..., min_length=1)


class DraftRequest(BaseModel):
    text: str = ""


class SendRequest(BaseModel):
    """Request body for sending; the draft is used when ``message`` is omitted."""
    message: Optional[str] = None


class UnmatchRequest(BaseModel):
    counterpartId: str = Field(..., min_length=1)


def _view(context: ChatAppContext) -> ChatViewResponse:
    controller = context.controller
    room = controller.active_room
    return ChatViewResponse(
        selectedUserId=controller.selected_counterpart,
        roomName=room.roomName if room else None,
        draft=controller.draft,
        loading=context.directory.loading,
        error=context.directory.error,
        messages=controller.messages,
    )


@router.get("/rooms", response_model=List[RoomSummary])
async def list_rooms(context: ChatAppContext = Depends(get_context)) -> List[RoomSummary]:
    return [
        RoomSummary(
            roomName=room.roomName,
            userId=room.userId,
            toName=room.toName,
            messageCount=len(room.messages),
            lastMessage=room.messages[-1] if room.messages else None,
        )
        for room in context.directory.list_rooms()
    ]


@router.get("/rooms/{room_name}/messages", response_model=List[ChatMessage])
async def get_room_messages(
    room_name: str, context: ChatAppContext = Depends(get_context)
) -> List[ChatMessage]:
    if context.directory.get_room(room_name) is None:
        raise HTTPException(status_code=404, detail="Room does not exist")
    return context.directory.get_messages(room_name)


@router.get("/view", response_model=ChatViewResponse)
async def get_view(context: ChatAppContext = Depends(get_context)) -> ChatViewResponse:
    return _view(context)


@router.post("/select", response_model=ChatViewResponse)
async def select_counterpart(
    request: SelectRequest, context: ChatAppContext = Depends(get_context)
) -> ChatViewResponse:
    """Select a conversation and replace its log with the server history."""
    room = await context.controller.select_counterpart(request.counterpartId)
    if room is None:
        raise HTTPException(status_code=404, detail="Room does not exist")
    return _view(context)


@router.post("/draft", response_model=ChatViewResponse)
async def update_draft(
    request: DraftRequest, context: ChatAppContext = Depends(get_context)
) -> ChatViewResponse:
    context.controller.set_draft(request.text)
    return _view(context)


@router.post("/send", response_model=ChatMessage)
async def send_message(
    request: SendRequest, context: ChatAppContext = Depends(get_context)
) -> ChatMessage:
    """Send a message to the selected counterpart.

    Returns 409 when nothing was sent (blank text, no selection, or no live
    connection).
    """
    message = await context.controller.send(request.message)
    if message is None:
        raise HTTPException(status_code=409, detail="Message not sent")
    return message


@router.post("/unmatch")
async def unmatch(
    request: UnmatchRequest, context: ChatAppContext = Depends(get_context)
) -> dict:
    removed = await context.controller.unmatch(request.counterpartId)
    if not removed:
        raise HTTPException(status_code=502, detail="Unmatch failed")
    return {"status": "ok", "counterpartId": request.counterpartId}
