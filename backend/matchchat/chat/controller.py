"""Chat view controller.

Bridges UI input to the room directory and the live connection. It holds
only transient view state, the selected counterpart and the draft text, and
never a copy of room or message data.
"""
import logging
from typing import List, Optional

from matchchat.api.client import ApiClient, ApiError, describe_error
from matchchat.notices import NoticeBoard, NoticeLevel
from matchchat.session.store import SessionStore

from .connection import ConnectionManager
from .directory import RoomDirectory
from .models import ChatMessage, OutboundMessage, Room, room_key, utc_now_iso
from .transport import TransportError

logger = logging.getLogger(__name__)

ROOM_MISSING_MESSAGE = "Room does not exist"
SEND_FAILED_MESSAGE = "Message could not be delivered"
UNMATCH_PATH = "/swipes/unmatch"
UNMATCH_ERROR_MESSAGE = "Unmatch failed"


class ChatViewController:
    """UI-facing chat logic: selection, sending, unmatching."""

    def __init__(
        self,
        session: SessionStore,
        connections: ConnectionManager,
        directory: RoomDirectory,
        api: ApiClient,
        notices: NoticeBoard,
    ) -> None:
        self._session = session
        self._connections = connections
        self._directory = directory
        self._api = api
        self._notices = notices
        self.selected_counterpart: Optional[str] = None
        self.draft = ""

    @property
    def active_room(self) -> Optional[Room]:
        if self.selected_counterpart is None:
            return None
        return self._directory.find_by_counterpart(self.selected_counterpart)

    @property
    def messages(self) -> List[ChatMessage]:
        room = self.active_room
        return list(room.messages) if room else []

    def set_draft(self, text: str) -> None:
        self.draft = text

    def clear(self) -> None:
        self.selected_counterpart = None
        self.draft = ""

    async def select_counterpart(self, counterpart_id: str) -> Optional[Room]:
        """Open the conversation with ``counterpart_id`` and backfill it."""
        room = self._directory.find_by_counterpart(counterpart_id)
        if room is None:
            self._notices.post(ROOM_MISSING_MESSAGE, NoticeLevel.WARNING)
            return None
        self.selected_counterpart = counterpart_id
        await self._directory.fetch_history(room.roomName)
        return room

    async def send(self, text: Optional[str] = None) -> Optional[ChatMessage]:
        """Send ``text`` (or the draft) to the selected counterpart.

        No-op when the text is blank, nothing is selected, or no connection
        is open. The message is appended locally right away; the emit is
        fire-and-forget.
        """
        if text is None:
            text = self.draft
        if not text or not text.strip():
            return None
        counterpart = self.selected_counterpart
        connection = self._connections.connection
        me = self._session.identity_id
        if counterpart is None or connection is None or me is None:
            return None

        room = self.active_room
        key = room.roomName if room else room_key(me, counterpart)
        outbound = OutboundMessage(toUserId=counterpart, message=text, room=key)
        try:
            await connection.emit("message", outbound.model_dump())
        except TransportError as exc:
            # The optimistic entry stays; there is no retry or failed marker.
            logger.error("Failed to emit message to %s: %s", counterpart, exc)
            self._notices.post(SEND_FAILED_MESSAGE)

        message = ChatMessage(
            fromUserId=me,
            toUserId=counterpart,
            message=text,
            createdAt=utc_now_iso(),
            room=key,
        )
        self._directory.append_outbound_message(message)
        self.draft = ""
        return message

    async def unmatch(self, counterpart_id: str) -> bool:
        """Unmatch on the server, then retract the shared room locally."""
        try:
            await self._api.post(UNMATCH_PATH, json={"candidateId": counterpart_id})
        except ApiError as exc:
            self._notices.post(describe_error(exc, UNMATCH_ERROR_MESSAGE))
            return False

        self._directory.remove_room(counterpart_id)
        if self.selected_counterpart == counterpart_id:
            self.clear()
        return True
