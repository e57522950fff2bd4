"""Room directory: the in-memory rooms of the current identity.

Rooms are keyed by ``roomName`` and only ever created from server data (a
``rooms`` push or a ``chat-unlocked`` push); the client never invents one.
Insertion is insert-if-absent, so applying the same room list twice, or in a
different order, ends in the same state.

Message logs are in append order, not timestamp order. Outbound messages are
appended optimistically and never reconciled against a server copy; inbound
messages authored by the owner are dropped as echoes of those optimistic
entries. A message for an unknown room is dropped.

The directory is cleared wholesale on every identity change. Each reset
bumps ``generation`` so a history fetch that resolves after a reset is
discarded instead of writing into the next session's rooms.
"""
import logging
from typing import Any, Dict, Iterable, List, Optional

from pydantic import ValidationError

from matchchat.api.client import ApiClient, ApiError, describe_error
from matchchat.notices import NoticeBoard

from .models import ChatMessage, ChatUnlocked, Room, RoomDescriptor, RoomListEntry

logger = logging.getLogger(__name__)

HISTORY_PATH = "/chat/messages/{room_name}"
HISTORY_ERROR_MESSAGE = "Failed to fetch messages"


class RoomDirectory:
    """Keyed collection of rooms and their message logs.

    Attributes:
        rooms: roomName -> Room.
        owner_id: Identity the rooms belong to (None when signed out).
        generation: Incremented by every reset.
        loading: True while a history fetch is in flight.
        error: Message of the last failed history fetch.
    """

    def __init__(self, api: ApiClient, notices: Optional[NoticeBoard] = None) -> None:
        self._api = api
        self._notices = notices
        self.rooms: Dict[str, Room] = {}
        self.owner_id: Optional[str] = None
        self.generation = 0
        self.loading = False
        self.error: Optional[str] = None

    # =========================================================================
    # Lookup
    # =========================================================================

    def get_room(self, room_name: str) -> Optional[Room]:
        return self.rooms.get(room_name)

    def find_by_counterpart(self, counterpart_id: str) -> Optional[Room]:
        for room in self.rooms.values():
            if room.userId == counterpart_id:
                return room
        return None

    def list_rooms(self) -> List[Room]:
        return list(self.rooms.values())

    def get_messages(self, room_name: str) -> List[ChatMessage]:
        room = self.rooms.get(room_name)
        return list(room.messages) if room else []

    # =========================================================================
    # Server-pushed rooms
    # =========================================================================

    def _insert(self, counterpart_id: str, descriptor: RoomDescriptor) -> Optional[Room]:
        if descriptor.roomName in self.rooms:
            return None
        room = Room.from_descriptor(counterpart_id, descriptor)
        self.rooms[room.roomName] = room
        logger.debug("Room added: %s (counterpart %s)", room.roomName, counterpart_id)
        return room

    def apply_room_list(self, entries: Iterable[Any]) -> int:
        """Insert every room of a ``rooms`` push that is not already known.

        Returns:
            Number of rooms inserted.
        """
        inserted = 0
        for raw in entries or []:
            try:
                entry = raw if isinstance(raw, RoomListEntry) else RoomListEntry.model_validate(raw)
            except ValidationError as exc:
                logger.warning("Skipping malformed room list entry %r: %s", raw, exc)
                continue
            if self._insert(entry.userId, entry.room) is not None:
                inserted += 1
        logger.info("Room list applied: %d new, %d total", inserted, len(self.rooms))
        return inserted

    def apply_room_unlocked(self, participant_ids: List[str], descriptor: Any) -> Optional[Room]:
        """Insert the room announced by a new mutual match.

        The counterpart is the participant that is not the owner.
        """
        try:
            payload = ChatUnlocked.model_validate({"users": participant_ids, "room": descriptor})
        except ValidationError as exc:
            logger.warning("Ignoring malformed chat-unlocked payload: %s", exc)
            return None

        counterpart = next((uid for uid in payload.users if uid != self.owner_id), None)
        if counterpart is None:
            logger.warning("chat-unlocked without a counterpart: %s", payload.users)
            return None
        room = self._insert(counterpart, payload.room)
        if room is not None:
            logger.info("Chat unlocked with %s in room %s", counterpart, room.roomName)
        return room

    def remove_room(self, counterpart_id: str) -> Optional[Room]:
        """Remove the room shared with ``counterpart_id`` (after an unmatch)."""
        room = self.find_by_counterpart(counterpart_id)
        if room is None:
            return None
        del self.rooms[room.roomName]
        logger.info("Room removed: %s (counterpart %s)", room.roomName, counterpart_id)
        return room

    # =========================================================================
    # Messages
    # =========================================================================

    def append_inbound_message(self, message: Any) -> bool:
        """Append a server-pushed message; returns False when it is dropped."""
        try:
            msg = message if isinstance(message, ChatMessage) else ChatMessage.model_validate(message)
        except ValidationError as exc:
            logger.warning("Dropping malformed inbound message: %s", exc)
            return False

        if not msg.message:
            return False
        if self.owner_id is not None and msg.fromUserId == self.owner_id:
            return False  # echo of our own optimistic send
        room = self.rooms.get(msg.room) if msg.room else None
        if room is None:
            logger.warning("Dropping message for unknown room %r from %s", msg.room, msg.fromUserId)
            return False
        room.messages.append(msg)
        return True

    def append_outbound_message(self, message: ChatMessage) -> bool:
        """Append a locally sent message without waiting for the server."""
        room = self.rooms.get(message.room) if message.room else None
        if room is None:
            logger.warning("Dropping outbound message for unknown room %r", message.room)
            return False
        room.messages.append(message)
        return True

    async def fetch_history(self, room_name: str) -> Optional[List[ChatMessage]]:
        """Load the full history of a room and replace its log with it.

        An empty history leaves the log untouched.

        Returns:
            The resulting log, or None when the fetch failed or was discarded.
        """
        generation = self.generation
        self.loading = True
        self.error = None
        try:
            payload = await self._api.get(HISTORY_PATH.format(room_name=room_name))
        except ApiError as exc:
            if generation == self.generation:
                self.loading = False
                self.error = describe_error(exc, HISTORY_ERROR_MESSAGE)
                if self._notices is not None:
                    self._notices.post(self.error)
            return None

        if generation != self.generation:
            logger.debug("Discarding history for %s fetched before a reset", room_name)
            return None
        self.loading = False

        room = self.rooms.get(room_name)
        if room is None:
            logger.warning("History fetched for unknown room %s; ignoring", room_name)
            return None

        messages: List[ChatMessage] = []
        for raw in payload or []:
            try:
                messages.append(ChatMessage.model_validate(raw))
            except ValidationError as exc:
                logger.warning("Skipping malformed history message in %s: %s", room_name, exc)
        if not messages:
            logger.info("History for %s is empty; keeping %d local messages", room_name, len(room.messages))
            return list(room.messages)
        room.messages = messages
        logger.info("History loaded for %s: %d messages", room_name, len(messages))
        return list(messages)

    # =========================================================================
    # Reset
    # =========================================================================

    def reset(self, owner_id: Optional[str] = None) -> None:
        """Drop every room and start a new generation for ``owner_id``."""
        dropped = len(self.rooms)
        self.rooms = {}
        self.owner_id = owner_id
        self.generation += 1
        self.loading = False
        self.error = None
        logger.info("Room directory reset (%d rooms dropped, owner=%s)", dropped, owner_id)
