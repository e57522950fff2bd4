"""Application context: one explicitly constructed home for all chat state.

``ChatAppContext`` replaces process-wide singletons. It builds the API
client, the session store, the connection manager, the room directory and
the view controller, and wires them together:

    session identity change -> close connection, reset rooms, reopen
    connection opened       -> subscribe room/message events, fetch rooms

``create()`` wires and (optionally) runs the first session check;
``teardown()`` undoes everything.
"""
import logging
from typing import Any, Callable, List, Optional

from matchchat.api.client import ApiClient
from matchchat.chat.connection import Connection, ConnectionManager, TransportFactory
from matchchat.chat.controller import ChatViewController
from matchchat.chat.directory import RoomDirectory
from matchchat.chat.transport import SocketIOTransport, TransportError
from matchchat.config import AppConfig
from matchchat.notices import NoticeBoard
from matchchat.session.store import Identity, SessionStore

logger = logging.getLogger(__name__)


def socketio_transport_factory(config: AppConfig) -> TransportFactory:
    realtime = config.realtime

    def factory() -> SocketIOTransport:
        return SocketIOTransport(
            transports=realtime.transports,
            socketio_path=realtime.socketio_path,
            connect_timeout=realtime.connect_timeout_seconds,
        )

    return factory


class ChatAppContext:
    """Owns the chat subsystem for one UI root."""

    def __init__(
        self,
        config: AppConfig,
        api: Optional[ApiClient] = None,
        transport_factory: Optional[TransportFactory] = None,
    ) -> None:
        self.config = config
        self.api = api or ApiClient(config.api.base_url, timeout=config.api.timeout_seconds)
        self.notices = NoticeBoard(max_items=config.notices.max_items)
        self.session = SessionStore(self.api)
        self.connections = ConnectionManager(
            config.api.base_url,
            transport_factory or socketio_transport_factory(config),
            notices=self.notices,
            cookie_provider=self.api.cookie_header,
        )
        self.directory = RoomDirectory(self.api, self.notices)
        self.controller = ChatViewController(
            self.session, self.connections, self.directory, self.api, self.notices
        )
        self._cleanups: List[Callable[[], None]] = []

    @classmethod
    async def create(
        cls,
        config: AppConfig,
        api: Optional[ApiClient] = None,
        transport_factory: Optional[TransportFactory] = None,
    ) -> "ChatAppContext":
        context = cls(config, api=api, transport_factory=transport_factory)
        context._cleanups.append(context.session.subscribe(context._on_identity_change))
        context._cleanups.append(context.connections.on_open(context._on_connection_open))
        if config.session.refresh_on_start:
            await context.session.refresh()
        return context

    async def teardown(self) -> None:
        for cleanup in self._cleanups:
            cleanup()
        self._cleanups.clear()
        await self.connections.close("teardown")
        self.directory.reset()
        self.controller.clear()
        await self.api.aclose()
        logger.info("Chat context torn down")

    # =========================================================================
    # Wiring
    # =========================================================================

    async def _on_identity_change(
        self, previous: Optional[Identity], current: Optional[Identity]
    ) -> None:
        previous_id = previous.id if previous else None
        current_id = current.id if current else None
        if previous_id != current_id or self.directory.owner_id != current_id:
            # Close before resetting so no handler of the old connection can
            # write into the new session's directory.
            await self.connections.close("identity changed")
            self.directory.reset(owner_id=current_id)
            self.controller.clear()
        await self.connections.sync(current_id)

    async def _on_connection_open(self, connection: Connection) -> None:
        owner = connection.identity_id

        def on_rooms(entries: Any = None) -> None:
            if self.directory.owner_id != owner:
                return
            self.directory.apply_room_list(entries or [])

        def on_chat_unlocked(payload: Any = None) -> None:
            if self.directory.owner_id != owner or not isinstance(payload, dict):
                return
            self.directory.apply_room_unlocked(payload.get("users") or [], payload.get("room"))

        def on_message(payload: Any = None) -> None:
            if self.directory.owner_id != owner or not isinstance(payload, dict):
                return
            self.directory.append_inbound_message(payload)

        connection.on("rooms", on_rooms)
        connection.on("chat-unlocked", on_chat_unlocked)
        connection.on("message", on_message)

        try:
            await connection.emit("fetch-rooms")
        except TransportError as exc:
            logger.error("Failed to request room list for %s: %s", owner, exc)
