"""Connection manager for the real-time chat socket.

Maintains one invariant: at most one live connection exists, and it is
always tagged with the current identity id. No connection exists while
nobody is signed in.

States:
    ABSENT      no connection
    CONNECTING  transport handshake in flight
    OPEN        connect acknowledged; ``connection`` is usable

Transitions:
    ABSENT -> CONNECTING   identity became non-null
    CONNECTING -> OPEN     transport acknowledged the connect
    CONNECTING -> ABSENT   connect failed (logged, noticed, no retry)
    OPEN -> ABSENT         identity cleared or changed, logout, server disconnect

A connection is never re-tagged. Switching identities always goes through
ABSENT: the old transport is fully disconnected before the new one is
created. ``sync`` and ``close`` run under one ``asyncio.Lock`` so that two
transitions interleaving at an ``await`` cannot leave two transports alive.

Event handlers registered through :meth:`Connection.on` live exactly as long
as the connection; closing it cancels every subscription.

Thread Safety:
    Designed for a single asyncio event loop. NOT thread-safe.
"""
import asyncio
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional
from urllib.parse import urlencode

from matchchat.notices import NoticeBoard

from .transport import EventHandler, RealtimeTransport, Subscription, TransportError

logger = logging.getLogger(__name__)

TransportFactory = Callable[[], RealtimeTransport]
OpenListener = Callable[["Connection"], Awaitable[None]]

SOCKET_ERROR_MESSAGE = "Chat connection failed"


class ConnectionState(str, Enum):
    ABSENT = "absent"
    CONNECTING = "connecting"
    OPEN = "open"


class Connection:
    """A live transport handle tagged with the identity it was opened for."""

    def __init__(self, identity_id: str, transport: RealtimeTransport) -> None:
        self.identity_id = identity_id
        self.transport = transport
        self.closed = False
        self._subscriptions: List[Subscription] = []

    def on(self, event: str, handler: EventHandler) -> Subscription:
        """Subscribe to an inbound event for the lifetime of this connection."""
        subscription = self.transport.on(event, handler)
        self._subscriptions.append(subscription)
        return subscription

    async def emit(self, event: str, data: Any = None) -> None:
        """Send an event without waiting for any acknowledgment."""
        if self.closed:
            raise TransportError(f"Connection for {self.identity_id} is closed")
        await self.transport.emit(event, data)

    @property
    def subscription_count(self) -> int:
        return sum(1 for sub in self._subscriptions if sub.active)

    def release_subscriptions(self) -> None:
        for subscription in self._subscriptions:
            subscription.cancel()
        self._subscriptions.clear()


class ConnectionManager:
    """Owns the lifecycle of the single chat connection.

    Attributes:
        state: Current :class:`ConnectionState`.
        last_error: Message of the last failed connect, cleared on success.
        opened_total: Number of connections opened so far.
    """

    def __init__(
        self,
        base_url: str,
        transport_factory: TransportFactory,
        notices: Optional[NoticeBoard] = None,
        cookie_provider: Optional[Callable[[], Optional[str]]] = None,
    ) -> None:
        self._base_url = base_url
        self._transport_factory = transport_factory
        self._notices = notices
        self._cookie_provider = cookie_provider
        self._lock = asyncio.Lock()
        self._connection: Optional[Connection] = None
        self._open_listeners: List[OpenListener] = []
        self.state = ConnectionState.ABSENT
        self.last_error: Optional[str] = None
        self.opened_total = 0

    @property
    def connection(self) -> Optional[Connection]:
        """The open connection, or None while absent or still connecting."""
        if self.state is ConnectionState.OPEN:
            return self._connection
        return None

    @property
    def identity_id(self) -> Optional[str]:
        return self._connection.identity_id if self._connection else None

    def on_open(self, listener: OpenListener) -> Callable[[], None]:
        """Call ``listener`` with every newly opened connection."""
        self._open_listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._open_listeners:
                self._open_listeners.remove(listener)

        return unsubscribe

    async def sync(self, identity_id: Optional[str]) -> Optional[Connection]:
        """Bring the connection in line with the current identity.

        Keeps a live connection already tagged with ``identity_id``; otherwise
        closes whatever exists and, if there is an identity, opens a new one.
        """
        async with self._lock:
            current = self._connection
            if current is not None and identity_id is not None and current.identity_id == identity_id:
                return self.connection
            if current is not None:
                await self._close_locked("identity changed")
            if identity_id is None:
                return None
            return await self._open_locked(identity_id)

    async def close(self, reason: str = "closed") -> None:
        """Close the connection, if any, without opening a replacement."""
        async with self._lock:
            await self._close_locked(reason)

    # =========================================================================
    # Internals (lock held)
    # =========================================================================

    async def _open_locked(self, identity_id: str) -> Optional[Connection]:
        self.state = ConnectionState.CONNECTING
        transport = self._transport_factory()
        connection = Connection(identity_id, transport)
        self._connection = connection

        connection.on("connect", lambda: logger.info("[Socket] connected for user %s", identity_id))
        connection.on("connect_error", lambda data=None: self._handle_connect_error(connection, data))
        connection.on("disconnect", lambda *args: self._handle_server_disconnect(connection, args))

        try:
            await transport.connect(self._connect_url(identity_id), headers=self._handshake_headers())
        except TransportError as exc:
            self._fail_connect(connection, str(exc))
            return None

        if self._connection is not connection:
            # Dropped by a disconnect event while the handshake was finishing.
            return None

        self.state = ConnectionState.OPEN
        self.last_error = None
        self.opened_total += 1
        logger.info("[Socket] connection open for user %s", identity_id)

        for listener in list(self._open_listeners):
            await listener(connection)
        return connection

    async def _close_locked(self, reason: str) -> None:
        connection = self._connection
        if connection is None:
            return
        self._connection = None
        self.state = ConnectionState.ABSENT
        connection.closed = True
        connection.release_subscriptions()
        try:
            await connection.transport.disconnect()
        except TransportError as exc:
            logger.warning("[Socket] error while disconnecting %s: %s", connection.identity_id, exc)
        logger.info("[Socket] disconnected for user %s (%s)", connection.identity_id, reason)

    def _connect_url(self, identity_id: str) -> str:
        return f"{self._base_url}?{urlencode({'userId': identity_id})}"

    def _handshake_headers(self) -> Dict[str, str]:
        cookie = self._cookie_provider() if self._cookie_provider else None
        return {"Cookie": cookie} if cookie else {}

    def _fail_connect(self, connection: Connection, message: str) -> None:
        logger.error("[Socket] connection error for user %s: %s", connection.identity_id, message)
        connection.closed = True
        connection.release_subscriptions()
        if self._connection is connection:
            self._connection = None
            self.state = ConnectionState.ABSENT
        self.last_error = message or SOCKET_ERROR_MESSAGE
        if self._notices is not None:
            self._notices.post(SOCKET_ERROR_MESSAGE)

    def _handle_connect_error(self, connection: Connection, data: Any) -> None:
        logger.error("[Socket] connect_error for user %s: %s", connection.identity_id, data)

    def _handle_server_disconnect(self, connection: Connection, args: tuple) -> None:
        # Our own close() releases subscriptions before disconnecting, so this
        # only runs when the server side dropped the connection.
        if self._connection is not connection:
            return
        logger.warning("[Socket] server closed connection for user %s %s", connection.identity_id, args)
        self._connection = None
        self.state = ConnectionState.ABSENT
        connection.closed = True
        connection.release_subscriptions()
