"""Real-time transport boundary.

``RealtimeTransport`` is what the connection manager needs from a socket:
connect, disconnect, emit and event subscription. ``SocketIOTransport``
implements it on top of ``python-socketio``'s ``AsyncClient``.

Socket.IO keeps one handler per event; this module fans each event out to
any number of handlers and hands back a :class:`Subscription` per
registration so handlers can be released individually.

Automatic reconnection is disabled; a new connection is only
opened when the session is re-evaluated.
"""
import inspect
import logging
from typing import Any, Callable, Dict, List, Optional, Protocol

import socketio
from socketio import exceptions as socketio_exceptions

logger = logging.getLogger(__name__)

EventHandler = Callable[..., Any]


class TransportError(Exception):
    """Connect or emit failure on the real-time transport."""


class Subscription:
    """Handle for one registered event handler; ``cancel()`` releases it."""

    def __init__(self, registry: "HandlerRegistry", event: str, handler: EventHandler) -> None:
        self._registry = registry
        self.event = event
        self.handler = handler
        self.active = True

    def cancel(self) -> None:
        if self.active:
            self._registry.remove(self.event, self.handler)
            self.active = False


class HandlerRegistry:
    """Event name -> ordered list of handlers."""

    def __init__(self) -> None:
        self._handlers: Dict[str, List[EventHandler]] = {}

    def add(self, event: str, handler: EventHandler) -> Subscription:
        self._handlers.setdefault(event, []).append(handler)
        return Subscription(self, event, handler)

    def remove(self, event: str, handler: EventHandler) -> None:
        handlers = self._handlers.get(event, [])
        if handler in handlers:
            handlers.remove(handler)

    def count(self, event: str) -> int:
        return len(self._handlers.get(event, []))

    async def dispatch(self, event: str, *args: Any) -> None:
        # Copy first: a handler may cancel its own subscription.
        for handler in list(self._handlers.get(event, [])):
            result = handler(*args)
            if inspect.isawaitable(result):
                await result


class RealtimeTransport(Protocol):
    connected: bool

    async def connect(self, url: str, headers: Optional[Dict[str, str]] = None) -> None: ...

    async def disconnect(self) -> None: ...

    async def emit(self, event: str, data: Any = None) -> None: ...

    def on(self, event: str, handler: EventHandler) -> Subscription: ...


class SocketIOTransport:
    """Socket.IO client transport with multi-handler event fan-out."""

    def __init__(
        self,
        transports: Optional[List[str]] = None,
        socketio_path: str = "socket.io",
        connect_timeout: float = 5.0,
    ) -> None:
        self._sio = socketio.AsyncClient(reconnection=False, logger=False, engineio_logger=False)
        self._transports = transports or ["websocket"]
        self._socketio_path = socketio_path
        self._connect_timeout = connect_timeout
        self._registry = HandlerRegistry()
        self._bound_events: set = set()

    @property
    def connected(self) -> bool:
        return self._sio.connected

    @property
    def sid(self) -> Optional[str]:
        return self._sio.sid

    def on(self, event: str, handler: EventHandler) -> Subscription:
        if event not in self._bound_events:
            self._sio.on(event, self._dispatcher(event))
            self._bound_events.add(event)
        return self._registry.add(event, handler)

    def _dispatcher(self, event: str) -> Callable[..., Any]:
        async def dispatch(*args: Any) -> None:
            await self._registry.dispatch(event, *args)
        return dispatch

    async def connect(self, url: str, headers: Optional[Dict[str, str]] = None) -> None:
        logger.debug("Socket connect: %s (transports=%s)", url, ",".join(self._transports))
        try:
            await self._sio.connect(
                url,
                headers=headers or {},
                transports=self._transports,
                socketio_path=self._socketio_path,
                wait_timeout=self._connect_timeout,
            )
        except socketio_exceptions.ConnectionError as exc:
            raise TransportError(str(exc) or "Socket connection failed") from exc

    async def disconnect(self) -> None:
        logger.debug("Socket disconnect (sid=%s)", self._sio.sid)
        await self._sio.disconnect()

    async def emit(self, event: str, data: Any = None) -> None:
        try:
            await self._sio.emit(event, data)
        except socketio_exceptions.SocketIOError as exc:
            raise TransportError(str(exc) or f"Failed to emit {event}") from exc
