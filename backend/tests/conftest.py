"""Shared test fixtures: fake socket transport and mock REST API."""
import json
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

import httpx
import pytest

from matchchat.api.client import ApiClient
from matchchat.chat.transport import HandlerRegistry, Subscription, TransportError
from matchchat.config import AppConfig
from matchchat.context import ChatAppContext

API_BASE = "http://api.test"


class FakeTransport:
    """In-memory stand-in for the Socket.IO client."""

    def __init__(self, ledger: "FakeTransportFactory", fail_with: Optional[str] = None) -> None:
        self._ledger = ledger
        self._fail_with = fail_with
        self.registry = HandlerRegistry()
        self.connected = False
        self.url: Optional[str] = None
        self.headers: Dict[str, str] = {}
        self.emitted: List[Tuple[str, Any]] = []

    def on(self, event, handler) -> Subscription:
        return self.registry.add(event, handler)

    async def connect(self, url, headers=None) -> None:
        self.url = url
        self.headers = headers or {}
        if self._fail_with:
            await self.registry.dispatch("connect_error", self._fail_with)
            raise TransportError(self._fail_with)
        assert self._ledger.live_count() == 0, "a second transport went live"
        self.connected = True
        await self.registry.dispatch("connect")

    async def disconnect(self) -> None:
        if self.connected:
            self.connected = False
            await self.registry.dispatch("disconnect", "client disconnect")

    async def emit(self, event, data=None) -> None:
        if not self.connected:
            raise TransportError("not connected")
        self.emitted.append((event, data))

    # Server side helpers

    async def push(self, event: str, *args: Any) -> None:
        await self.registry.dispatch(event, *args)

    async def server_disconnect(self) -> None:
        self.connected = False
        await self.registry.dispatch("disconnect", "transport close")

    def emitted_events(self, event: str) -> List[Any]:
        return [data for name, data in self.emitted if name == event]


class FakeTransportFactory:
    """Creates FakeTransports and remembers every one of them."""

    def __init__(self) -> None:
        self.created: List[FakeTransport] = []
        self.failures: List[str] = []

    def fail_next(self, message: str = "xhr poll error") -> None:
        self.failures.append(message)

    def live_count(self) -> int:
        return sum(1 for t in self.created if t.connected)

    @property
    def last(self) -> FakeTransport:
        return self.created[-1]

    def __call__(self) -> FakeTransport:
        fail_with = self.failures.pop(0) if self.failures else None
        transport = FakeTransport(self, fail_with=fail_with)
        self.created.append(transport)
        return transport


Responder = Union[Tuple[int, Any], Callable[[httpx.Request], httpx.Response]]


class FakeApi:
    """Route table behind an ``httpx.MockTransport``."""

    def __init__(self) -> None:
        self.routes: Dict[Tuple[str, str], Responder] = {}
        self.requests: List[httpx.Request] = []

    def set(self, method: str, path: str, responder: Responder) -> None:
        self.routes[(method, path)] = responder

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        responder = self.routes.get((request.method, request.url.path))
        if responder is None:
            return httpx.Response(404, json={"message": "Not found"})
        if callable(responder):
            return responder(request)
        status, body = responder
        return httpx.Response(status, json=body)

    def client(self) -> ApiClient:
        return ApiClient(API_BASE, timeout=10.0, transport=httpx.MockTransport(self.handler))

    def calls(self, method: str, path: str) -> List[httpx.Request]:
        return [r for r in self.requests if r.method == method and r.url.path == path]

    @staticmethod
    def body(request: httpx.Request) -> Any:
        return json.loads(request.content) if request.content else None


def me_payload(user_id: str, **extra: Any) -> Dict[str, Any]:
    return {"success": True, "data": {"id": user_id, "email": f"{user_id}@example.com", **extra}}


def room_entry(user_id: str, room_name: str, name: str = "Bea", url: str = "/b.png") -> Dict[str, Any]:
    return {"userId": user_id, "room": {"roomName": room_name, "toName": {"name": name, "avatar": {"url": url}}}}


def inbound(sender: str, recipient: str, text: str, room: Optional[str]) -> Dict[str, Any]:
    return {"from": sender, "to": recipient, "message": text, "createdAt": "2025-01-01T00:00:00Z", "room": room}


@pytest.fixture
def fake_api() -> FakeApi:
    return FakeApi()


@pytest.fixture
def transports() -> FakeTransportFactory:
    return FakeTransportFactory()


@pytest.fixture
def app_config() -> AppConfig:
    return AppConfig(api={"base_url": API_BASE}, session={"refresh_on_start": False})


@pytest.fixture
def make_context(app_config, fake_api, transports):
    """Coroutine factory building a wired ChatAppContext on fakes."""

    async def factory(config: Optional[AppConfig] = None) -> ChatAppContext:
        return await ChatAppContext.create(
            config or app_config, api=fake_api.client(), transport_factory=transports
        )

    return factory
