"""Tests for the Socket.IO transport."""
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from socketio import exceptions as socketio_exceptions

from matchchat.chat.transport import HandlerRegistry, SocketIOTransport, TransportError


@pytest.fixture
def sio():
    with patch("socketio.AsyncClient") as mock_client_cls:
        client = MagicMock()
        client.connect = AsyncMock()
        client.disconnect = AsyncMock()
        client.emit = AsyncMock()
        client.connected = True
        client.sid = "sid-1"
        mock_client_cls.return_value = client
        client.client_cls = mock_client_cls
        yield client


def bound_dispatcher(sio, event):
    for call in sio.on.call_args_list:
        if call.args[0] == event:
            return call.args[1]
    raise AssertionError(f"{event} was never bound")


class TestConstruction:
    def test_reconnection_disabled(self, sio):
        SocketIOTransport()
        kwargs = sio.client_cls.call_args.kwargs
        assert kwargs["reconnection"] is False

    def test_state_mirrors_client(self, sio):
        transport = SocketIOTransport()
        assert transport.connected is True
        assert transport.sid == "sid-1"


class TestConnect:
    @pytest.mark.asyncio
    async def test_passes_options_through(self, sio):
        transport = SocketIOTransport(transports=["polling"], socketio_path="chat/socket.io", connect_timeout=2.5)

        await transport.connect("http://api.test?userId=u1", headers={"Cookie": "token=abc"})

        sio.connect.assert_awaited_once_with(
            "http://api.test?userId=u1",
            headers={"Cookie": "token=abc"},
            transports=["polling"],
            socketio_path="chat/socket.io",
            wait_timeout=2.5,
        )

    @pytest.mark.asyncio
    async def test_defaults_to_websocket_only(self, sio):
        transport = SocketIOTransport()
        await transport.connect("http://api.test?userId=u1")
        kwargs = sio.connect.await_args.kwargs
        assert kwargs["transports"] == ["websocket"]
        assert kwargs["headers"] == {}

    @pytest.mark.asyncio
    async def test_connection_error_becomes_transport_error(self, sio):
        sio.connect.side_effect = socketio_exceptions.ConnectionError("Connection refused by the server")
        transport = SocketIOTransport()

        with pytest.raises(TransportError, match="Connection refused"):
            await transport.connect("http://api.test?userId=u1")

    @pytest.mark.asyncio
    async def test_disconnect_delegates(self, sio):
        transport = SocketIOTransport()
        await transport.disconnect()
        sio.disconnect.assert_awaited_once()


class TestEmit:
    @pytest.mark.asyncio
    async def test_emit_delegates(self, sio):
        transport = SocketIOTransport()
        await transport.emit("message", {"toUserId": "u2", "message": "hi", "room": "u1-u2"})
        sio.emit.assert_awaited_once_with("message", {"toUserId": "u2", "message": "hi", "room": "u1-u2"})

    @pytest.mark.asyncio
    async def test_emit_failure_becomes_transport_error(self, sio):
        sio.emit.side_effect = socketio_exceptions.BadNamespaceError("/ is not a connected namespace.")
        transport = SocketIOTransport()
        with pytest.raises(TransportError):
            await transport.emit("fetch-rooms")


class TestHandlerFanOut:
    @pytest.mark.asyncio
    async def test_event_bound_once_and_fans_out(self, sio):
        transport = SocketIOTransport()
        seen = []

        async def first(payload):
            seen.append(("first", payload))

        def second(payload):
            seen.append(("second", payload))

        transport.on("rooms", first)
        transport.on("rooms", second)

        assert [call.args[0] for call in sio.on.call_args_list] == ["rooms"]
        await bound_dispatcher(sio, "rooms")(["r1"])
        assert seen == [("first", ["r1"]), ("second", ["r1"])]

    @pytest.mark.asyncio
    async def test_cancelled_handler_no_longer_called(self, sio):
        transport = SocketIOTransport()
        seen = []
        sub_a = transport.on("message", lambda payload: seen.append(("a", payload)))
        sub_b = transport.on("message", lambda payload: seen.append(("b", payload)))
        dispatch = bound_dispatcher(sio, "message")

        sub_a.cancel()
        await dispatch("m1")
        sub_b.cancel()
        await dispatch("m2")

        assert seen == [("b", "m1")]
        assert sub_a.active is False and sub_b.active is False

    @pytest.mark.asyncio
    async def test_handler_may_cancel_itself_during_dispatch(self):
        registry = HandlerRegistry()
        calls = []

        def once(payload):
            calls.append(payload)
            subscription.cancel()

        subscription = registry.add("rooms", once)
        await registry.dispatch("rooms", 1)
        await registry.dispatch("rooms", 2)

        assert calls == [1]
        assert registry.count("rooms") == 0
