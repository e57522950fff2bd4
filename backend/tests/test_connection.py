"""Tests for the connection manager state machine."""
import pytest

from matchchat.chat.connection import ConnectionManager, ConnectionState
from matchchat.chat.transport import TransportError
from matchchat.notices import NoticeBoard


@pytest.fixture
def notices():
    return NoticeBoard()


@pytest.fixture
def manager(transports, notices):
    return ConnectionManager("http://api.test", transports, notices=notices,
                             cookie_provider=lambda: "session=abc")


class TestOpenClose:
    @pytest.mark.asyncio
    async def test_sync_opens_tagged_connection(self, manager, transports):
        connection = await manager.sync("u1")

        assert manager.state is ConnectionState.OPEN
        assert manager.connection is connection
        assert connection.identity_id == "u1"
        assert transports.last.url == "http://api.test?userId=u1"
        assert transports.last.headers == {"Cookie": "session=abc"}

    @pytest.mark.asyncio
    async def test_sync_same_identity_keeps_connection(self, manager, transports):
        first = await manager.sync("u1")
        second = await manager.sync("u1")
        assert first is second
        assert len(transports.created) == 1

    @pytest.mark.asyncio
    async def test_identity_switch_closes_before_opening(self, manager, transports):
        await manager.sync("u1")
        old = transports.last
        connection = await manager.sync("u2")

        assert old.connected is False
        assert transports.live_count() == 1
        assert connection.identity_id == "u2"
        assert manager.identity_id == "u2"

    @pytest.mark.asyncio
    async def test_sync_none_closes(self, manager, transports):
        await manager.sync("u1")
        assert await manager.sync(None) is None
        assert manager.state is ConnectionState.ABSENT
        assert manager.connection is None
        assert transports.live_count() == 0

    @pytest.mark.asyncio
    async def test_close_without_connection_is_noop(self, manager):
        await manager.close()
        assert manager.state is ConnectionState.ABSENT

    @pytest.mark.asyncio
    async def test_at_most_one_live_connection_over_any_sequence(self, manager, transports):
        for identity in ["u1", "u1", "u2", None, "u3", "u1", None, None, "u2"]:
            await manager.sync(identity)
            assert transports.live_count() <= 1
            if identity is None:
                assert manager.connection is None
            else:
                assert manager.connection.identity_id == identity


class TestFailures:
    @pytest.mark.asyncio
    async def test_connect_error_leaves_absent_without_retry(self, manager, transports, notices):
        transports.fail_next("websocket error")

        assert await manager.sync("u1") is None
        assert manager.state is ConnectionState.ABSENT
        assert manager.last_error == "websocket error"
        assert len(transports.created) == 1
        assert [n.text for n in notices.items] == ["Chat connection failed"]

    @pytest.mark.asyncio
    async def test_later_sync_reconnects_after_failure(self, manager, transports):
        transports.fail_next()
        await manager.sync("u1")
        connection = await manager.sync("u1")

        assert connection is not None
        assert manager.last_error is None
        assert len(transports.created) == 2

    @pytest.mark.asyncio
    async def test_server_disconnect_drops_handle(self, manager, transports):
        connection = await manager.sync("u1")
        await transports.last.server_disconnect()

        assert manager.state is ConnectionState.ABSENT
        assert manager.connection is None
        assert connection.closed is True
        assert len(transports.created) == 1


class TestSubscriptions:
    @pytest.mark.asyncio
    async def test_handlers_released_on_close(self, manager, transports):
        received = []
        connection = await manager.sync("u1")
        connection.on("message", received.append)
        transport = transports.last

        await transport.push("message", {"n": 1})
        await manager.close("logout")
        await transport.push("message", {"n": 2})

        assert received == [{"n": 1}]
        assert connection.subscription_count == 0
        assert transport.registry.count("message") == 0

    @pytest.mark.asyncio
    async def test_open_listener_called_per_connection(self, manager):
        opened = []

        async def listener(connection):
            opened.append(connection.identity_id)

        unsubscribe = manager.on_open(listener)
        await manager.sync("u1")
        await manager.sync("u2")
        unsubscribe()
        await manager.sync("u3")

        assert opened == ["u1", "u2"]
        assert manager.opened_total == 3

    @pytest.mark.asyncio
    async def test_emit_on_closed_connection_raises(self, manager):
        connection = await manager.sync("u1")
        await manager.close()
        with pytest.raises(TransportError):
            await connection.emit("fetch-rooms")
