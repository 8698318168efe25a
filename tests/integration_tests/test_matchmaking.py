import asyncio
from unittest import mock

import pytest

from mmclient import (
    ConnectError,
    ConnectErrorReason,
    IntentError,
    PlayerEntry,
    SessionState
)
from mmclient.protocol import JoinQueue, SimpleJsonProtocol, VoteMap

from .conftest import wait_until

pytestmark = pytest.mark.slow


@pytest.fixture(params=("websocket", "tcp"))
def transport(request, ws_address, tcp_address):
    if request.param == "websocket":
        return ws_address, {}
    return tcp_address, {"protocol_class": SimpleJsonProtocol}


async def test_connect(client_factory, transport):
    address, kwargs = transport
    session, listener = client_factory(**kwargs)

    await session.start(address)

    assert session.state is SessionState.IDLE
    assert session.connection.is_connected()


async def test_join_queue(client_factory, transport, mm_server):
    address, kwargs = transport
    session, listener = client_factory(**kwargs)
    await session.start(address)

    result = await session.join_queue("Alice", 1200)
    await wait_until(lambda: session.queue)

    assert result.ok
    assert session.state is SessionState.QUEUED
    assert session.queue == (PlayerEntry("Alice", 1200),)
    assert mm_server.received == [JoinQueue("Alice", 1200)]


async def test_leave_queue(client_factory, transport):
    address, kwargs = transport
    session, listener = client_factory(**kwargs)
    await session.start(address)
    await session.join_queue("Alice", 1200)
    await wait_until(lambda: session.queue)

    await session.leave_queue()
    await wait_until(lambda: not session.queue)

    assert session.state is SessionState.IDLE


async def test_match_found(client_factory, transport, mm_server):
    address, kwargs = transport
    alice, alice_listener = client_factory(**kwargs)
    bob, bob_listener = client_factory(**kwargs)
    await alice.start(address)
    await bob.start(address)

    await alice.join_queue("Alice", 1200)
    await alice.vote_map("nuke")
    await wait_until(lambda: mm_server.votes["nuke"] == 1)
    await bob.join_queue("Bob", 1000)

    await asyncio.wait_for(asyncio.gather(
        alice.wait_for_state(SessionState.MATCHED),
        bob.wait_for_state(SessionState.MATCHED),
    ), 5)

    alice_listener.on_match_found.assert_called_once()
    bob_listener.on_match_found.assert_called_once()
    assert alice.match["map"] == "nuke"
    assert alice.match["players"] == ["Alice", "Bob"]

    result = await alice.vote_map("dust2")
    assert result.error is IntentError.INVALID_STATE


async def test_votes_are_broadcast(client_factory, transport, mm_server):
    address, kwargs = transport
    alice, _ = client_factory(**kwargs)
    bob, bob_listener = client_factory(**kwargs)
    await alice.start(address)
    await bob.start(address)

    await alice.vote_map("mirage")
    await alice.vote_map("mirage")
    await bob.vote_map("dust2")
    await wait_until(
        lambda: bob.votes["dust2"] == 1 and bob.votes["mirage"] == 2
    )

    assert bob.votes == {
        "dust2": 1,
        "mirage": 2,
        "inferno": 0,
        "overpass": 0,
        "nuke": 0
    }
    assert mm_server.received.count(VoteMap("mirage")) == 2


async def test_garbage_from_server(client_factory, transport, mm_server):
    address, kwargs = transport
    session, listener = client_factory(**kwargs)
    await session.start(address)
    await session.join_queue("Alice", 1200)
    await wait_until(lambda: session.queue)

    await mm_server.broadcast(b"}}} not json {{{")
    await mm_server.broadcast(b'{"type":"chat","text":"hello"}')
    await wait_until(lambda: len(session.connection.decode_errors) == 2)

    assert session.state is SessionState.QUEUED
    assert session.connection.is_connected()


async def test_server_goes_away(client_factory, transport, mm_server):
    address, kwargs = transport
    session, listener = client_factory(**kwargs)
    await session.start(address)
    await session.join_queue("Alice", 1200)
    await wait_until(lambda: session.queue)
    listener.reset_mock()

    await mm_server.kick_everyone()
    await session.wait_for_state(SessionState.DISCONNECTED, timeout=5)

    assert session.queue == ()
    listener.on_state_changed.assert_called_once_with(SessionState.DISCONNECTED)


async def test_reconnect_after_server_kick(client_factory, ws_address, mm_server):
    session, listener = client_factory(
        reconnect_attempts=3,
        backoff_base=0.01,
        backoff_max=0.05
    )
    await session.start(ws_address)
    await session.join_queue("Alice", 1200)
    await wait_until(lambda: session.queue)

    listener.reset_mock()

    await mm_server.kick_everyone()
    await wait_until(lambda: listener.on_state_changed.call_args_list == [
        mock.call(SessionState.DISCONNECTED),
        mock.call(SessionState.CONNECTING),
        mock.call(SessionState.IDLE),
    ])

    assert session.connection.is_connected()
    listener.on_reconnect_failed.assert_not_called()


async def test_handshake_rejected(client_factory, ws_address, mm_server):
    mm_server.reject_handshakes = True
    session, listener = client_factory()

    with pytest.raises(ConnectError) as e:
        await session.start(ws_address)

    assert e.value.reason is ConnectErrorReason.HANDSHAKE_REJECTED
    assert session.state is SessionState.DISCONNECTED


@pytest.mark.parametrize("kwargs", (
    {},
    {"protocol_class": SimpleJsonProtocol},
))
async def test_unreachable(client_factory, unused_address, kwargs):
    session, listener = client_factory(**kwargs)

    with pytest.raises(ConnectError) as e:
        await session.start(unused_address)

    assert e.value.reason is ConnectErrorReason.UNREACHABLE
    assert session.state is SessionState.DISCONNECTED


async def test_handshake_timeout(client_factory):
    async def never_answer(reader, writer):
        await reader.read()
        writer.close()

    srv = await asyncio.start_server(never_answer, "127.0.0.1", 0)
    port = srv.sockets[0].getsockname()[1]
    session, listener = client_factory()

    with pytest.raises(ConnectError) as e:
        await session.start(f"ws://127.0.0.1:{port}", timeout=0.1)

    assert e.value.reason is ConnectErrorReason.TIMEOUT
    srv.close()
