import asyncio
import contextlib
import http
import socket
from collections import Counter
from typing import Awaitable, Callable
from unittest import mock

import pytest
from websockets.asyncio.server import serve

from mmclient import (
    ConnectionManager,
    DecodeError,
    MatchmakingSession,
    SessionListener
)
from mmclient.protocol import (
    JoinQueue,
    LeaveQueue,
    MapVotesUpdate,
    MatchCreated,
    QueueUpdate,
    VoteMap,
    WebsocketProtocol,
    decode_intent,
    encode_event
)
from mmclient.types import PlayerEntry

MAPS = ("dust2", "mirage", "inferno", "overpass", "nuke")

Send = Callable[[bytes], Awaitable[None]]


class MatchmakingServer:
    """
    Just enough of a matchmaking server to drive the client: a FIFO queue
    that pops as soon as `players_per_match` players are waiting, and a map
    vote that everyone connected can see.
    """

    def __init__(self, players_per_match: int = 2):
        self.players_per_match = players_per_match
        self.clients: set[Send] = set()
        self.queue: list[tuple[PlayerEntry, Send]] = []
        self.votes: Counter = Counter()
        self.received: list = []
        self.reject_handshakes = False
        self._writers: set[asyncio.StreamWriter] = set()
        self._websockets: set = set()

    async def broadcast(self, data: bytes) -> None:
        for send in list(self.clients):
            with contextlib.suppress(Exception):
                await send(data)

    async def broadcast_queue(self) -> None:
        await self.broadcast(encode_event(QueueUpdate(
            tuple(entry for entry, _ in self.queue)
        )))

    async def on_message(self, send: Send, data) -> None:
        try:
            intent = decode_intent(data)
        except DecodeError:
            return
        self.received.append(intent)

        if isinstance(intent, JoinQueue):
            self.queue.append((PlayerEntry(intent.username, intent.rating), send))
            await self.broadcast_queue()
            if len(self.queue) >= self.players_per_match:
                await self.pop()
        elif isinstance(intent, LeaveQueue):
            self.remove_from_queue(send)
            await self.broadcast_queue()
        elif isinstance(intent, VoteMap):
            self.votes[intent.map_name] += 1
            await self.broadcast(encode_event(MapVotesUpdate(dict(self.votes))))

    async def pop(self) -> None:
        matched = self.queue[:self.players_per_match]
        del self.queue[:self.players_per_match]
        map_name = self.votes.most_common(1)[0][0] if self.votes else MAPS[0]
        match = encode_event(MatchCreated({
            "map": map_name,
            "players": [entry.username for entry, _ in matched],
        }))
        for _, send in matched:
            await send(match)
        await self.broadcast_queue()

    def remove_from_queue(self, send: Send) -> None:
        self.queue = [(entry, s) for entry, s in self.queue if s is not send]

    def disconnected(self, send: Send) -> None:
        self.clients.discard(send)
        self.remove_from_queue(send)

    # ==========
    # Websockets
    # ==========

    def process_request(self, connection, request):
        if self.reject_handshakes:
            return connection.respond(http.HTTPStatus.FORBIDDEN, "Forbidden\n")
        return None

    async def handle_websocket(self, websocket) -> None:
        async def send(data: bytes) -> None:
            await websocket.send(data.decode())

        self.clients.add(send)
        self._websockets.add(websocket)
        try:
            async for message in websocket:
                await self.on_message(send, message)
        finally:
            self.disconnected(send)
            self._websockets.discard(websocket)

    # =====================
    # Newline delimited TCP
    # =====================

    async def handle_stream(self, reader, writer) -> None:
        async def send(data: bytes) -> None:
            writer.write(data + b"\n")
            await writer.drain()

        self.clients.add(send)
        self._writers.add(writer)
        try:
            while line := await reader.readline():
                await self.on_message(send, line.strip())
        except ConnectionError:
            pass
        finally:
            self.disconnected(send)
            self._writers.discard(writer)
            writer.close()

    async def kick_everyone(self) -> None:
        for websocket in list(self._websockets):
            await websocket.close()
        for writer in list(self._writers):
            writer.close()


@pytest.fixture
def mm_server():
    return MatchmakingServer(players_per_match=2)


@pytest.fixture
async def ws_address(mm_server):
    async with serve(
        mm_server.handle_websocket,
        "127.0.0.1",
        0,
        process_request=mm_server.process_request
    ) as srv:
        port = next(iter(srv.sockets)).getsockname()[1]
        yield f"ws://127.0.0.1:{port}"


@pytest.fixture
async def tcp_address(mm_server):
    srv = await asyncio.start_server(mm_server.handle_stream, "127.0.0.1", 0)
    port = srv.sockets[0].getsockname()[1]
    yield f"tcp://127.0.0.1:{port}"
    await mm_server.kick_everyone()
    srv.close()


@pytest.fixture
def unused_address():
    with socket.socket() as sock:
        sock.bind(("127.0.0.1", 0))
        port = sock.getsockname()[1]
    return f"ws://127.0.0.1:{port}"


@pytest.fixture
async def client_factory():
    sessions = []

    def make(protocol_class=WebsocketProtocol, **kwargs):
        kwargs.setdefault("known_maps", MAPS)
        kwargs.setdefault("reconnect_attempts", 0)
        listener = mock.create_autospec(SessionListener, instance=True)
        session = MatchmakingSession(
            ConnectionManager(protocol_class=protocol_class),
            **kwargs
        )
        session.add_listener(listener)
        sessions.append(session)
        return session, listener

    yield make

    for session in sessions:
        await session.close()


async def wait_until(predicate, timeout=5):
    async def poll():
        while not predicate():
            await asyncio.sleep(0.01)

    await asyncio.wait_for(poll(), timeout)
