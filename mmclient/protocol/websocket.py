import contextlib
from typing import Union

from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import ConnectionClosed, ConnectionClosedOK
from websockets.protocol import State

from .protocol import DisconnectedError, Protocol


class WebsocketProtocol(Protocol):
    """
    One JSON message per websocket text frame.
    """

    def __init__(self, websocket: ClientConnection):
        self.websocket = websocket

    @classmethod
    async def open(cls, address: str) -> "WebsocketProtocol":
        # Timeouts are enforced by the caller
        return cls(await connect(address, open_timeout=None))

    def is_connected(self) -> bool:
        return self.websocket.state is State.OPEN

    async def read_message(self) -> Union[bytes, str]:
        try:
            return await self.websocket.recv()
        except ConnectionClosedOK:
            raise DisconnectedError("The websocket connection was closed")
        except ConnectionClosed as e:
            raise DisconnectedError("Websocket connection lost!") from e

    async def send_message(self, data: bytes) -> None:
        try:
            # Text frames, the server does not accept binary ones
            await self.websocket.send(data.decode())
        except ConnectionClosedOK:
            raise DisconnectedError("The websocket connection was closed")
        except ConnectionClosed as e:
            raise DisconnectedError("Websocket connection lost!") from e

    async def close(self) -> None:
        with contextlib.suppress(Exception):
            await self.websocket.close()
