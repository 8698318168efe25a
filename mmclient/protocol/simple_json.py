import asyncio
import contextlib
from asyncio import StreamReader, StreamWriter

from ..asyncio_extensions import synchronizedmethod
from ..exceptions import DecodeError, DecodeErrorReason
from ..types import Address
from .protocol import DisconnectedError, Protocol


class SimpleJsonProtocol(Protocol):
    """
    Newline delimited JSON over a plain TCP stream.
    """

    def __init__(self, reader: StreamReader, writer: StreamWriter):
        self.reader = reader
        self.writer = writer

    @classmethod
    async def open(cls, address: str) -> "SimpleJsonProtocol":
        host, port = Address.from_string(address)
        return cls(*(await asyncio.open_connection(host, port)))

    def is_connected(self) -> bool:
        return not self.writer.is_closing()

    async def read_message(self) -> bytes:
        """
        # Errors
        Raises `DecodeError` if a line is too long to buffer. The stream
        stays usable.
        """
        try:
            line = await self.reader.readline()
        except ConnectionError as e:
            raise DisconnectedError("Read failed") from e
        except ValueError as e:
            # The reader has already discarded the oversized data
            raise DecodeError(
                DecodeErrorReason.MALFORMED,
                "Message exceeds the stream reader limit"
            ) from e
        if not line:
            raise DisconnectedError("End of stream")
        return line.strip()

    async def send_message(self, data: bytes) -> None:
        if not self.is_connected():
            raise DisconnectedError("Protocol is not connected!")

        self.writer.write(data + b"\n")
        await self.drain()

    async def close(self) -> None:
        self.writer.close()
        with contextlib.suppress(Exception):
            await self.writer.wait_closed()

    @synchronizedmethod
    async def drain(self) -> None:
        """
        Await the write buffer to empty.
        See StreamWriter.drain()

        # Errors
        Raises `DisconnectedError` if the server disconnects while waiting for
        the write buffer to empty.
        """
        # drain() cannot be called concurrently by multiple coroutines:
        # http://bugs.python.org/issue29930.
        try:
            await self.writer.drain()
        except Exception as e:
            await self.close()
            raise DisconnectedError("Protocol connection lost!") from e
