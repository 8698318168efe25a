from abc import ABCMeta, abstractmethod
from typing import Union


class DisconnectedError(ConnectionError):
    """For signaling that a protocol has lost connection to the remote."""


class NotConnectedError(DisconnectedError):
    """Raised when sending while no connection is open."""


class Protocol(metaclass=ABCMeta):
    """
    A message oriented duplex connection. Framing is the only concern of a
    protocol, message contents are handled by the codec.
    """

    @classmethod
    @abstractmethod
    async def open(cls, address: str) -> "Protocol":
        """
        Open a new connection to `address`.

        # Errors
        May raise `OSError` or any transport specific handshake error. These
        are translated into `ConnectError` by the `ConnectionManager`.
        """
        pass  # pragma: no cover

    @abstractmethod
    def is_connected(self) -> bool:
        """
        Return whether or not the connection is still alive
        """
        pass  # pragma: no cover

    @abstractmethod
    async def read_message(self) -> Union[bytes, str]:
        """
        Asynchronously read one raw message from the stream

        # Errors
        Raises `DisconnectedError` once the remote has gone away, and
        `DecodeError` for a message that could not be framed. The stream
        stays usable after a `DecodeError`.
        """
        pass  # pragma: no cover

    @abstractmethod
    async def send_message(self, data: bytes) -> None:
        """
        Send one raw message

        # Errors
        May raise `DisconnectedError`.
        """
        pass  # pragma: no cover

    @abstractmethod
    async def close(self) -> None:
        """
        Close the connection.

        # Errors
        Never raises. Any exceptions that occur while waiting to close are
        ignored.
        """
        pass  # pragma: no cover
