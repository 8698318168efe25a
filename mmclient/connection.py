"""
Owns the single connection to the matchmaking server.
"""

import asyncio
import contextlib
from collections import deque
from typing import Optional

from websockets.exceptions import InvalidHandshake, InvalidURI

import mmclient.metrics as metrics

from .asyncio_extensions import synchronizedmethod
from .config import TRACE, config
from .decorators import with_logger
from .exceptions import ConnectError, ConnectErrorReason, DecodeError
from .protocol import (
    PROTO_CLASSES,
    ConnectionLost,
    DisconnectedError,
    NotConnectedError,
    OutboundIntent,
    Protocol,
    SessionEvent,
    decode_event,
    encode_intent
)


@with_logger
class ConnectionManager:
    """
    Opens the transport, runs the read loop and serializes sends.

    Decoded events are put on `events` in the order the server sent them. The
    read loop never touches session state, it only hands events over. When a
    connection ends for any reason exactly one `ConnectionLost` is queued.
    """

    def __init__(
        self,
        protocol_class: Optional[type[Protocol]] = None,
        decode_error_history: int = 50
    ):
        self.protocol_class = protocol_class
        self.events: asyncio.Queue[SessionEvent] = asyncio.Queue()
        self.protocol: Optional[Protocol] = None
        self.address: Optional[str] = None
        # Most recent decode failures, newest last
        self.decode_errors: deque[DecodeError] = deque(
            maxlen=decode_error_history
        )
        self._read_task: Optional[asyncio.Task] = None
        self._closing = False

    def is_connected(self) -> bool:
        return self.protocol is not None and self.protocol.is_connected()

    async def connect(
        self,
        address: Optional[str] = None,
        timeout: Optional[float] = None
    ) -> None:
        """
        Open a connection. Does not retry.

        # Errors
        Raises `ConnectError` with the reason the attempt failed.
        """
        if self.protocol is not None:
            raise RuntimeError("Already connected!")

        address = address or config.SERVER_ADDRESS
        if not address:
            metrics.connect_attempts.labels(
                metrics.ConnectOutcome.UNREACHABLE
            ).inc()
            raise ConnectError(
                ConnectErrorReason.UNREACHABLE,
                "No server address configured. Set SERVER_ADDRESS."
            )
        if timeout is None:
            timeout = config.CONNECT_TIMEOUT
        protocol_class = self.protocol_class or PROTO_CLASSES[config.PROTOCOL]

        self._logger.info("Connecting to %s", address)
        try:
            protocol = await asyncio.wait_for(
                protocol_class.open(address),
                timeout
            )
        except asyncio.TimeoutError as e:
            # Must come before OSError, TimeoutError is a subclass of it
            metrics.connect_attempts.labels(
                metrics.ConnectOutcome.TIMED_OUT
            ).inc()
            raise ConnectError(
                ConnectErrorReason.TIMEOUT,
                f"Connecting to {address} took longer than {timeout}s"
            ) from e
        except InvalidHandshake as e:
            metrics.connect_attempts.labels(
                metrics.ConnectOutcome.HANDSHAKE_REJECTED
            ).inc()
            raise ConnectError(
                ConnectErrorReason.HANDSHAKE_REJECTED,
                f"Server at {address} rejected the handshake: {e}"
            ) from e
        except (OSError, ValueError, InvalidURI) as e:
            metrics.connect_attempts.labels(
                metrics.ConnectOutcome.UNREACHABLE
            ).inc()
            raise ConnectError(
                ConnectErrorReason.UNREACHABLE,
                f"Could not reach {address}: {e}"
            ) from e

        metrics.connect_attempts.labels(metrics.ConnectOutcome.SUCCESSFUL).inc()
        self._logger.info("Connected to %s", address)
        self.address = address
        self.protocol = protocol
        self._closing = False
        self._read_task = asyncio.create_task(self._read_loop(protocol))

    async def _read_loop(self, protocol: Protocol) -> None:
        reason = "Connection closed"
        try:
            while True:
                try:
                    data = await protocol.read_message()
                    self._logger.log(TRACE, "<< %s", data)
                    event = decode_event(data)
                except DecodeError as e:
                    self._on_decode_error(e)
                    continue

                metrics.received_messages.labels(type(event).__name__).inc()
                self.events.put_nowait(event)
        except DisconnectedError as e:
            reason = str(e) or reason
        except Exception as e:
            self._logger.exception("Unexpected error reading from server")
            reason = f"Read failed: {e}"
        finally:
            self._connection_lost(protocol, reason)
            await protocol.close()

    def _on_decode_error(self, error: DecodeError) -> None:
        self._logger.warning("Skipping inbound message: %s", error.message)
        metrics.decode_errors.labels(error.reason.value).inc()
        self.decode_errors.append(error)

    def _connection_lost(self, protocol: Protocol, reason: str) -> None:
        # Stale protocols have already been reported
        if protocol is not self.protocol:
            return

        self.protocol = None
        if self._closing:
            self._logger.debug("Connection to %s closed", self.address)
        else:
            self._logger.info(
                "Lost connection to %s: %s", self.address, reason
            )
        self.events.put_nowait(
            ConnectionLost(expected=self._closing, reason=reason)
        )

    @synchronizedmethod
    async def send(self, intent: OutboundIntent) -> None:
        """
        Send one intent. Concurrent callers are sent in call order.

        # Errors
        Raises `NotConnectedError` if there is no open connection and
        `DisconnectedError` if the connection dies while sending.
        """
        protocol = self.protocol
        if protocol is None or not protocol.is_connected():
            raise NotConnectedError("Not connected to a server!")

        data = encode_intent(intent)
        self._logger.log(TRACE, ">> %s", data)
        try:
            await protocol.send_message(data)
        except DisconnectedError as e:
            self._connection_lost(protocol, str(e) or "Send failed")
            await protocol.close()
            raise

        metrics.sent_messages.labels(type(intent).__name__).inc()

    async def close(self, timeout: float = 5) -> None:
        """
        Close the connection on purpose. The resulting `ConnectionLost` is
        marked as expected.
        """
        protocol = self.protocol
        if protocol is None:
            return

        self._closing = True
        await protocol.close()

        task = self._read_task
        if task is not None and not task.done():
            done, _ = await asyncio.wait({task}, timeout=timeout)
            if not done:
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task
        # In case the read loop never got to report it
        self._connection_lost(protocol, "Closed by client")
