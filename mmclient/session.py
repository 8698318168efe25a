"""
The client side view of one matchmaking session.
"""

import asyncio
import contextlib
from enum import Enum, unique
from typing import Iterable, NamedTuple, Optional

import humanize

import mmclient.metrics as metrics

from .asyncio_extensions import backoff_delays
from .config import config
from .connection import ConnectionManager
from .decorators import with_logger
from .exceptions import ConnectError, IntentError
from .projections import empty_tally, queue_snapshot, vote_tally
from .protocol import (
    ConnectionLost,
    DisconnectedError,
    JoinQueue,
    LeaveQueue,
    MapVotesUpdate,
    MatchCreated,
    OutboundIntent,
    QueueUpdate,
    SessionEvent,
    VoteMap
)
from .types import OK, CommandResult, MapVoteTally, MatchInfo, QueueSnapshot


@unique
class SessionState(Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    IDLE = "idle"
    QUEUED = "queued"
    MATCHED = "matched"


CONNECTED_STATES = (SessionState.IDLE, SessionState.QUEUED)


class SessionSnapshot(NamedTuple):
    state: SessionState
    queue: QueueSnapshot
    votes: MapVoteTally
    match: Optional[MatchInfo]


class SessionListener():
    """
    Receives notifications from a `MatchmakingSession`. Override whichever
    methods are interesting.

    All methods are called from the session's event loop and should return
    quickly. Exceptions are logged and otherwise ignored.
    """

    def on_state_changed(self, state: SessionState) -> None:
        pass  # pragma: no cover

    def on_queue_snapshot(self, queue: QueueSnapshot) -> None:
        pass  # pragma: no cover

    def on_vote_tally(self, votes: MapVoteTally) -> None:
        pass  # pragma: no cover

    def on_match_found(self, match: MatchInfo) -> None:
        pass  # pragma: no cover

    def on_reconnect_failed(self, attempts: int) -> None:
        """
        Called once automatic reconnection has given up. The session stays
        disconnected after this.
        """
        pass  # pragma: no cover


@with_logger
class MatchmakingSession:
    """
    State machine for a single trip through the matchmaker.

    ```
    DISCONNECTED -> CONNECTING -> IDLE <-> QUEUED -> MATCHED
    ```

    Any state goes back to DISCONNECTED when the connection is lost. MATCHED
    is final, matchmaking again requires a new session.

    Server events are consumed from the connection's event queue by a single
    dispatcher task and applied one at a time. Commands are validated and
    transition the state before anything is sent.
    """

    def __init__(
        self,
        connection: Optional[ConnectionManager] = None,
        known_maps: Optional[Iterable[str]] = None,
        reconnect_attempts: Optional[int] = None,
        backoff_base: Optional[float] = None,
        backoff_max: Optional[float] = None,
    ):
        self.connection = connection or ConnectionManager()
        self.known_maps = tuple(
            config.KNOWN_MAPS if known_maps is None else known_maps
        )
        self.reconnect_attempts = _default(
            reconnect_attempts, config.RECONNECT_MAX_ATTEMPTS
        )
        self.backoff_base = _default(backoff_base, config.RECONNECT_BACKOFF_BASE)
        self.backoff_max = _default(backoff_max, config.RECONNECT_BACKOFF_MAX)

        self._state = SessionState.DISCONNECTED
        self._queue: QueueSnapshot = ()
        self._votes = empty_tally(self.known_maps)
        self._match: Optional[MatchInfo] = None

        self._listeners: list[SessionListener] = []
        self._state_waiters: list[tuple[tuple, asyncio.Future]] = []
        self._address: Optional[str] = None
        self._timeout: Optional[float] = None
        self._closed = False
        self._dispatch_task: Optional[asyncio.Task] = None
        self._reconnect_task: Optional[asyncio.Task] = None

    # ==========
    # Read views
    # ==========

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def queue(self) -> QueueSnapshot:
        return self._queue

    @property
    def votes(self) -> MapVoteTally:
        return dict(self._votes)

    @property
    def match(self) -> Optional[MatchInfo]:
        return self._match

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(self._state, self._queue, self.votes, self._match)

    def add_listener(self, listener: SessionListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: SessionListener) -> None:
        self._listeners.remove(listener)

    # =========
    # Lifecycle
    # =========

    async def start(
        self,
        address: Optional[str] = None,
        timeout: Optional[float] = None
    ) -> None:
        """
        Connect to the server. The first attempt is never retried.

        # Errors
        Raises `ConnectError` if the connection could not be opened. The
        session is left DISCONNECTED and may be started again.

        A `close()` while connecting wins: the new connection is shut again
        and the session stays DISCONNECTED.
        """
        if self._state is not SessionState.DISCONNECTED:
            raise RuntimeError(f"Session is already {self._state.value}")
        if self._match is not None:
            raise RuntimeError("Session already found a match")

        await self._cancel_reconnect()
        self._address = address
        self._timeout = timeout
        self._closed = False
        self._ensure_dispatcher()

        self._set_state(SessionState.CONNECTING)
        try:
            await self.connection.connect(address, timeout)
        except ConnectError as e:
            self._logger.warning("Connection failed: %s", e.message)
            self._set_state(SessionState.DISCONNECTED)
            raise

        if self._closed:
            self._logger.info("Session was closed while connecting")
            await self.connection.close()
            self._discard_events()
            return

        self._set_state(SessionState.IDLE)

    async def close(self) -> None:
        """
        End the session on purpose. No reconnection is attempted.
        """
        self._closed = True
        await self._cancel_reconnect()

        await self.connection.close()

        if self._dispatch_task is not None:
            self._dispatch_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._dispatch_task
            self._dispatch_task = None
        self._discard_events()
        self._become_disconnected()

    def _discard_events(self) -> None:
        # Anything left over belongs to a connection that has ended
        while not self.connection.events.empty():
            self.connection.events.get_nowait()

    async def wait_for_state(
        self,
        *states: SessionState,
        timeout: Optional[float] = None
    ) -> SessionState:
        """
        Wait until the session enters one of `states`.

        # Errors
        Raises `asyncio.TimeoutError` if `timeout` expires first.
        """
        if self._state in states:
            return self._state

        fut = asyncio.get_running_loop().create_future()
        waiter = (states, fut)
        self._state_waiters.append(waiter)
        try:
            return await asyncio.wait_for(fut, timeout)
        finally:
            self._state_waiters.remove(waiter)

    # ========
    # Commands
    # ========

    async def join_queue(self, username: str, rating: int) -> CommandResult:
        error = self._check_state("join_queue", SessionState.IDLE)
        if error is not None:
            return CommandResult(error)

        self._set_state(SessionState.QUEUED)
        return await self._send(JoinQueue(username, rating))

    async def leave_queue(self) -> CommandResult:
        error = self._check_state("leave_queue", SessionState.QUEUED)
        if error is not None:
            return CommandResult(error)

        self._set_state(SessionState.IDLE)
        return await self._send(LeaveQueue())

    async def vote_map(self, map_name: str) -> CommandResult:
        error = self._check_state("vote_map", *CONNECTED_STATES)
        if error is not None:
            return CommandResult(error)
        if map_name not in self.known_maps:
            self._logger.debug("Refusing vote for unknown map %s", map_name)
            return CommandResult(IntentError.UNKNOWN_MAP)

        return await self._send(VoteMap(map_name))

    def _check_state(
        self,
        command: str,
        *allowed: SessionState
    ) -> Optional[IntentError]:
        if self._state in allowed:
            return None

        self._logger.debug(
            "Rejecting %s while %s", command, self._state.value
        )
        if self._state in (SessionState.DISCONNECTED, SessionState.CONNECTING):
            return IntentError.NOT_CONNECTED
        return IntentError.INVALID_STATE

    async def _send(self, intent: OutboundIntent) -> CommandResult:
        try:
            await self.connection.send(intent)
        except DisconnectedError as e:
            self._logger.info("Could not send %r: %s", intent, e)
            return CommandResult(IntentError.NOT_CONNECTED)
        return OK

    # ======
    # Events
    # ======

    def _ensure_dispatcher(self) -> None:
        if self._dispatch_task is None or self._dispatch_task.done():
            self._dispatch_task = asyncio.create_task(self._dispatch_events())

    async def _dispatch_events(self) -> None:
        events = self.connection.events
        while True:
            event = await events.get()
            self.on_event(event)

    def on_event(self, event: SessionEvent) -> None:
        """
        Apply a single event. Only ever called from the dispatcher task.
        """
        if isinstance(event, ConnectionLost):
            self._on_connection_lost(event)
            return

        if self._state not in CONNECTED_STATES:
            self._logger.debug(
                "Ignoring %s while %s", type(event).__name__, self._state.value
            )
            return

        if isinstance(event, QueueUpdate):
            self._queue = queue_snapshot(event)
            metrics.queue_size.set(len(self._queue))
            self._notify("on_queue_snapshot", self._queue)
        elif isinstance(event, MapVotesUpdate):
            self._votes = vote_tally(self._votes, event, self.known_maps)
            self._notify("on_vote_tally", dict(self._votes))
        elif isinstance(event, MatchCreated):
            self._on_match_created(event)

    def _on_match_created(self, event: MatchCreated) -> None:
        if self._state is not SessionState.QUEUED:
            self._logger.warning("Ignoring match created while not queued")
            return

        self._logger.info("Match found")
        self._match = event.payload
        self._set_state(SessionState.MATCHED)
        self._notify("on_match_found", self._match)

    def _on_connection_lost(self, event: ConnectionLost) -> None:
        if self._state is SessionState.DISCONNECTED:
            return

        previous = self._state
        self._become_disconnected()

        if (
            not event.expected
            and not self._closed
            and previous in CONNECTED_STATES
            and self.reconnect_attempts > 0
        ):
            self._reconnect_task = asyncio.create_task(self._reconnect())

    def _become_disconnected(self) -> None:
        if self._queue:
            self._queue = ()
            metrics.queue_size.set(0)
            self._notify("on_queue_snapshot", self._queue)
        self._set_state(SessionState.DISCONNECTED)

    async def _cancel_reconnect(self) -> None:
        task = self._reconnect_task
        self._reconnect_task = None
        if task is not None and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

    async def _reconnect(self) -> None:
        attempts = 0
        for delay in backoff_delays(
            self.backoff_base,
            self.backoff_max,
            self.reconnect_attempts
        ):
            self._logger.info(
                "Reconnecting in %s", humanize.naturaldelta(delay)
            )
            await asyncio.sleep(delay)

            attempts += 1
            metrics.reconnect_attempts.inc()
            self._set_state(SessionState.CONNECTING)
            try:
                await self.connection.connect(self._address, self._timeout)
            except ConnectError as e:
                self._logger.info(
                    "Reconnect attempt %d failed: %s", attempts, e.message
                )
                self._set_state(SessionState.DISCONNECTED)
                continue

            self._set_state(SessionState.IDLE)
            return

        self._logger.warning("Giving up after %d reconnect attempts", attempts)
        self._notify("on_reconnect_failed", attempts)

    # =============
    # Notifications
    # =============

    def _set_state(self, state: SessionState) -> None:
        if state is self._state:
            return

        self._logger.debug(
            "State change %s -> %s", self._state.value, state.value
        )
        self._state = state
        metrics.state_transitions.labels(state.value).inc()

        for states, fut in self._state_waiters:
            if state in states and not fut.done():
                fut.set_result(state)

        self._notify("on_state_changed", state)

    def _notify(self, method: str, *args) -> None:
        for listener in list(self._listeners):
            try:
                getattr(listener, method)(*args)
            except Exception:
                self._logger.exception(
                    "Listener %r raised in %s", listener, method
                )


def _default(value, fallback):
    return fallback if value is None else value
