"""
Typed protocol messages.

Outbound intents are what the client asks of the server, inbound events are
what the server pushes to the client. Both are validated once by the codec so
nothing downstream has to check for missing fields again.
"""

from typing import Any, Mapping, NamedTuple, Union

from ..types import MapVoteTally, QueueSnapshot

# ==============
# Client intents
# ==============


class JoinQueue(NamedTuple):
    username: str
    rating: int


class LeaveQueue(NamedTuple):
    pass


class VoteMap(NamedTuple):
    map_name: str


OutboundIntent = Union[JoinQueue, LeaveQueue, VoteMap]

# =============
# Server events
# =============


class QueueUpdate(NamedTuple):
    players: QueueSnapshot


class MapVotesUpdate(NamedTuple):
    votes: MapVoteTally


class MatchCreated(NamedTuple):
    payload: Mapping[str, Any]


InboundEvent = Union[QueueUpdate, MapVotesUpdate, MatchCreated]

# ==========================================
# Connection events, never seen on the wire
# ==========================================


class ConnectionLost(NamedTuple):
    """
    Put on the event queue exactly once when a connection ends.

    `expected` is set when the client closed the connection itself.
    """
    expected: bool = False
    reason: str = ""


SessionEvent = Union[InboundEvent, ConnectionLost]
