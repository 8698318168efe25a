"""
Protocol format definitions
"""

from .codec import decode_event, decode_intent, encode_event, encode_intent
from .messages import (
    ConnectionLost,
    InboundEvent,
    JoinQueue,
    LeaveQueue,
    MapVotesUpdate,
    MatchCreated,
    OutboundIntent,
    QueueUpdate,
    SessionEvent,
    VoteMap
)
from .protocol import DisconnectedError, NotConnectedError, Protocol
from .simple_json import SimpleJsonProtocol
from .websocket import WebsocketProtocol

PROTO_CLASSES: dict[str, type[Protocol]] = {
    SimpleJsonProtocol.__name__: SimpleJsonProtocol,
    WebsocketProtocol.__name__: WebsocketProtocol,
}

__all__ = (
    "ConnectionLost",
    "DisconnectedError",
    "InboundEvent",
    "JoinQueue",
    "LeaveQueue",
    "MapVotesUpdate",
    "MatchCreated",
    "NotConnectedError",
    "OutboundIntent",
    "PROTO_CLASSES",
    "Protocol",
    "QueueUpdate",
    "SessionEvent",
    "SimpleJsonProtocol",
    "VoteMap",
    "WebsocketProtocol",
    "decode_event",
    "decode_intent",
    "encode_event",
    "encode_intent",
)
