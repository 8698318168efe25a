"""
Conversion between typed protocol messages and their JSON wire shape.

Every message is a single JSON object with a `type` discriminator:

```
{"type": "joinQueue", "username": "Bob", "elo": 1000}
{"type": "leaveQueue"}
{"type": "voteMap", "map": "dust2"}
{"type": "queueUpdate", "players": [{"username": "Alice", "elo": 1200}]}
{"type": "mapVotesUpdate", "votes": {"dust2": 3}}
{"type": "matchCreated", ...}
```

The `encode_event` and `decode_intent` directions are what a server speaks.
The client never needs them, but they keep the wire format defined in one
place for test servers and tooling.
"""

import json
from typing import Any, Callable, Union

from ..exceptions import DecodeError, DecodeErrorReason
from ..types import PlayerEntry
from .messages import (
    InboundEvent,
    JoinQueue,
    LeaveQueue,
    MapVotesUpdate,
    MatchCreated,
    OutboundIntent,
    QueueUpdate,
    VoteMap
)

json_encoder = json.JSONEncoder(separators=(",", ":"))


def _dump(message: dict) -> bytes:
    return json_encoder.encode(message).encode()


def _load(data: Union[bytes, str]) -> dict:
    if isinstance(data, (bytes, bytearray)):
        try:
            data = data.decode()
        except UnicodeDecodeError as e:
            raise DecodeError(
                DecodeErrorReason.MALFORMED,
                "Message is not valid UTF-8"
            ) from e
    try:
        message = json.loads(data)
    except RecursionError as e:
        raise DecodeError(
            DecodeErrorReason.MALFORMED,
            "Message is nested too deeply"
        ) from e
    except ValueError as e:
        raise DecodeError(
            DecodeErrorReason.MALFORMED,
            f"Message is not valid JSON: {e}"
        ) from e

    if not isinstance(message, dict):
        raise DecodeError(
            DecodeErrorReason.MALFORMED,
            f"Expected a JSON object, got {type(message).__name__}"
        )
    return message


def _require(message: dict, field: str) -> Any:
    try:
        return message[field]
    except KeyError:
        raise DecodeError(
            DecodeErrorReason.MISSING_FIELD,
            f"'{message.get('type')}' message is missing '{field}'",
            field=field
        ) from None


def _require_type(value: Any, expected: type, field: str) -> Any:
    # bool is an int subclass but never a valid rating or vote count
    if not isinstance(value, expected) or (
        expected is int and isinstance(value, bool)
    ):
        raise DecodeError(
            DecodeErrorReason.MALFORMED,
            f"Field '{field}' should be {expected.__name__}, "
            f"got {type(value).__name__}"
        )
    return value


def _message_type(message: dict, known: dict) -> str:
    msg_type = message.get("type")
    if not isinstance(msg_type, str) or msg_type not in known:
        raise DecodeError(
            DecodeErrorReason.UNKNOWN_TYPE,
            f"Unknown message type: {msg_type!r}"
        )
    return msg_type


# =======
# Intents
# =======

def encode_intent(intent: OutboundIntent) -> bytes:
    if isinstance(intent, JoinQueue):
        return _dump({
            "type": "joinQueue",
            "username": intent.username,
            "elo": intent.rating
        })
    if isinstance(intent, LeaveQueue):
        return _dump({"type": "leaveQueue"})
    if isinstance(intent, VoteMap):
        return _dump({"type": "voteMap", "map": intent.map_name})

    raise TypeError(f"Not an outbound intent: {intent!r}")


def _decode_join_queue(message: dict) -> JoinQueue:
    return JoinQueue(
        username=_require_type(_require(message, "username"), str, "username"),
        rating=_require_type(_require(message, "elo"), int, "elo")
    )


def _decode_vote_map(message: dict) -> VoteMap:
    return VoteMap(_require_type(_require(message, "map"), str, "map"))


INTENT_DECODERS: dict[str, Callable[[dict], OutboundIntent]] = {
    "joinQueue": _decode_join_queue,
    "leaveQueue": lambda _: LeaveQueue(),
    "voteMap": _decode_vote_map,
}


def decode_intent(data: Union[bytes, str]) -> OutboundIntent:
    message = _load(data)
    return INTENT_DECODERS[_message_type(message, INTENT_DECODERS)](message)


# ======
# Events
# ======

def encode_event(event: InboundEvent) -> bytes:
    if isinstance(event, QueueUpdate):
        return _dump({
            "type": "queueUpdate",
            "players": [
                {"username": player.username, "elo": player.rating}
                for player in event.players
            ]
        })
    if isinstance(event, MapVotesUpdate):
        return _dump({"type": "mapVotesUpdate", "votes": dict(event.votes)})
    if isinstance(event, MatchCreated):
        return _dump({**event.payload, "type": "matchCreated"})

    raise TypeError(f"Not an inbound event: {event!r}")


def _decode_player(player: Any) -> PlayerEntry:
    _require_type(player, dict, "players")
    return PlayerEntry(
        username=_require_type(_require(player, "username"), str, "username"),
        rating=_require_type(_require(player, "elo"), int, "elo")
    )


def _decode_queue_update(message: dict) -> QueueUpdate:
    players = _require_type(_require(message, "players"), list, "players")
    return QueueUpdate(tuple(_decode_player(player) for player in players))


def _decode_map_votes_update(message: dict) -> MapVotesUpdate:
    votes = _require_type(_require(message, "votes"), dict, "votes")
    for map_name, count in votes.items():
        _require_type(count, int, f"votes.{map_name}")
        if count < 0:
            raise DecodeError(
                DecodeErrorReason.MALFORMED,
                f"Negative vote count for {map_name}: {count}"
            )
    return MapVotesUpdate(dict(votes))


def _decode_match_created(message: dict) -> MatchCreated:
    return MatchCreated(dict(message))


EVENT_DECODERS: dict[str, Callable[[dict], InboundEvent]] = {
    "queueUpdate": _decode_queue_update,
    "mapVotesUpdate": _decode_map_votes_update,
    "matchCreated": _decode_match_created,
}


def decode_event(data: Union[bytes, str]) -> InboundEvent:
    """
    Parse a single server message.

    # Errors
    Raises `DecodeError` for anything that is not a well formed, known event.
    No other exception escapes.
    """
    message = _load(data)
    return EVENT_DECODERS[_message_type(message, EVENT_DECODERS)](message)
