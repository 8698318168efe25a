"""
General type definitions
"""

from typing import Any, Mapping, NamedTuple, Optional

from .exceptions import IntentError


class Address(NamedTuple):
    """A server address for plain TCP transports"""

    host: str
    port: int

    @classmethod
    def from_string(cls, address: str) -> "Address":
        if "://" in address:
            address = address.split("://", 1)[1]
        host, port = address.rstrip("/").rsplit(":", 1)
        return cls(host, int(port))


class PlayerEntry(NamedTuple):
    """One row of the matchmaking queue as reported by the server"""

    username: str
    rating: int


QueueSnapshot = tuple[PlayerEntry, ...]
MapVoteTally = dict[str, int]
# Whatever the server put in the `matchCreated` message. Not interpreted.
MatchInfo = Mapping[str, Any]


class CommandResult(NamedTuple):
    """
    Outcome of a session command. Truthy on success.
    """

    error: Optional[IntentError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def __bool__(self) -> bool:
        return self.ok


OK = CommandResult()
