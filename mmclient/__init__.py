"""
Matchmaking client.

# Overview
The client keeps a single long lived connection to a matchmaking server and
mirrors the part of the server state that concerns one player: whether they
are waiting in the matchmaking queue, who else is waiting, how the map vote is
going and, eventually, the match that was found for them.

The server is authoritative for everything. The client never edits the queue
or the vote tally itself, it only replaces its copy whenever the server sends
a new one. What the client does own is its session state:

```
DISCONNECTED -> CONNECTING -> IDLE <-> QUEUED -> MATCHED
```

Commands like joining the queue or voting for a map are checked against this
state before anything is put on the wire, so the server never receives
requests that the client already knows make no sense, such as voting after a
match was found.

## Protocol
Each message is one JSON object with a `type` field. Over websockets every
text frame carries one message, over plain TCP messages are separated by
newlines. See `mmclient.protocol.codec` for the exact shapes.

## Presentation
Anything that wants to display the session subclasses `SessionListener`,
registers it with `MatchmakingSession.add_listener` and calls the session's
command coroutines. The console client in `main.py` is the simplest example.
"""

from .config import TRACE, config
from .connection import ConnectionManager
from .exceptions import (
    ConnectError,
    ConnectErrorReason,
    DecodeError,
    DecodeErrorReason,
    IntentError
)
from .protocol import DisconnectedError, NotConnectedError
from .session import (
    MatchmakingSession,
    SessionListener,
    SessionSnapshot,
    SessionState
)
from .types import CommandResult, MapVoteTally, MatchInfo, PlayerEntry

__author__ = "Matchmaking client contributors"
__license__ = "GPLv3"

__all__ = (
    "CommandResult",
    "ConnectError",
    "ConnectErrorReason",
    "ConnectionManager",
    "DecodeError",
    "DecodeErrorReason",
    "DisconnectedError",
    "IntentError",
    "MapVoteTally",
    "MatchInfo",
    "MatchmakingSession",
    "NotConnectedError",
    "PlayerEntry",
    "SessionListener",
    "SessionSnapshot",
    "SessionState",
    "TRACE",
    "config",
)
