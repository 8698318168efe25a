"""
Common exception definitions
"""

from enum import Enum, unique
from typing import Optional


@unique
class ConnectErrorReason(Enum):
    UNREACHABLE = "unreachable"
    HANDSHAKE_REJECTED = "handshake_rejected"
    TIMEOUT = "timeout"


@unique
class DecodeErrorReason(Enum):
    UNKNOWN_TYPE = "unknown_type"
    MALFORMED = "malformed"
    MISSING_FIELD = "missing_field"


@unique
class IntentError(Enum):
    """
    Why a command was refused. Returned to the caller, never raised.
    """
    INVALID_STATE = "invalid_state"
    NOT_CONNECTED = "not_connected"
    UNKNOWN_MAP = "unknown_map"


class ConnectError(Exception):
    """
    The connection to the matchmaking server could not be opened.

    `UNREACHABLE` and `HANDSHAKE_REJECTED` are kept apart so that a retry can
    be offered for the former while the latter usually means the client is
    misconfigured.
    """
    def __init__(self, reason: ConnectErrorReason, message: str, *args):
        super().__init__(message, *args)
        self.reason = reason
        self.message = message


class DecodeError(ValueError):
    """
    An inbound payload could not be turned into a protocol event.
    """
    def __init__(
        self,
        reason: DecodeErrorReason,
        message: str,
        field: Optional[str] = None
    ):
        super().__init__(message)
        self.reason = reason
        self.message = message
        self.field = field

    def __repr__(self) -> str:
        return f"DecodeError({self.reason.name}, {self.message!r})"
