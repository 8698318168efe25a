"""
Prometheus metric definitions
"""

from prometheus_client import Counter, Gauge


class ConnectOutcome:
    SUCCESSFUL = "successful"
    UNREACHABLE = "unreachable"
    HANDSHAKE_REJECTED = "handshake rejected"
    TIMED_OUT = "timed out"


# ========================
# Connections and Messages
# ========================
connect_attempts = Counter(
    "mmclient_connect_attempts_total",
    "Connection attempts to the matchmaking server by outcome",
    ["outcome"]
)

reconnect_attempts = Counter(
    "mmclient_reconnect_attempts_total",
    "Automatic reconnection attempts after an unexpected disconnect",
)

received_messages = Counter(
    "mmclient_received_messages_total",
    "Decoded messages received from the server",
    ["type"]
)

sent_messages = Counter(
    "mmclient_sent_messages_total",
    "Messages sent to the server",
    ["type"]
)

decode_errors = Counter(
    "mmclient_decode_errors_total",
    "Inbound messages that were skipped because they could not be decoded",
    ["reason"]
)

# =======
# Session
# =======
state_transitions = Counter(
    "mmclient_session_state_transitions_total",
    "Session state transitions by new state",
    ["state"]
)

queue_size = Gauge(
    "mmclient_queue_players",
    "Players in the most recent queue snapshot",
)
