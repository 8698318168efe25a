from .event_loop import fast_forward
from .exhaust_callbacks import exhaust_callbacks, until_processed
from .fake_protocol import FakeProtocol

__all__ = (
    "FakeProtocol",
    "exhaust_callbacks",
    "fast_forward",
    "until_processed",
)
