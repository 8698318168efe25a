"""
Client config variables
"""

import asyncio
import logging
import os
from typing import Callable

import yaml

from .decorators import with_logger

# Logging setup
TRACE = 5
logging.addLevelName(TRACE, "TRACE")
logging.getLogger("websockets").setLevel(logging.INFO)


@with_logger
class ConfigurationStore:
    def __init__(self):
        """
        Change default values here.
        """
        self.LOG_LEVEL = "INFO"

        # Where the matchmaking server lives. There is intentionally no
        # default, it has to come from the configuration file or the command
        # line.
        self.SERVER_ADDRESS = None
        # Either "WebsocketProtocol" or "SimpleJsonProtocol"
        self.PROTOCOL = "WebsocketProtocol"
        # How many seconds a connection attempt may take before giving up
        self.CONNECT_TIMEOUT = 10

        # Automatic reconnection after an unexpected connection loss. Setting
        # the attempts to 0 disables reconnection entirely.
        self.RECONNECT_MAX_ATTEMPTS = 5
        self.RECONNECT_BACKOFF_BASE = 1
        self.RECONNECT_BACKOFF_MAX = 30

        # Maps that can be voted on. Votes for anything else are rejected
        # locally and unknown maps in server updates are ignored.
        self.KNOWN_MAPS = ["dust2", "mirage", "inferno", "overpass", "nuke"]

        self.METRICS_PORT = 8011
        self.ENABLE_METRICS = False

        self._defaults = {
            key: value for key, value in vars(self).items() if key.isupper()
        }

        self._callbacks: dict[str, Callable] = {}
        self.refresh()

    def refresh(self) -> None:
        new_values = self._defaults.copy()

        config_file = os.getenv("CONFIGURATION_FILE")
        if config_file is not None:
            try:
                with open(config_file) as f:
                    new_values.update(yaml.safe_load(f))
            except FileNotFoundError:
                self._logger.warning(
                    "No configuration file found at %s",
                    config_file
                )
            except TypeError:
                self._logger.info(
                    "Configuration file at %s appears to be empty",
                    config_file
                )

        triggered_callback_keys = tuple(
            key
            for key in new_values
            if key in self._callbacks
            and hasattr(self, key)
            and getattr(self, key) != new_values[key]
        )

        for key, new_value in new_values.items():
            old_value = getattr(self, key, None)
            if new_value != old_value:
                self._logger.info(
                    "New value for %s: %r -> %r", key, old_value, new_value
                )
            setattr(self, key, new_value)

        for key in triggered_callback_keys:
            self._dispatch_callback(key)

    def register_callback(self, key: str, callback: Callable) -> None:
        self._callbacks[key.upper()] = callback

    def _dispatch_callback(self, key: str) -> None:
        callback = self._callbacks[key]
        if asyncio.iscoroutinefunction(callback):
            asyncio.create_task(callback())
        else:
            callback()


def set_log_level():
    logger = logging.getLogger()
    logger.setLevel(config.LOG_LEVEL)


config = ConfigurationStore()
config.register_callback("LOG_LEVEL", set_log_level)
