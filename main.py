#!/usr/bin/env python3
"""
Usage:
    main.py [options]

Options:
    --configuration-file FILE    Load config variables from FILE
    --address ADDR               Server address, overrides SERVER_ADDRESS
    --username NAME              Name to queue with
    --rating ELO                 Rating to queue with [default: 1000]
    --vote MAP                   Vote for MAP after joining the queue
"""

import asyncio
import logging
import os
import random
import signal
import time

import humanize
import prometheus_client
from docopt import docopt

from mmclient import (
    ConnectError,
    ConnectErrorReason,
    MatchmakingSession,
    SessionListener,
    SessionState,
    config
)

# Replaced by the root logger when run as a script
logger = logging.getLogger(__name__)


class ConsoleListener(SessionListener):
    """Logs everything the session reports"""

    def __init__(self, session: MatchmakingSession, done: asyncio.Future):
        self.session = session
        self.done = done

    def on_state_changed(self, state):
        logger.info("Session is now %s", state.value)
        if (
            state is SessionState.DISCONNECTED
            and self.session.reconnect_attempts == 0
        ):
            self._finish(1)

    def on_queue_snapshot(self, queue):
        logger.info(
            "Queue (%d): %s",
            len(queue),
            ", ".join(f"{p.username} ({p.rating})" for p in queue)
        )

    def on_vote_tally(self, votes):
        logger.info(
            "Map votes: %s",
            ", ".join(f"{name} ({count} votes)" for name, count in votes.items())
        )

    def on_match_found(self, match):
        logger.info("Match found! Get ready to play!")
        logger.debug("Match details: %s", dict(match))
        self._finish(0)

    def on_reconnect_failed(self, attempts):
        logger.error("Lost the server for good after %d attempts", attempts)
        self._finish(1)

    def _finish(self, exit_code):
        if not self.done.done():
            self.done.set_result(exit_code)


async def main(args):
    loop = asyncio.get_running_loop()
    done = loop.create_future()

    def signal_handler(sig: int, _frame):
        logger.info(
            "Received signal %s, shutting down",
            signal.Signals(sig)
        )
        if not done.done():
            done.set_result(0)

    signal.signal(signal.SIGTERM, signal_handler)
    signal.signal(signal.SIGINT, signal_handler)

    if config.ENABLE_METRICS:
        prometheus_client.start_http_server(config.METRICS_PORT)

    session = MatchmakingSession()
    session.add_listener(ConsoleListener(session, done))

    try:
        await session.start(args["--address"])
    except ConnectError as e:
        if e.reason is ConnectErrorReason.HANDSHAKE_REJECTED:
            logger.error("%s. Check the server address.", e.message)
        else:
            logger.error("%s. Try again later.", e.message)
        return 1

    username = args["--username"] or f"Player{random.randrange(1000)}"
    result = await session.join_queue(username, int(args["--rating"]))
    if not result:
        logger.error("Could not join the queue: %s", result.error.value)
        await session.close()
        return 1

    if args["--vote"]:
        result = await session.vote_map(args["--vote"])
        if not result:
            logger.error(
                "Could not vote for %s: %s", args["--vote"], result.error.value
            )

    exit_code = await done
    await session.close()
    return exit_code


if __name__ == "__main__":
    start_time = time.perf_counter()

    args = docopt(__doc__, version="Matchmaking Client")
    config_file = args.get("--configuration-file")
    if config_file:
        os.environ["CONFIGURATION_FILE"] = config_file

    logger = logging.getLogger()
    stderr_handler = logging.StreamHandler()
    stderr_handler.setFormatter(
        logging.Formatter(
            fmt="%(levelname)-8s %(asctime)s %(name)-30s %(message)s",
            datefmt="%b %d  %H:%M:%S"
        )
    )
    logger.addHandler(stderr_handler)
    logger.setLevel(logging.INFO)

    config.refresh()
    logger.setLevel(config.LOG_LEVEL)

    exit_code = asyncio.run(main(args))

    logger.info(
        "Session lasted %s",
        humanize.naturaldelta(time.perf_counter() - start_time)
    )
    exit(exit_code)
