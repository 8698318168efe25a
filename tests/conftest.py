"""
This module is the 'top level' configuration for all the unit tests.

'Real world' fixtures are put here.
If a test suite needs specific mocked versions of dependencies,
these should be put in the ``conftest.py'' relative to it.
"""

import logging
from unittest import mock

import hypothesis
import pytest

from mmclient import ConnectionManager, MatchmakingSession, SessionListener
from mmclient.config import TRACE
from tests.utils import FakeProtocol, exhaust_callbacks

logging.getLogger().setLevel(TRACE)
hypothesis.settings.register_profile(
    "nightly",
    max_examples=10_000,
    deadline=None,
    print_blob=True
)

MAPS = ("dust2", "mirage", "inferno", "overpass", "nuke")


def pytest_configure(config):
    config.addinivalue_line(
        "addopts", "--strict-markers"
    )
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )


@pytest.fixture
def listener():
    return mock.create_autospec(SessionListener, instance=True)


@pytest.fixture
def connection():
    return ConnectionManager(protocol_class=FakeProtocol)


@pytest.fixture
async def session_factory(connection, listener):
    sessions = []

    def make(**kwargs):
        kwargs.setdefault("known_maps", MAPS)
        kwargs.setdefault("reconnect_attempts", 0)
        session = MatchmakingSession(connection=connection, **kwargs)
        session.add_listener(listener)
        sessions.append(session)
        return session

    yield make

    for session in sessions:
        await session.close()


@pytest.fixture
async def session(session_factory, listener):
    """A session that is connected and IDLE"""
    session = session_factory()
    await session.start("fake://server")
    listener.reset_mock()
    yield session
    await session.close()


@pytest.fixture
async def queued_session(session, listener):
    await session.join_queue("Bob", 1000)
    await exhaust_callbacks()
    listener.reset_mock()
    return session


@pytest.fixture
def server(session, connection) -> FakeProtocol:
    """The fake transport of the currently connected session"""
    assert connection.protocol is not None
    return connection.protocol

