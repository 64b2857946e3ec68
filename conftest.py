"""
Shared test doubles for the snake stream tests
"""

import json
import logging
from typing import List

import pytest
from websockets.protocol import State

from comment_poller import CommentPoller
from comment_source import RawComment, CommentSourceError
from game_loop import SnakeGameLoop
from game_store import GameStore
from settings import Settings
from websocket_server import BroadcastHub


class FakeProtocol:
    """The sans-I/O half websockets.broadcast writes frames into"""

    def __init__(self, connection, state):
        self.connection = connection
        self.state = state

    def send_text(self, data: bytes):
        if self.connection.error:
            raise self.connection.error
        self.connection.sent.append(data.decode("utf-8"))


class FakeConnection:
    """Stands in for a websockets server connection"""

    logger = logging.getLogger("fake-connection")

    def __init__(self, state=State.OPEN, error=None):
        self.protocol = FakeProtocol(self, state)
        self.error = error
        # websockets 14 checks fragmented_send_waiter, later releases send_in_progress
        self.send_in_progress = None
        self.fragmented_send_waiter = None
        self.sent: List[str] = []

    @property
    def state(self):
        return self.protocol.state

    def send_data(self):
        pass

    @property
    def messages(self):
        return [json.loads(m) for m in self.sent]

    def of_type(self, kind):
        return [m for m in self.messages if m["type"] == kind]

    @property
    def types(self):
        return [m["type"] for m in self.messages]


class FakeSource:
    """Returns queued results in order; exceptions in the queue are raised"""

    name = "fake"

    def __init__(self, results=None):
        self.results = list(results or [])
        self.calls = 0

    def fetch_comments(self):
        self.calls += 1
        if not self.results:
            return []
        result = self.results.pop(0)
        if isinstance(result, BaseException):
            raise result
        return result


def raw(comment_id, text, username="viewer"):
    return RawComment(id=comment_id, username=username, text=text,
                      created_at="2026-01-01T00:00:00+00:00", source="fake")


def quiet_settings(**overrides) -> Settings:
    """Ticks far enough apart that they never fire during a test"""
    values = dict(tick_base_ms=600000, tick_min_ms=600000, restart_delay=0.01,
                  autostart_delay=0.0, poll_interval=0.01)
    values.update(overrides)
    return Settings(**values)


def make_game(poller_source=None, repository=None, **settings):
    store = GameStore()
    hub = BroadcastHub(store.snapshot)
    poller = None
    if poller_source is not None:
        poller = CommentPoller(poller_source, store, interval=0.01)
    game_loop = SnakeGameLoop(store, hub, poller, repository, quiet_settings(**settings))
    return game_loop


@pytest.fixture
def source_error():
    return CommentSourceError("API Error: 500 - upstream down")
