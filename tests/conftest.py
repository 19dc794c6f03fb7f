"""Shared fixtures for the bridge test suite."""

import asyncio
import threading
import time
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from chatbridge.config import IrcSettings, SlackSettings
from chatbridge.core.emitter import EventEmitter
from chatbridge.core.membership import channel_membership
from chatbridge.core.message import Message
from chatbridge.endpoints.interfaces import INetworkEndpoint

SLACK_CHANNEL_ID = "C0123456789"


class FakeEndpoint(EventEmitter, INetworkEndpoint):
    """In-memory endpoint recording every outbound message."""

    def __init__(self, name: str, identity: str, members=None):
        super().__init__()
        self._name = name
        self._identity = identity
        self.members = members
        self.sent: list[Message] = []
        self.stopped = False

    @property
    def name(self):
        return self._name

    @property
    def identity(self):
        return self._identity

    def run(self, stop_event):
        pass

    def send_message(self, message):
        self.sent.append(message)

    def get_channel_users(self):
        return channel_membership(self.members, self._identity)

    def stop(self):
        self.stopped = True

    def post(self, username, content):
        self._emit_message(Message(username=username, content=content))

    def presence(self, description):
        self._emit_presence(description)


def drain(bridge):
    """Dispatches every queued event, like one pass of the bridge's message loop."""
    while not bridge._event_queue.empty():
        source, event = bridge._event_queue.get_nowait()
        bridge.dispatch(source, event)


@pytest.fixture
def irc_fake():
    return FakeEndpoint("IRC", "bridgebot", members=["dave", "bridgebot", "carol"])


@pytest.fixture
def slack_fake():
    return FakeEndpoint("Slack", "bridgebot", members=["bob", "alice", "bridgebot"])


@pytest.fixture
def irc_settings():
    return IrcSettings(nick="bridgebot", server="irc.example.org", port=6667, channel="#chat")


@pytest.fixture
def slack_settings():
    return SlackSettings(auth_token="xoxb-test", channel="general")


@pytest.fixture
def running_loop():
    """An asyncio loop running in a background thread, like the IRC endpoint's."""
    loop = asyncio.new_event_loop()
    thread = threading.Thread(target=loop.run_forever, daemon=True)
    thread.start()
    while not loop.is_running():
        time.sleep(0.01)
    yield loop
    loop.call_soon_threadsafe(loop.stop)
    thread.join(timeout=5)
    loop.close()


@pytest.fixture
def pydle_client():
    """Stand-in for the connected pydle client of an IrcEndpoint."""
    channels = {"#chat": {"users": {"bridgebot", "dave", "carol"}}}
    return SimpleNamespace(
        nickname="bridgebot",
        channels=channels,
        in_channel=lambda channel: channel in channels,
        message=AsyncMock(),
    )


@pytest.fixture
def slack_web_client():
    """Mock slack_sdk WebClient for a bot called 'bridgebot' in #general."""
    users = {"UBOT": "bridgebot", "U1": "alice", "U2": "bob"}
    client = MagicMock()
    client.auth_test.return_value = {"user": "bridgebot", "user_id": "UBOT", "bot_id": "BBOT"}
    client.conversations_list.return_value = [
        {"channels": [{"id": "C0000000001", "name": "random"}]},
        {"channels": [{"id": SLACK_CHANNEL_ID, "name": "general", "is_member": True}]},
    ]
    client.users_info.side_effect = lambda user: {"user": {"id": user, "name": users[user]}}
    client.users_list.return_value = [
        {"members": [{"id": "UBOT", "name": "bridgebot"}, {"id": "U1", "name": "alice"}]},
        {"members": [{"id": "U2", "name": "bob"}]},
    ]
    client.conversations_members.return_value = [{"members": ["UBOT", "U2", "U1"]}]
    return client


def wait_for_loop(loop):
    """Blocks until everything already scheduled on `loop` has run."""
    asyncio.run_coroutine_threadsafe(asyncio.sleep(0), loop).result(timeout=5)
