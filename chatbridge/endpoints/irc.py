import asyncio
import concurrent.futures
import threading
from typing import Callable, Optional, TypeVar

import pydle
from loguru import logger

from ..config import IrcSettings
from ..core.emitter import EventEmitter
from ..core.errors import MembershipUnavailable
from ..core.membership import channel_membership
from ..core.message import Message
from .interfaces import INetworkEndpoint
from .presence import describe_presence

T = TypeVar("T")

LOOP_CALL_TIMEOUT = 5


class IrcClient(pydle.Client):
    """pydle client that forwards channel activity to its IrcEndpoint."""

    # Restarting a failed connection is left to the process supervisor.
    RECONNECT_ON_ERROR = False

    def __init__(self, endpoint: "IrcEndpoint", nickname: str, **kwargs):
        super().__init__(nickname, **kwargs)
        self._endpoint = endpoint

    async def on_connect(self):
        await super().on_connect()
        settings = self._endpoint.settings
        logger.success(f"IRC: Connected to {settings.server}:{settings.port} as {self.nickname}.")
        await self.join(settings.channel)
        logger.info(f"IRC: Joined channel: {settings.channel}")

    async def on_raw(self, message):
        if self._endpoint.settings.verbose:
            logger.info(f"IRC << {message.command} {' '.join(str(p) for p in message.params)}")
        await super().on_raw(message)

    async def rawmsg(self, command, *args, **kwargs):
        if self._endpoint.settings.verbose:
            logger.info(f"IRC >> {command} {' '.join(str(a) for a in args)}")
        await super().rawmsg(command, *args, **kwargs)

    async def on_channel_message(self, target, by, message):
        await super().on_channel_message(target, by, message)
        self._endpoint.handle_channel_message(target, by, message)

    async def on_join(self, channel, user):
        await super().on_join(channel, user)
        self._endpoint.handle_presence(channel, user, "joined")

    async def on_part(self, channel, user, message=None):
        await super().on_part(channel, user, message)
        self._endpoint.handle_presence(channel, user, "parted")

    async def on_quit(self, user, message=None):
        await super().on_quit(user, message)
        self._endpoint.handle_presence(None, user, "quit")

    async def on_disconnect(self, expected):
        await super().on_disconnect(expected)
        if expected:
            logger.info("IRC: Client disconnected successfully.")
        else:
            logger.warning("IRC: Unexpected disconnection from server.")


class IrcEndpoint(EventEmitter, INetworkEndpoint):
    """
    Endpoint for an IRC channel. The pydle client lives on an asyncio loop
    owned by the thread that calls run(); other threads reach it through
    run_coroutine_threadsafe.
    """

    def __init__(self, settings: IrcSettings):
        super().__init__()
        self.settings = settings
        self._client: Optional[IrcClient] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._loop_thread_id: Optional[int] = None
        self._stop_requested = threading.Event()

    @property
    def name(self) -> str:
        return "IRC"

    @property
    def identity(self) -> Optional[str]:
        if self._client and self._client.nickname:
            return self._client.nickname
        return self.settings.nick

    # --- Inbound events ---

    def _is_self(self, nick: str) -> bool:
        identity = self.identity
        return bool(identity) and nick.lower() == identity.lower()

    def _is_own_channel(self, channel: Optional[str]) -> bool:
        return channel is not None and channel.lower() == self.settings.channel.lower()

    def handle_channel_message(self, channel: str, sender: str, text: str):
        if not self._is_own_channel(channel) or self._is_self(sender):
            return
        if not text:
            return
        logger.debug(f"IRC: Message from {sender} in {channel}")
        self._emit_message(Message(username=sender, content=text))

    def handle_presence(self, channel: Optional[str], nick: str, verb: str):
        """Translates join/part (channel given) and quit (channel None) notifications."""
        if channel is not None and not self._is_own_channel(channel):
            return
        if self._is_self(nick):
            return
        self._emit_presence(describe_presence(nick, verb, self.name))

    # --- Outbound ---

    def send_message(self, message: Message) -> None:
        text = message.render()
        client, loop = self._client, self._loop
        if not client or not loop or not loop.is_running():
            logger.warning(f"IRC: Not connected. Dropping message: {text}")
            return

        logger.debug(f"IRC: Sending to {self.settings.channel}: {text}")
        try:
            future = asyncio.run_coroutine_threadsafe(
                client.message(self.settings.channel, text), loop
            )
        except RuntimeError as e:
            logger.warning(f"IRC: Event loop unavailable, message dropped: {e}")
            return
        future.add_done_callback(self._log_send_result)

    @staticmethod
    def _log_send_result(future: concurrent.futures.Future):
        if future.cancelled():
            logger.warning("IRC: Sending a message was cancelled.")
            return
        error = future.exception()
        if error:
            logger.error(f"IRC: Failed to send message. Error: {error.__class__.__name__}: {error}")

    def _channel_nicks(self) -> Optional[list[str]]:
        client = self._client
        if not client or not client.in_channel(self.settings.channel):
            return None
        return list(client.channels[self.settings.channel]["users"])

    def _call_in_loop(self, func: Callable[[], T]) -> T:
        """Runs func on the client's loop, so pydle state is never read mid-update."""
        loop = self._loop
        if loop is None or not loop.is_running():
            raise MembershipUnavailable("IRC endpoint is not connected.")
        if threading.get_ident() == self._loop_thread_id:
            return func()

        async def _call():
            return func()

        try:
            return asyncio.run_coroutine_threadsafe(_call(), loop).result(timeout=LOOP_CALL_TIMEOUT)
        except (concurrent.futures.TimeoutError, RuntimeError) as e:
            raise MembershipUnavailable(f"IRC event loop did not answer: {e}") from e

    def get_channel_users(self) -> list[str]:
        nicks = self._call_in_loop(self._channel_nicks)
        return channel_membership(nicks, self.identity)

    # --- Lifecycle ---

    def run(self, stop_event: threading.Event) -> None:
        """The entry point for the endpoint thread."""
        self._stop_requested.clear()
        self._loop = asyncio.new_event_loop()
        asyncio.set_event_loop(self._loop)
        self._loop_thread_id = threading.get_ident()
        try:
            self._loop.run_until_complete(self._main_async_task(stop_event))
        except ConnectionError as e:
            logger.critical(f"IRC: Endpoint stopped. {e}")
        finally:
            loop, self._loop = self._loop, None
            loop.close()
            self._client = None
            logger.info("IRC: Event loop has been closed.")

    def _should_stop(self, stop_event: threading.Event) -> bool:
        return stop_event.is_set() or self._stop_requested.is_set()

    async def _main_async_task(self, stop_event: threading.Event):
        """Connects the client and keeps it alive until stopped or disconnected."""
        client = IrcClient(self, self.settings.nick)
        self._client = client

        logger.info(
            f"IRC: Attempting to connect to {self.settings.server}:{self.settings.port}..."
        )
        try:
            await client.connect(
                hostname=self.settings.server,
                port=self.settings.port,
                password=self.settings.password,
                tls=self.settings.tls,
            )
        except (OSError, asyncio.TimeoutError) as e:
            raise ConnectionError(
                f"Could not reach IRC server at {self.settings.server}:{self.settings.port}. Error: {e}"
            ) from e

        while not self._should_stop(stop_event):
            if not client.connected:
                raise ConnectionError("Connection to the IRC server was lost.")
            await asyncio.sleep(1)

        if client.connected:
            logger.info("IRC: Stop requested, quitting...")
            await client.quit("Bridge shutting down")

    def stop(self) -> None:
        self._stop_requested.set()
