import re
import threading
from typing import Any, Optional

from cachetools import TTLCache
from loguru import logger
from slack_sdk import WebClient
from slack_sdk.errors import SlackApiError
from slack_sdk.socket_mode import SocketModeClient
from slack_sdk.socket_mode.request import SocketModeRequest
from slack_sdk.socket_mode.response import SocketModeResponse
from tenacity import (
    Retrying,
    RetryError,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ..config import SlackSettings
from ..core.emitter import EventEmitter
from ..core.errors import MembershipUnavailable
from ..core.membership import channel_membership
from ..core.message import Message
from .interfaces import INetworkEndpoint
from .presence import describe_presence, match_presence

_CHANNEL_ID_RE = re.compile(r"^[CG][A-Z0-9]{8,}$")

# Edits, deletions and thread bookkeeping are not chat lines.
_IGNORED_SUBTYPES = {
    "message_changed",
    "message_deleted",
    "message_replied",
    "channel_topic",
    "channel_purpose",
    "channel_name",
    "pinned_item",
    "unpinned_item",
}

_PRESENCE_SUBTYPES = {"channel_join", "channel_leave", "group_join", "group_leave"}

_SLACK_API_ERRORS = (SlackApiError, OSError)


def unescape_slack_text(text: str) -> str:
    """Undoes the three HTML entities Slack escapes in message text."""
    return text.replace("&lt;", "<").replace("&gt;", ">").replace("&amp;", "&")


class SlackEndpoint(EventEmitter, INetworkEndpoint):
    """
    Endpoint for a Slack channel.
    Uses the Web API (bot token) for sending and lookups, and Socket Mode
    (app token) for receiving channel events.
    """

    def __init__(self, settings: SlackSettings, web_client: Optional[WebClient] = None):
        super().__init__()
        self.settings = settings
        self._web_client = web_client or WebClient(token=settings.auth_token)
        self._socket_client: Optional[SocketModeClient] = None

        self._bot_name: Optional[str] = None
        self._bot_user_id: Optional[str] = None
        self._bot_id: Optional[str] = None
        self._channel_id: Optional[str] = None

        self._user_names: TTLCache = TTLCache(maxsize=10000, ttl=600)
        self._user_names_lock = threading.Lock()
        self._stop_requested = threading.Event()

        self.retrier = Retrying(
            stop=stop_after_attempt(settings.retry_attempts),
            wait=wait_exponential(multiplier=1, min=1, max=10),
            retry=retry_if_exception_type(_SLACK_API_ERRORS),
        )

    @property
    def name(self) -> str:
        return "Slack"

    @property
    def identity(self) -> Optional[str]:
        return self._bot_name

    # --- Lifecycle ---

    def run(self, stop_event: threading.Event) -> None:
        self._stop_requested.clear()
        try:
            self._connect()
        except ConnectionError as e:
            logger.critical(f"Slack: Endpoint stopped. {e}")
            return

        logger.info("Slack: Listening for channel events...")
        while not stop_event.is_set() and not self._stop_requested.is_set():
            stop_event.wait(1)

        self._disconnect()
        logger.info("Slack: Stopped.")

    def stop(self) -> None:
        self._stop_requested.set()

    def _connect(self):
        try:
            auth = self._web_client.auth_test()
        except SlackApiError as e:
            raise ConnectionError(
                f"Slack authentication failed: {e.response.get('error', e)}"
            ) from e
        except OSError as e:
            raise ConnectionError(f"Could not reach the Slack API. Error: {e}") from e

        self._bot_name = auth.get("user")
        self._bot_user_id = auth.get("user_id")
        self._bot_id = auth.get("bot_id")
        logger.success(f"Slack: Authenticated as @{self._bot_name} (user_id={self._bot_user_id}).")

        try:
            self._channel_id = self._resolve_channel_id(self.settings.channel)
        except ConnectionError:
            raise
        except _SLACK_API_ERRORS as e:
            raise ConnectionError(f"Could not look up Slack channel '{self.settings.channel}'. Error: {e}") from e
        logger.info(f"Slack: Bridging channel {self.settings.channel} ({self._channel_id}).")

        if not self.settings.app_token:
            logger.warning("Slack: No slackAppToken configured. Inbound disabled (send-only mode).")
            return

        try:
            self._socket_client = SocketModeClient(
                app_token=self.settings.app_token,
                web_client=self._web_client,
                concurrency=1,
            )
            self._socket_client.socket_mode_request_listeners.append(self._handle_socket_request)
            self._socket_client.connect()
        except Exception as e:
            self._disconnect()
            raise ConnectionError(f"Slack Socket Mode connection failed. Error: {e}") from e
        logger.success("Slack: Socket Mode connected (inbound enabled).")

    def _resolve_channel_id(self, channel: str) -> str:
        wanted = channel.lstrip("#")
        if _CHANNEL_ID_RE.match(wanted):
            return wanted

        for page in self._web_client.conversations_list(
            types="public_channel,private_channel", exclude_archived=True, limit=200
        ):
            for candidate in page.get("channels") or []:
                if candidate.get("name") == wanted:
                    if not candidate.get("is_member", True):
                        logger.warning(
                            f"Slack: Bot is not a member of #{wanted}. Invite it to receive messages."
                        )
                    return candidate["id"]

        raise ConnectionError(f"Slack channel '{channel}' not found.")

    def _disconnect(self):
        if not self._socket_client:
            return
        logger.info("Slack: Disconnecting Socket Mode client...")
        try:
            self._socket_client.close()
        except Exception as e:
            logger.warning(f"Slack: Exception during disconnection: {e}")
        self._socket_client = None

    # --- Inbound events ---

    def _handle_socket_request(self, client: SocketModeClient, req: SocketModeRequest):
        """Socket Mode listener: acknowledges the request, then translates it."""
        try:
            client.send_socket_mode_response(SocketModeResponse(envelope_id=req.envelope_id))

            if req.type != "events_api":
                logger.debug(f"Slack: Ignoring Socket Mode request of type '{req.type}'.")
                return

            self.handle_event(req.payload.get("event") or {})
        except Exception:
            logger.exception("Slack: Error processing Socket Mode request.")

    def _is_own_event(self, event: dict[str, Any]) -> bool:
        if self._bot_user_id and event.get("user") == self._bot_user_id:
            return True
        if self._bot_id and event.get("bot_id") == self._bot_id:
            return True
        return bool(self._bot_name) and event.get("username") == self._bot_name

    def handle_event(self, event: dict[str, Any]):
        event_type = event.get("type")
        if event_type != "message":
            # channel/group joined, user change... are diagnostic only
            logger.debug(f"Slack: event = {event}")
            return

        if event.get("channel") != self._channel_id:
            return
        if event.get("subtype") in _IGNORED_SUBTYPES or self._is_own_event(event):
            return

        text = event.get("text") or ""
        if not text.strip():
            return

        if event.get("subtype") in _PRESENCE_SUBTYPES:
            presence = match_presence(text)
            if not presence:
                logger.debug(f"Slack: Unrecognised membership notice: {text}")
                return
            name = presence.name or self._lookup_username(presence.user_id)
            logger.debug(f"Slack: Presence change detected for {name}: {presence.verb}")
            self._emit_presence(describe_presence(name, presence.verb, self.name))
            return

        user_id = event.get("user")
        username = self._lookup_username(user_id) if user_id else event.get("username")
        self._emit_message(Message(username=username, content=unescape_slack_text(text)))

    def _lookup_username(self, user_id: str) -> str:
        with self._user_names_lock:
            cached = self._user_names.get(user_id)
        if cached:
            return cached

        try:
            response = self._web_client.users_info(user=user_id)
            name = response["user"].get("name") or user_id
        except (*_SLACK_API_ERRORS, KeyError) as e:
            logger.warning(f"Slack: Could not resolve user {user_id}. Error: {e}")
            return user_id

        with self._user_names_lock:
            self._user_names[user_id] = name
        return name

    def _cache_user_names(self, user_ids: list[str]):
        """Fills the name cache from the paginated user directory when some ids are unknown."""
        with self._user_names_lock:
            if all(user_id in self._user_names for user_id in user_ids):
                return

        try:
            for page in self._web_client.users_list(limit=200):
                with self._user_names_lock:
                    for user in page.get("members") or []:
                        if user.get("id") and user.get("name"):
                            self._user_names[user["id"]] = user["name"]
        except _SLACK_API_ERRORS as e:
            logger.warning(f"Slack: Could not list workspace users, resolving one by one. Error: {e}")

    # --- Outbound ---

    def _post_message(self, text: str):
        try:
            self._web_client.chat_postMessage(channel=self._channel_id, text=text)
        except _SLACK_API_ERRORS as e:
            logger.warning(
                f"Failed to post message to Slack channel {self._channel_id}. "
                f"Error: {e.__class__.__name__}. Retrying..."
            )
            raise

    def send_message(self, message: Message) -> None:
        text = message.render()
        if not self._channel_id:
            logger.warning(f"Slack: Not connected. Dropping message: {text}")
            return

        logger.debug(f"Slack: Sending to {self._channel_id}: {text}")
        try:
            self.retrier(self._post_message, text)
        except RetryError as e:
            logger.critical(
                f"Message could not be delivered to Slack after all attempts. "
                f"Final error: {e}. Message dropped: {text}"
            )

    def get_channel_users(self) -> list[str]:
        if not self._channel_id:
            raise MembershipUnavailable("Slack endpoint is not connected.")

        member_ids: list[str] = []
        try:
            for page in self._web_client.conversations_members(channel=self._channel_id, limit=200):
                members = page.get("members")
                if members is None:
                    raise MembershipUnavailable("Slack reply has no 'members' field.")
                member_ids.extend(members)
        except _SLACK_API_ERRORS as e:
            raise MembershipUnavailable(f"Slack member query failed: {e}") from e

        member_ids = [member_id for member_id in member_ids if member_id != self._bot_user_id]
        self._cache_user_names(member_ids)

        usernames = [self._lookup_username(member_id) for member_id in member_ids]
        return channel_membership(usernames, self.identity)
