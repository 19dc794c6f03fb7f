import threading
from abc import ABC, abstractmethod
from typing import Optional

from ..core.emitter import EventCallback
from ..core.message import Message


class INetworkEndpoint(ABC):
    """
    Defines the contract for a chat network (IRC, Slack...) the bridge relays
    between. Each endpoint runs its connection loop in its own thread and
    publishes MessagePosted / PresenceChanged events to its subscribers.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Display name of the network, used in command replies."""
        raise NotImplementedError

    @property
    @abstractmethod
    def identity(self) -> Optional[str]:
        """Username of the bot on this network, None while it is not known yet."""
        raise NotImplementedError

    @abstractmethod
    def run(self, stop_event: threading.Event) -> None:
        """
        Connects to the network and blocks for the lifetime of the connection.

        Args:
            stop_event: A threading.Event to signal when the endpoint should
                        disconnect and return.
        """
        raise NotImplementedError

    @abstractmethod
    def send_message(self, message: Message) -> None:
        """Writes a message to the configured channel."""
        raise NotImplementedError

    @abstractmethod
    def get_channel_users(self) -> list[str]:
        """
        Returns the sorted members of the configured channel, without the bot.

        Raises:
            MembershipUnavailable: if the member list cannot be determined.
        """
        raise NotImplementedError

    @abstractmethod
    def subscribe(self, callback: EventCallback) -> None:
        """Registers a callback receiving (endpoint, event) notifications."""
        raise NotImplementedError

    @abstractmethod
    def stop(self) -> None:
        """Asks the connection loop to disconnect and exit."""
        raise NotImplementedError
