from dataclasses import dataclass, replace
from typing import Optional, Union


@dataclass(frozen=True)
class Message:
    """
    Represents a normalized, immutable chat message within the bridge.
    A message without username is a system message (command replies, presence).
    """

    username: Optional[str]
    content: str

    def __post_init__(self):
        if not isinstance(self.content, str) or not self.content:
            raise ValueError("Message content cannot be empty.")

    def copy(self) -> "Message":
        """Returns an equal snapshot of this message."""
        return replace(self)

    def render(self) -> str:
        """Plain-text form sent to a network: '<username> content' or just the content."""
        if self.username is not None:
            return f"<{self.username}> {self.content}"
        return self.content


@dataclass(frozen=True)
class PresenceEvent:
    """A synthesized join/leave notification, not attributable to a user."""

    description: str

    def as_message(self) -> Message:
        return Message(username=None, content=self.description)


@dataclass(frozen=True)
class MessagePosted:
    message: Message
    previous: Optional[Message] = None


@dataclass(frozen=True)
class PresenceChanged:
    presence: PresenceEvent
    previous: Optional[PresenceEvent] = None


BridgeEvent = Union[MessagePosted, PresenceChanged]
