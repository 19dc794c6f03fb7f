import re
from dataclasses import dataclass
from typing import Optional

# eg: "<@U123|alice> has joined the group" or "<@U123> has left the channel"
_PRESENCE_RE = re.compile(
    r"^<@(?P<user_id>\w+)(?:\|(?P<name>[^>]+))?>"
    r" has (?P<verb>[a-z]+) the (?P<noun>group|channel)$"
)


@dataclass(frozen=True)
class PresenceMatch:
    user_id: str
    name: Optional[str]
    verb: str
    noun: str


def match_presence(text: str) -> Optional[PresenceMatch]:
    """
    Recognizes Slack join/leave notifications embedded in a message payload.
    Returns None unless the whole text is a mention + verb + noun phrase.
    """
    if not text:
        return None

    match = _PRESENCE_RE.match(text.strip())
    if not match:
        return None

    return PresenceMatch(
        user_id=match.group("user_id"),
        name=match.group("name"),
        verb=match.group("verb"),
        noun=match.group("noun"),
    )


def describe_presence(name: str, verb: str, network: str) -> str:
    return f"{name} has {verb} {network}."
