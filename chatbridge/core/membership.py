from typing import Iterable, Optional

from .errors import MembershipUnavailable


def channel_membership(
    usernames: Optional[Iterable[Optional[str]]], own_identity: Optional[str]
) -> list[str]:
    """
    Builds the member list reported by an endpoint: the bot itself is removed,
    duplicates are collapsed and the rest is sorted ascending.

    Raises:
        MembershipUnavailable: if the query returned no data, or nobody but
                               the bot is in the channel.
    """
    if usernames is None:
        raise MembershipUnavailable("Channel member query returned no data.")

    members = {name for name in usernames if name and name != own_identity}
    if not members:
        raise MembershipUnavailable("No channel members left after excluding the bot.")

    return sorted(members)
