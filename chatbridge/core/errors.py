class ConfigError(Exception):
    """The configuration file is missing, unreadable or invalid."""


class MembershipUnavailable(Exception):
    """The channel member query returned no usable data."""
