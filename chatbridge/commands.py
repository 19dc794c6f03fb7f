from typing import Callable, Optional
from loguru import logger

from .core.errors import MembershipUnavailable
from .core.message import Message
from .endpoints.interfaces import INetworkEndpoint

COMMAND_SIGIL = "?"

# handler(message, source, target) -> reply for the source network, or None
CommandHandler = Callable[[Message, INetworkEndpoint, INetworkEndpoint], Optional[Message]]


def is_command(content: str) -> bool:
    return content.startswith(COMMAND_SIGIL)


def parse_command(content: str) -> str | None:
    """Returns the command name of a '?name args...' text, or None if there is none."""
    if not is_command(content):
        return None
    parts = content[len(COMMAND_SIGIL):].split(maxsplit=1)
    return parts[0] if parts else None


def list_users(
    message: Message, source: INetworkEndpoint, target: INetworkEndpoint
) -> Optional[Message]:
    """Answers with the members of the other network's channel."""
    try:
        usernames = target.get_channel_users()
    except MembershipUnavailable as e:
        logger.warning(
            f"Cannot answer ?listusers from {source.name}: members of {target.name} unavailable ({e})."
        )
        return None

    return Message(username=None, content=f"Users in {target.name}: " + ", ".join(usernames))


class CommandRouter:
    """
    Delegates in-band commands to the handler registered for their name.
    """

    def __init__(self):
        self._handlers: dict[str, CommandHandler] = {}

    def register(self, name: str, handler: CommandHandler):
        """Registers the handler for a given command name (without sigil)."""
        self._handlers[name] = handler
        logger.debug(f"Registered handler for command: '{COMMAND_SIGIL}{name}'")

    def handle(
        self, message: Message, source: INetworkEndpoint, target: INetworkEndpoint
    ) -> Optional[Message]:
        name = parse_command(message.content)
        if not name:
            logger.debug(f"Empty command from {source.name} ignored.")
            return None

        handler = self._handlers.get(name)
        if handler:
            logger.info(f"Processing command '{COMMAND_SIGIL}{name}' from {source.name}")
            return handler(message, source, target)

        logger.debug(f"Unknown command '{COMMAND_SIGIL}{name}' from {source.name}. Ignoring.")
        return None


def default_command_router() -> CommandRouter:
    router = CommandRouter()
    router.register("listusers", list_users)
    return router
