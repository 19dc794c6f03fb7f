import sys
import argparse
from loguru import logger

from .bridge import Bridge
from .config import load_settings
from .core.errors import ConfigError
from .endpoints.irc import IrcEndpoint
from .endpoints.slack import SlackEndpoint

USAGE = "chatbridge --config=<configFile>"
EXAMPLE = "Example: chatbridge --config=bridge.yaml"


def create_parser():
    parser = argparse.ArgumentParser(
        prog="chatbridge",
        usage=USAGE,
        description="Bridge-IRC-Slack",
        epilog=EXAMPLE,
    )

    parser.add_argument(
        "--config",
        type=str,
        required=True,
        metavar="FILE",
        help="YAML config file",
    )

    return parser


def configure_logging(level: str):
    # Raises ValueError for an unknown level while the current sinks are still in place.
    logger.level(level)
    logger.remove()
    logger.add(sys.stderr, level=level, colorize=True)
    logger.info(f"Logger level set to: {level}")


def main(argv=None):
    parser = create_parser()
    args = parser.parse_args(argv)

    try:
        settings = load_settings(args.config)
    except ConfigError as e:
        logger.critical(f"{e}. The bridge was not started.")
        sys.exit(1)

    try:
        configure_logging(settings.log_level)
    except ValueError as e:
        logger.critical(f"Invalid logging level '{settings.log_level}': {e}")
        sys.exit(1)

    irc = IrcEndpoint(settings.irc)
    slack = SlackEndpoint(settings.slack)
    logger.debug("IRC and Slack endpoints created.")

    bridge = Bridge(irc, slack)
    bridge.run()


if __name__ == "__main__":
    main()
