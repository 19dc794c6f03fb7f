import os
from dataclasses import dataclass
from typing import Any, Optional

import yaml
from loguru import logger

from .core.errors import ConfigError


def _require(config: dict, key: str) -> Any:
    value = config.get(key)
    if value is None or value == "":
        raise ConfigError(f"Missing required config option '{key}'.")
    return value


def _as_bool(value: Any, key: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ("true", "false"):
        return value.strip().lower() == "true"
    raise ConfigError(f"Config option '{key}' must be a boolean, got '{value}'.")


def _as_int(value: Any, key: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ConfigError(f"Config option '{key}' must be an integer, got '{value}'.")


@dataclass(frozen=True)
class IrcSettings:
    nick: str
    server: str
    port: int
    channel: str
    password: Optional[str] = None
    verbose: bool = False
    tls: bool = False

    @classmethod
    def from_dict(cls, config: dict) -> "IrcSettings":
        return cls(
            nick=str(_require(config, "ircNick")),
            server=str(_require(config, "ircServer")),
            port=_as_int(_require(config, "ircPort"), "ircPort"),
            channel=str(_require(config, "ircChannel")),
            password=config.get("ircPassword") or None,
            verbose=_as_bool(config.get("ircVerbose", False), "ircVerbose"),
            tls=_as_bool(config.get("ircTls", False), "ircTls"),
        )


@dataclass(frozen=True)
class SlackSettings:
    auth_token: str
    channel: str
    app_token: Optional[str] = None
    retry_attempts: int = 3

    @classmethod
    def from_dict(cls, config: dict) -> "SlackSettings":
        retry_attempts = _as_int(config.get("slackRetryAttempts", 3), "slackRetryAttempts")
        if retry_attempts < 1:
            raise ConfigError("Config option 'slackRetryAttempts' must be at least 1.")

        return cls(
            auth_token=str(_require(config, "slackAuthToken")),
            channel=str(_require(config, "slackChannel")),
            app_token=config.get("slackAppToken") or None,
            retry_attempts=retry_attempts,
        )


@dataclass(frozen=True)
class BridgeSettings:
    irc: IrcSettings
    slack: SlackSettings
    log_level: str = "INFO"

    @classmethod
    def from_dict(cls, config: dict) -> "BridgeSettings":
        if not isinstance(config, dict):
            raise ConfigError("Config file must contain a mapping of options.")

        logging_config = config.get("logging") or {}
        if not isinstance(logging_config, dict):
            raise ConfigError("Config section 'logging' must be a mapping.")

        return cls(
            irc=IrcSettings.from_dict(config),
            slack=SlackSettings.from_dict(config),
            log_level=str(logging_config.get("level", "INFO")).upper(),
        )


def load_config(path: str) -> dict:
    config_path = os.path.join(os.getcwd(), path)

    try:
        with open(config_path, "r") as f:
            config = yaml.safe_load(f)
    except FileNotFoundError:
        raise ConfigError(f"Config file not found in '{config_path}'")
    except OSError as e:
        raise ConfigError(f"Config file '{config_path}' could not be read: {e}")
    except yaml.YAMLError as e:
        raise ConfigError(f"Syntax error in YAML file '{config_path}': {e}")

    if config is None:
        raise ConfigError(f"Config file '{config_path}' is empty.")

    logger.info(f"Config loaded from {config_path}.")
    return config


def load_settings(path: str) -> BridgeSettings:
    return BridgeSettings.from_dict(load_config(path))
