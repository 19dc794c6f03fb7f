import pytest

from chatbridge.config import BridgeSettings, load_config, load_settings
from chatbridge.core.errors import ConfigError

VALID_CONFIG = """
logging:
  level: debug
ircNick: bridgebot
ircVerbose: "true"
ircServer: irc.example.org
ircPort: "6667"
ircPassword: secret
ircChannel: "#chat"
slackAuthToken: xoxb-test
slackAppToken: xapp-test
slackChannel: general
"""


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "bridge.yaml"
    path.write_text(VALID_CONFIG)
    return path


def test_load_settings(config_file):
    settings = load_settings(str(config_file))

    assert settings.log_level == "DEBUG"
    assert settings.irc.nick == "bridgebot"
    assert settings.irc.port == 6667
    assert settings.irc.verbose is True
    assert settings.irc.tls is False
    assert settings.irc.password == "secret"
    assert settings.irc.channel == "#chat"
    assert settings.slack.auth_token == "xoxb-test"
    assert settings.slack.app_token == "xapp-test"
    assert settings.slack.channel == "general"
    assert settings.slack.retry_attempts == 3


def test_missing_file(tmp_path):
    with pytest.raises(ConfigError, match="not found"):
        load_config(str(tmp_path / "missing.yaml"))


def test_directory_is_unreadable(tmp_path):
    with pytest.raises(ConfigError):
        load_config(str(tmp_path))


def test_invalid_yaml(tmp_path):
    path = tmp_path / "broken.yaml"
    path.write_text("ircNick: [unclosed\n")
    with pytest.raises(ConfigError, match="Syntax error"):
        load_config(str(path))


def test_empty_file(tmp_path):
    path = tmp_path / "empty.yaml"
    path.write_text("")
    with pytest.raises(ConfigError, match="empty"):
        load_config(str(path))


@pytest.mark.parametrize("key", ["ircNick", "ircServer", "ircPort", "ircChannel", "slackAuthToken", "slackChannel"])
def test_missing_required_option(config_file, key):
    config = load_config(str(config_file))
    del config[key]
    with pytest.raises(ConfigError, match=key):
        BridgeSettings.from_dict(config)


def test_port_must_be_an_integer(config_file):
    config = load_config(str(config_file))
    config["ircPort"] = "six"
    with pytest.raises(ConfigError, match="ircPort"):
        BridgeSettings.from_dict(config)


def test_verbose_must_be_a_boolean(config_file):
    config = load_config(str(config_file))
    config["ircVerbose"] = "maybe"
    with pytest.raises(ConfigError, match="ircVerbose"):
        BridgeSettings.from_dict(config)


def test_config_must_be_a_mapping():
    with pytest.raises(ConfigError):
        BridgeSettings.from_dict(["ircNick"])
