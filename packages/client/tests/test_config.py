"""Tests for configuration loading."""

import pytest
import yaml
from pydantic import ValidationError

from live_client.config import ClientConfig, load_config


def test_load_config_from_yaml(tmp_path):
    config_data = {
        "user_id": 7,
        "hub": {"url": "https://hub.example.com/.well-known/mercure", "reconnect_delay_seconds": 2},
        "api": {"url": "https://api.example.com"},
        "chat": {"conversations": [42, "abc"]},
        "live_streams": {"streams": [9], "join": True},
        "notifications": {"fallback_unread_count": 3},
    }
    path = tmp_path / "realtime.yaml"
    path.write_text(yaml.dump(config_data))

    cfg = load_config(path)
    assert cfg.hub.url == "https://hub.example.com/.well-known/mercure"
    assert cfg.hub.reconnect_delay_seconds == 2
    assert cfg.chat.conversations == [42, "abc"]
    assert cfg.live_streams.join is True
    assert cfg.notifications.fallback_unread_count == 3


def test_defaults():
    cfg = ClientConfig(user_id="u1")
    assert cfg.hub.url == "http://localhost:3000/.well-known/mercure"
    assert cfg.hub.reconnect_delay_seconds == 5.0
    assert cfg.notifications.fallback_timeout_seconds == 3.0
    assert cfg.live_streams.highlight_clear_seconds == 10.0
    assert cfg.chat.typing_ttl_seconds == 6.0
    assert cfg.metrics.port == 9090
    assert cfg.api.url is None


def test_secrets_come_from_environment(monkeypatch):
    monkeypatch.setenv("MY_HUB_TOKEN", "hub-token")
    monkeypatch.setenv("MY_API_TOKEN", "api-token")
    cfg = ClientConfig.model_validate(
        {
            "user_id": 1,
            "auth": {"token_env": "MY_HUB_TOKEN"},
            "api": {"url": "http://api", "token_env": "MY_API_TOKEN"},
        }
    )
    assert cfg.auth.token == "hub-token"
    assert cfg.api.token == "api-token"


def test_user_id_required_for_notifications():
    with pytest.raises(ValidationError):
        ClientConfig()
    # Live streams alone are anonymous
    cfg = ClientConfig.model_validate(
        {"notifications": {"enabled": False}, "live_streams": {"streams": [9]}}
    )
    assert cfg.user_id is None


def test_token_endpoint_needs_api_url():
    with pytest.raises(ValidationError):
        ClientConfig.model_validate({"user_id": 1, "auth": {"use_token_endpoint": True}})


@pytest.mark.parametrize("url", ["localhost:3000", "ws://hub/.well-known/mercure"])
def test_hub_url_must_be_http(url):
    with pytest.raises(ValidationError):
        ClientConfig.model_validate({"user_id": 1, "hub": {"url": url}})


def test_empty_file_gives_validation_error(tmp_path):
    path = tmp_path / "empty.yaml"
    path.write_text("")
    with pytest.raises(ValidationError):
        load_config(path)


def test_load_config_file_not_found():
    with pytest.raises(FileNotFoundError):
        load_config("/nonexistent/path.yaml")
