from __future__ import annotations

import logging

import pytest

from applinks.config import (
    AppLinksConfig,
    ConfigurationError,
    MissingConfigurationError,
    get_applinks_config,
    require_env_vars,
)
from applinks.config.applinks import DEFAULT_SERVER_URL
from applinks.domain.errors import ValidationError

_ENV_NAMES = (
    "APPLINKS_SERVER_URL",
    "APPLINKS_API_KEY",
    "APPLINKS_SUPPORTED_DOMAINS",
    "APPLINKS_SUPPORTED_SCHEMES",
    "APPLINKS_DEFERRED_DEEP_LINKING",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in _ENV_NAMES:
        monkeypatch.delenv(name, raising=False)


def test_require_env_vars_raises_when_any_missing(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("MISSING_VAR", raising=False)

    with pytest.raises(MissingConfigurationError) as exc:
        require_env_vars(["MISSING_VAR"])

    assert "MISSING_VAR" in str(exc.value)


def test_get_applinks_config_defaults() -> None:
    config = get_applinks_config()

    assert config.server_url == DEFAULT_SERVER_URL
    assert config.api_key is None
    assert config.supported_domains == ()
    assert config.supported_schemes == ()
    assert config.deferred_deep_linking_enabled is True


def test_get_applinks_config_reads_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("APPLINKS_SERVER_URL", "https://links.test/")
    monkeypatch.setenv("APPLINKS_API_KEY", "pk_live_123")
    monkeypatch.setenv("APPLINKS_SUPPORTED_DOMAINS", "example.com, go.example.com,example.com")
    monkeypatch.setenv("APPLINKS_SUPPORTED_SCHEMES", "myapp,otherapp")
    monkeypatch.setenv("APPLINKS_DEFERRED_DEEP_LINKING", "off")

    config = get_applinks_config()

    assert config.server_url == "https://links.test"
    assert config.api_key == "pk_live_123"
    assert config.supported_domains == ("example.com", "go.example.com")
    assert config.supported_schemes == ("myapp", "otherapp")
    assert config.deferred_deep_linking_enabled is False


def test_invalid_deferred_flag_is_a_configuration_error(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("APPLINKS_DEFERRED_DEEP_LINKING", "maybe")

    with pytest.raises(ConfigurationError):
        get_applinks_config()


def test_private_api_key_is_rejected() -> None:
    with pytest.raises(ValidationError):
        AppLinksConfig(api_key="sk_live_secret")


def test_unprefixed_api_key_warns(caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.WARNING, logger="applinks.config.applinks"):
        config = AppLinksConfig(api_key="abc123")

    assert config.api_key == "abc123"
    assert "should start with 'pk_'" in caplog.text


def test_processed_ids_capacity_must_be_positive() -> None:
    with pytest.raises(ValidationError):
        AppLinksConfig(processed_ids_capacity=0)
