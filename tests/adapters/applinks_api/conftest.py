"""Shared fixtures for AppLinks API adapter tests."""

from __future__ import annotations

from collections.abc import Callable

import pytest

from applinks.adapters.applinks_api import AppLinksApiClient
from applinks.config import AppLinksConfig
from tests.helpers.api_payloads import Handler, make_client_factory


@pytest.fixture
def api_config() -> AppLinksConfig:
    return AppLinksConfig(server_url="https://links.test", api_key="pk_test_123")


@pytest.fixture
def make_api_client(api_config: AppLinksConfig) -> Callable[[Handler], AppLinksApiClient]:
    def build(handler: Handler) -> AppLinksApiClient:
        return AppLinksApiClient(config=api_config, client_factory=make_client_factory(handler))

    return build
