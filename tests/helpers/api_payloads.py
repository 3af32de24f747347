"""Payloads and transport helpers for AppLinks API adapter tests."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import httpx

from applinks.adapters.http_resilience import ResilienceConfig, ResilientClient

type Handler = Callable[[httpx.Request], httpx.Response]

LINK_PAYLOAD: dict[str, Any] = {
    "id": "link-1",
    "title": "Summer sale",
    "alias_path": "abc123",
    "domain": "example.com",
    "original_url": "https://shop.example.org/sale",
    "deep_link_path": "/product/42",
    "deep_link_params": {"ref": "promo"},
    "created_at": "2025-01-01T12:00:00Z",
    "updated_at": "2025-01-02T12:00:00Z",
    "full_url": "https://example.com/abc123",
}


def make_client_factory(handler: Handler) -> Callable[[ResilienceConfig], ResilientClient]:
    async def async_handler(request: httpx.Request) -> httpx.Response:
        return handler(request)

    def factory(resilience: ResilienceConfig) -> ResilientClient:
        return ResilientClient(resilience, transport=httpx.MockTransport(async_handler))

    return factory
