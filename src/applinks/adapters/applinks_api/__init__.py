"""Adapter for the AppLinks resolution service API."""

from __future__ import annotations

from .client import AppLinksApiClient
from .schema import ErrorResponse, LinkPayload, VisitPayload
from .translator import build_create_link_request, translate_link, translate_visit

__all__ = [
    "AppLinksApiClient",
    "ErrorResponse",
    "LinkPayload",
    "VisitPayload",
    "build_create_link_request",
    "translate_link",
    "translate_visit",
]
