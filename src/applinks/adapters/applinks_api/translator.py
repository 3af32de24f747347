"""Translate AppLinks API payloads into domain records and back."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING

from applinks.domain.links import LinkDetails, VisitDetails

from .schema import AliasPathAttributes, CreateLinkRequest, LinkData

if TYPE_CHECKING:
    from applinks.domain.creation import CreationRequest

    from .schema import LinkPayload, VisitPayload


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def _as_optional_utc(value: datetime | None) -> datetime | None:
    return _as_utc(value) if value is not None else None


def translate_link(payload: LinkPayload) -> LinkDetails:
    return LinkDetails(
        id=payload.id,
        title=payload.title,
        alias_path=payload.alias_path,
        domain=payload.domain,
        original_url=payload.original_url,
        deep_link_path=payload.deep_link_path,
        deep_link_params=dict(payload.deep_link_params),
        full_url=payload.full_url,
        created_at=_as_utc(payload.created_at),
        updated_at=_as_utc(payload.updated_at),
        expires_at=_as_optional_utc(payload.expires_at),
        visit_id=payload.visit_id,
    )


def translate_visit(payload: VisitPayload) -> VisitDetails:
    return VisitDetails(
        id=payload.id,
        created_at=_as_utc(payload.created_at),
        updated_at=_as_utc(payload.updated_at),
        last_seen_at=_as_optional_utc(payload.last_seen_at),
        expires_at=_as_optional_utc(payload.expires_at),
        ip_address=payload.ip_address,
        user_agent=payload.user_agent,
        fingerprint=payload.fingerprint,
        link=translate_link(payload.link) if payload.link is not None else None,
    )


def build_create_link_request(request: CreationRequest) -> CreateLinkRequest:
    """Build the wire body for an already validated creation request."""

    return CreateLinkRequest(
        domain=request.domain or "",
        link=LinkData(
            title=request.title or "",
            original_url=request.target_url,
            deep_link_path=request.deep_link_path,
            deep_link_params=dict(request.deep_link_params) or None,
            expires_at=_as_optional_utc(request.expires_at),
            alias_path_attributes=AliasPathAttributes(type=request.path_strategy.value),
        ),
    )
