"""Pydantic models describing the AppLinks API payloads."""

from __future__ import annotations

import logging
from datetime import datetime  # noqa: TC003
from typing import ClassVar, Literal

from pydantic import BaseModel, ConfigDict, Field

log = logging.getLogger(__name__)


class AppLinksBaseModel(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)
    _logged_extra_keys: ClassVar[set[str]] = set()

    def model_post_init(self, _context: object, /) -> None:
        extras = self.__pydantic_extra__
        if not extras:
            return
        new_keys = set(extras).difference(self._logged_extra_keys)
        if not new_keys:
            return
        self._logged_extra_keys.update(new_keys)
        log.debug(
            "AppLinks %s: unmodeled keys: %s",
            type(self).__name__,
            ", ".join(sorted(new_keys)),
        )


class LinkPayload(AppLinksBaseModel):
    id: str
    title: str
    alias_path: str
    domain: str
    original_url: str
    deep_link_path: str
    deep_link_params: dict[str, str] = Field(default_factory=dict)
    expires_at: datetime | None = None
    created_at: datetime
    updated_at: datetime
    full_url: str
    visit_id: str | None = None


class VisitPayload(AppLinksBaseModel):
    id: str
    created_at: datetime
    updated_at: datetime
    last_seen_at: datetime | None = None
    expires_at: datetime | None = None
    ip_address: str | None = None
    user_agent: str | None = None
    fingerprint: str | None = None
    link: LinkPayload | None = None


class ErrorDetails(AppLinksBaseModel):
    status: str | None = None
    code: int | None = None
    message: str


class ErrorResponse(AppLinksBaseModel):
    error: ErrorDetails


class RetrieveLinkRequest(BaseModel):
    url: str


class AliasPathAttributes(BaseModel):
    type: Literal["UNGUESSABLE", "SHORT"]


class LinkData(BaseModel):
    title: str
    original_url: str | None = None
    deep_link_path: str | None = None
    deep_link_params: dict[str, str] | None = None
    expires_at: datetime | None = None
    alias_path_attributes: AliasPathAttributes | None = None


class CreateLinkRequest(BaseModel):
    domain: str
    link: LinkData
