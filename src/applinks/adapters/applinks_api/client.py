"""HTTP client for the AppLinks resolution service."""

from __future__ import annotations

from dataclasses import replace
from logging import getLogger
from typing import TYPE_CHECKING, Any
from urllib.parse import quote

import httpx
import pydantic

from applinks import __version__
from applinks.adapters.http_resilience import ResilientClient
from applinks.domain.errors import (
    AuthError,
    DecodeError,
    NetworkError,
    NotFoundError,
    ServiceError,
)
from applinks.domain.ports.resolution_service import ResolutionServiceClient

from .schema import ErrorResponse, LinkPayload, RetrieveLinkRequest, VisitPayload
from .translator import build_create_link_request, translate_link, translate_visit

if TYPE_CHECKING:
    from collections.abc import Callable

    from applinks.config.applinks import AppLinksConfig
    from applinks.config.http_resilience import ResilienceConfig
    from applinks.domain.creation import CreationRequest
    from applinks.domain.links import LinkDetails, VisitDetails

log = getLogger(__name__)

USER_AGENT = f"applinks-python/{__version__}"

RETRIEVE_LINK_PATH = "/api/v1/links/retrieve"
CREATE_LINK_PATH = "/api/v1/links"
VISIT_PATH = "/api/v1/visits/{visit_id}"


def _default_client_factory(config: ResilienceConfig) -> ResilientClient:
    return ResilientClient(config)


class AppLinksApiClient:
    """Low-level client for the AppLinks API.

    Every call opens its own ``ResilientClient``; failures surface as
    ``ServiceError`` subclasses so callers never see transport exceptions.
    """

    def __init__(
        self,
        *,
        config: AppLinksConfig,
        client_factory: Callable[[ResilienceConfig], ResilientClient] | None = None,
    ) -> None:
        self._config = config
        self._resilience = replace(
            config.resilience,
            base_url=config.server_url,
            default_headers=self._default_headers(config.api_key),
        )
        self._client_factory = client_factory or _default_client_factory

    @staticmethod
    def _default_headers(api_key: str | None) -> dict[str, str]:
        headers = {"Accept": "application/json", "User-Agent": USER_AGENT}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        return headers

    async def retrieve_by_url(self, url: str) -> LinkDetails:
        log.debug("Retrieving link with URL: %s", url)
        body = RetrieveLinkRequest(url=url).model_dump(mode="json")
        payload = await self._perform_request(
            "POST", RETRIEVE_LINK_PATH, resource="link", json=body
        )
        return translate_link(_validate(LinkPayload, payload, resource="link"))

    async def fetch_visit_details(self, visit_id: str) -> VisitDetails:
        log.debug("Fetching visit details: %s", visit_id)
        path = VISIT_PATH.format(visit_id=quote(visit_id, safe=""))
        payload = await self._perform_request("GET", path, resource="visit")
        return translate_visit(_validate(VisitPayload, payload, resource="visit"))

    async def create_link(self, request: CreationRequest) -> LinkDetails:
        wire = build_create_link_request(request)
        log.debug("Creating link with title: %s", wire.link.title)
        body = wire.model_dump(mode="json", exclude_none=True)
        payload = await self._perform_request("POST", CREATE_LINK_PATH, resource="link", json=body)
        return translate_link(_validate(LinkPayload, payload, resource="link"))

    async def _perform_request(
        self,
        method: str,
        path: str,
        *,
        resource: str,
        json: dict[str, Any] | None = None,
    ) -> object:
        try:
            async with self._client_factory(self._resilience) as client:
                if json is None:
                    response = await client.request(method, path)
                else:
                    response = await client.request(method, path, json=json)
        except httpx.HTTPError as exc:
            log.error("Network error talking to AppLinks: %s", exc)
            raise NetworkError(f"Network error: {exc}") from exc

        log.debug("Response code: %s", response.status_code)
        return _handle_response(response, resource=resource)


def _handle_response(response: httpx.Response, *, resource: str) -> object:
    status = response.status_code
    if status in (200, 201):
        if not response.content:
            raise DecodeError("Empty response body", status_code=status)
        try:
            return response.json()
        except ValueError as exc:
            log.error("Failed to parse %s response", resource)
            raise DecodeError(f"Failed to parse response: {exc}", status_code=status) from exc
    if status == 400:
        raise ServiceError(_error_message(response) or "Bad request", status_code=status)
    if status == 401:
        raise AuthError("Unauthorized: Invalid or missing API token", status_code=status)
    if status == 403:
        raise AuthError("Forbidden: Access denied", status_code=status)
    if status == 404:
        raise NotFoundError(f"{resource.capitalize()} not found", status_code=status)
    message = _error_message(response) or f"Server error: {status}"
    raise ServiceError(message, status_code=status)


def _error_message(response: httpx.Response) -> str | None:
    if not response.content:
        return None
    try:
        return ErrorResponse.model_validate_json(response.content).error.message
    except pydantic.ValidationError:
        return None


def _validate[TModel: pydantic.BaseModel](
    model: type[TModel], payload: object, *, resource: str
) -> TModel:
    if not isinstance(payload, dict):
        raise DecodeError(f"Unexpected {resource} response payload")
    try:
        return model.model_validate(payload)
    except pydantic.ValidationError as exc:
        log.error("Failed to parse %s response", resource)
        raise DecodeError(f"Failed to parse response: {exc}") from exc


if TYPE_CHECKING:

    def _client_check(client: AppLinksApiClient) -> ResolutionServiceClient:
        return client
