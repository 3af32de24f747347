"""AppLinks service configuration values."""

from __future__ import annotations

from dataclasses import dataclass, field
from logging import getLogger

from applinks.domain.errors import ValidationError

from .env import env_flag, env_list, optional_env_var
from .http_resilience import ResilienceConfig

log = getLogger(__name__)

DEFAULT_SERVER_URL = "https://applinks.com"
DEFAULT_TIMEOUT_SECONDS = 10.0
DEFAULT_PROCESSED_IDS_CAPACITY = 500

PUBLIC_KEY_PREFIX = "pk_"
PRIVATE_KEY_PREFIX = "sk_"


def _default_resilience_config() -> ResilienceConfig:
    return ResilienceConfig(
        name="applinks",
        timeout_seconds=DEFAULT_TIMEOUT_SECONDS,
    )


@dataclass(frozen=True, slots=True)
class AppLinksConfig:
    """Holds AppLinks resolution configuration values.

    ``supported_schemes`` is ordered: the first entry is the native scheme used when
    a web link is rewritten into its in-app form.
    """

    server_url: str = DEFAULT_SERVER_URL
    api_key: str | None = None
    supported_domains: tuple[str, ...] = ()
    supported_schemes: tuple[str, ...] = ()
    deferred_deep_linking_enabled: bool = True
    processed_ids_capacity: int = DEFAULT_PROCESSED_IDS_CAPACITY
    resilience: ResilienceConfig = field(default_factory=_default_resilience_config)

    def __post_init__(self) -> None:
        validate_api_key(self.api_key)
        if self.processed_ids_capacity < 1:
            raise ValidationError("processed_ids_capacity must be at least 1")


def validate_api_key(api_key: str | None) -> None:
    """Reject private keys and warn about keys that do not look public."""

    if not api_key:
        return
    if api_key.startswith(PRIVATE_KEY_PREFIX):
        raise ValidationError(
            "Private keys (sk_*) must never be embedded in client applications. "
            "Use a public key (pk_*) instead."
        )
    if not api_key.startswith(PUBLIC_KEY_PREFIX):
        log.warning(
            "API key should start with %r for public keys. Current key: %s...",
            PUBLIC_KEY_PREFIX,
            api_key[:3],
        )


def get_applinks_config(*, resilience: ResilienceConfig | None = None) -> AppLinksConfig:
    server_url = (optional_env_var("APPLINKS_SERVER_URL") or DEFAULT_SERVER_URL).rstrip("/")
    return AppLinksConfig(
        server_url=server_url,
        api_key=optional_env_var("APPLINKS_API_KEY"),
        supported_domains=env_list("APPLINKS_SUPPORTED_DOMAINS"),
        supported_schemes=env_list("APPLINKS_SUPPORTED_SCHEMES"),
        deferred_deep_linking_enabled=env_flag("APPLINKS_DEFERRED_DEEP_LINKING", default=True),
        resilience=resilience or _default_resilience_config(),
    )
