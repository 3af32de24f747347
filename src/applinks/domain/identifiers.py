"""URI-shaped identifiers submitted for resolution."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from applinks.domain.errors import ValidationError

if TYPE_CHECKING:
    from collections.abc import Mapping

WEB_SCHEMES = frozenset({"http", "https"})

type QueryPairs = tuple[tuple[str, str], ...]


@dataclass(frozen=True, slots=True)
class Identifier:
    """Immutable, parsed view of an incoming link.

    ``raw`` keeps the exact string that was received so the identifier can be
    echoed back untouched; the remaining fields are the parsed components with the
    scheme and host lower-cased.
    """

    raw: str
    scheme: str = ""
    host: str = ""
    path: str = ""
    query: QueryPairs = field(default_factory=tuple)

    @classmethod
    def parse(cls, value: str) -> Identifier:
        """Parse ``value``; raise ``ValidationError`` when it is not a usable URI."""

        stripped = value.strip()
        try:
            parts = urlsplit(stripped)
            host = parts.hostname or ""
        except ValueError as exc:
            raise ValidationError(f"Malformed identifier {stripped!r}: {exc}") from exc
        return cls(
            raw=stripped,
            scheme=parts.scheme.lower(),
            host=host.lower(),
            path=parts.path,
            query=tuple(parse_qsl(parts.query, keep_blank_values=True)),
        )

    @classmethod
    def build(
        cls,
        *,
        scheme: str,
        host: str,
        path: str = "",
        params: Mapping[str, str] | None = None,
    ) -> Identifier:
        if path and not path.startswith("/"):
            path = f"/{path}"
        query = tuple((params or {}).items())
        raw = urlunsplit((scheme, host, path, urlencode(query), ""))
        return cls(raw=raw, scheme=scheme.lower(), host=host.lower(), path=path, query=query)

    @classmethod
    def unparsed(cls, value: str) -> Identifier:
        """Keep a value that failed to parse so it can still be reported back."""

        return cls(raw=value.strip())

    @property
    def is_web(self) -> bool:
        return self.scheme in WEB_SCHEMES

    @property
    def query_params(self) -> dict[str, str]:
        """Query parameters by name; the first occurrence of a repeated name wins."""

        params: dict[str, str] = {}
        for name, value in self.query:
            params.setdefault(name, value)
        return params

    def matches_domain(self, domain: str) -> bool:
        """Return whether the host equals ``domain`` or is one of its subdomains."""

        candidate = domain.strip().lower()
        if not self.host or not candidate:
            return False
        return self.host == candidate or self.host.endswith(f".{candidate}")

    def __str__(self) -> str:
        return self.raw


def as_identifier(value: Identifier | str) -> Identifier:
    if isinstance(value, Identifier):
        return value
    return Identifier.parse(value)
