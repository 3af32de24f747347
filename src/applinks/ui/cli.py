from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from dataclasses import replace
from datetime import UTC, datetime
from signal import SIGINT, signal
from typing import TYPE_CHECKING, Any

from dotenv import load_dotenv

from applinks.adapters.memory import InMemoryAppStateStore, StaticInstallReferrer
from applinks.app import build_app_links, open_state_store
from applinks.config import (
    ConfigurationError,
    configure_logging,
    get_applinks_config,
    require_env_vars,
)
from applinks.domain.creation import CreationRequest, PathStrategy
from applinks.domain.errors import ValidationError

if TYPE_CHECKING:
    from collections.abc import Sequence
    from types import FrameType

    from applinks.config import AppLinksConfig

log = logging.getLogger(__name__)


def _parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Resolve and create AppLinks links")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    resolve = subparsers.add_parser("resolve", help="Resolve a URI into a navigation target")
    resolve.add_argument("uri", help="URI received by the application")
    resolve.add_argument(
        "--domain",
        action="append",
        default=[],
        help="Supported web domain (repeatable, overrides APPLINKS_SUPPORTED_DOMAINS)",
    )
    resolve.add_argument(
        "--scheme",
        action="append",
        default=[],
        help="Supported custom scheme (repeatable, overrides APPLINKS_SUPPORTED_SCHEMES)",
    )

    shorten = subparsers.add_parser("shorten", help="Create a short link")
    shorten.add_argument("--url", required=True, help="Target URL of the new link")
    shorten.add_argument("--domain", required=True, help="Domain that hosts the link")
    shorten.add_argument("--title", help="Link title (defaults to the target URL)")
    shorten.add_argument("--path", help="Deep link path opened inside the app")
    shorten.add_argument(
        "--param",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Deep link parameter (repeatable)",
    )
    shorten.add_argument(
        "--short",
        action="store_true",
        help="Generate a short shareable path instead of an unguessable one",
    )
    shorten.add_argument("--expires-at", help="ISO-8601 expiry timestamp (UTC if naive)")

    recover = subparsers.add_parser("recover", help="Run first-launch deferred recovery")
    recover.add_argument(
        "--referrer",
        required=True,
        help="Install referrer string, e.g. 'applinks_visit_id=abc&utm_source=x'",
    )
    recover.add_argument(
        "--reset-first-launch",
        action="store_true",
        help="Clear the persisted first-launch flag before recovering",
    )

    return parser.parse_args(list(argv))


def _parse_iso_datetime(value: str) -> datetime:
    try:
        normalized = value.strip()
        if normalized.endswith("Z"):
            normalized = normalized[:-1] + "+00:00"
        dt = datetime.fromisoformat(normalized)
    except ValueError as exc:
        raise ValueError(f"Invalid ISO timestamp: {value}") from exc
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def _parse_params(pairs: Sequence[str]) -> dict[str, str]:
    params: dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise ValueError(f"Invalid parameter (expected KEY=VALUE): {pair}")
        params[key] = value
    return params


def _build_config(args: argparse.Namespace) -> AppLinksConfig:
    config = get_applinks_config()
    if args.command == "resolve":
        overrides: dict[str, Any] = {"deferred_deep_linking_enabled": False}
        if args.domain:
            overrides["supported_domains"] = tuple(args.domain)
        if args.scheme:
            overrides["supported_schemes"] = tuple(args.scheme)
        config = replace(config, **overrides)
    elif args.command == "shorten":
        require_env_vars(["APPLINKS_API_KEY"])
    elif args.command == "recover":
        # recovery is run explicitly below rather than scheduled by start()
        config = replace(config, deferred_deep_linking_enabled=False)
    return config


def _build_creation_request(args: argparse.Namespace) -> CreationRequest:
    return CreationRequest(
        target_url=args.url,
        domain=args.domain,
        title=args.title,
        deep_link_path=args.path,
        deep_link_params=_parse_params(args.param),
        expires_at=_parse_iso_datetime(args.expires_at) if args.expires_at else None,
        path_strategy=PathStrategy.SHORT if args.short else PathStrategy.UNGUESSABLE,
    ).validated()


def _emit(payload: dict[str, Any]) -> None:
    print(json.dumps(payload, indent=2, sort_keys=True, default=str))  # noqa: T201


async def _resolve(config: AppLinksConfig, uri: str) -> dict[str, Any]:
    app = build_app_links(config=config, state=InMemoryAppStateStore(first_launch_completed=True))
    try:
        app.start()
        result = await app.resolve(uri)
    finally:
        app.close(wait=False)
    return result.to_dict()


async def _shorten(config: AppLinksConfig, request: CreationRequest) -> dict[str, Any]:
    app = build_app_links(config=config, state=InMemoryAppStateStore(first_launch_completed=True))
    try:
        created = await app.create_short_link(request)
    finally:
        app.close(wait=False)
    return {
        "full_url": created.full_url,
        "link_id": created.link_id,
        "alias_path": created.alias_path,
        "expires_at": created.expires_at.isoformat() if created.expires_at else None,
    }


async def _recover(config: AppLinksConfig, referrer: str, *, reset: bool) -> dict[str, Any]:
    state = open_state_store()
    if reset:
        state.reset_first_launch()
    app = build_app_links(
        config=config, state=state, referrer_source=StaticInstallReferrer(referrer)
    )
    try:
        app.start()
        outcome = await app.recover_deferred()
    finally:
        app.close(wait=False)
    return {
        "state": str(outcome.state),
        "states": [str(step) for step in outcome.states],
        "visit_id": outcome.visit_id,
        "result": outcome.result.to_dict() if outcome.result else None,
        "error": str(outcome.error) if outcome.error else None,
    }


def main(argv: Sequence[str] | None = None) -> None:
    """Main application entry point."""
    args_list = list(argv) if argv is not None else list(sys.argv[1:])
    parsed_args: argparse.Namespace
    try:
        parsed_args = _parse_args(args_list)
        configure_logging(level=logging.DEBUG if parsed_args.verbose else logging.INFO)
        config = _build_config(parsed_args)
        request = _build_creation_request(parsed_args) if parsed_args.command == "shorten" else None
    except (ValueError, ConfigurationError, ValidationError):
        log.exception("CLI validation error")
        sys.exit(2)

    try:
        if parsed_args.command == "resolve":
            payload = asyncio.run(_resolve(config, parsed_args.uri))
        elif parsed_args.command == "shorten" and request is not None:
            payload = asyncio.run(_shorten(config, request))
        elif parsed_args.command == "recover":
            payload = asyncio.run(
                _recover(config, parsed_args.referrer, reset=parsed_args.reset_first_launch)
            )
        else:
            raise ValueError(f"Unsupported command: {parsed_args.command}")  # noqa: TRY301
    except Exception:
        log.exception("Fatal error while running %s", parsed_args.command)
        sys.exit(1)

    _emit(payload)


def sigint_handler(_signal_received: int, _frame: FrameType | None) -> None:
    """Handle SIGINT (Ctrl+C) gracefully."""
    log.info("Closed by user (Ctrl+C)")
    sys.exit(0)


def run() -> None:
    load_dotenv()
    signal(SIGINT, sigint_handler)
    main()


if __name__ == "__main__":
    run()
