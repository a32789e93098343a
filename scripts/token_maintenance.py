"""Maintenance tasks for the Zoom OAuth store.

Intended to run from cron/systemd next to the API process::

    # Validate the configuration the API will load.
    python -m scripts.token_maintenance check --env-file /opt/centrinote/.env

    # Drop expired handshakes and token records expired for over an hour.
    python -m scripts.token_maintenance purge --grace-seconds 3600

    # Print token counts (never token values).
    python -m scripts.token_maintenance stats
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Callable

from pydantic import ValidationError

from centrinote.clients import SQLiteStore
from centrinote.clients.relay import build_token_exchanger
from centrinote.clients.zoom_auth import ZoomOAuthClient
from centrinote.core.config import AppSettings
from centrinote.core.logging import configure_logging
from centrinote.services import HandshakeService, TokenCipherService, ZoomTokenService

EXIT_OK = 0
EXIT_VALIDATION_ERROR = 2
EXIT_RUNTIME_ERROR = 5

logger = logging.getLogger("centrinote.maintenance")


def _load_settings(env_file: Path) -> AppSettings:
    return AppSettings.from_env_file(str(env_file))


def _build_services(settings: AppSettings) -> tuple[HandshakeService, ZoomTokenService]:
    store = SQLiteStore(settings.token_db_path)
    oauth_client = ZoomOAuthClient(settings.zoom, settings.oauth)
    token_service = ZoomTokenService(
        store=store,
        exchanger=build_token_exchanger(settings.zoom, settings.oauth, oauth_client),
        token_cipher=TokenCipherService.from_settings(settings),
        oauth_settings=settings.oauth,
        oauth_client=oauth_client,
    )
    return HandshakeService(store, settings.oauth), token_service


def _purge(settings: AppSettings, grace_seconds: int) -> int:
    handshakes, tokens = _build_services(settings)
    removed_handshakes = handshakes.purge_expired()
    removed_tokens = tokens.cleanup_expired(grace_seconds=grace_seconds)
    print(f"Removed {removed_handshakes} handshakes and {removed_tokens} token records.")
    return EXIT_OK


def _stats(settings: AppSettings) -> int:
    _, tokens = _build_services(settings)
    print(json.dumps(tokens.token_stats().model_dump(), indent=2))
    return EXIT_OK


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Zoom OAuth store maintenance.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    def add_common_arguments(subparser: argparse.ArgumentParser) -> None:
        subparser.add_argument(
            "--env-file",
            default=".env",
            type=Path,
            help="Path to the environment file (default: .env in the repo root).",
        )

    add_common_arguments(
        subparsers.add_parser("check", help="Validate settings and exit.")
    )
    purge_parser = subparsers.add_parser(
        "purge", help="Delete expired handshakes and stale token records."
    )
    add_common_arguments(purge_parser)
    purge_parser.add_argument(
        "--grace-seconds",
        type=int,
        default=3600,
        help="Keep token records expired for less than this many seconds.",
    )
    add_common_arguments(
        subparsers.add_parser("stats", help="Print token record counts.")
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    if not args.env_file.exists():
        print(f"Environment file not found: {args.env_file}", file=sys.stderr)
        return EXIT_RUNTIME_ERROR

    try:
        settings = _load_settings(args.env_file)
    except ValidationError as exc:
        print(
            "Settings validation failed. Missing or invalid values detected:\n"
            f"{exc.json(indent=2)}",
            file=sys.stderr,
        )
        return EXIT_VALIDATION_ERROR

    configure_logging(settings.log_level)
    handlers: dict[str, Callable[[], int]] = {
        "check": lambda: EXIT_OK,
        "purge": lambda: _purge(settings, args.grace_seconds),
        "stats": lambda: _stats(settings),
    }
    try:
        return handlers[args.command]()
    except Exception as exc:  # pylint: disable=broad-except
        logger.exception("Maintenance command %s failed", args.command)
        print(f"Unexpected error: {exc}", file=sys.stderr)
        return EXIT_RUNTIME_ERROR


if __name__ == "__main__":  # pragma: no cover - script entry point
    sys.exit(main())
