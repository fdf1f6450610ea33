"""Command-line entry points for the price updater and the snapshot job."""

from __future__ import annotations

import asyncio
import json
import sys
from typing import Any

from loguru import logger
from pydantic import ValidationError

from .config import Settings, get_settings
from .handler import handle_refresh, handle_snapshot

# ------------------------------------------------------------------
# Logging setup
# ------------------------------------------------------------------


def configure_logging(level: str = "INFO") -> None:
    """Send log records to stderr with the project format."""
    logger.remove()
    logger.add(
        sys.stderr,
        format=(
            "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
            "<level>{level: <8}</level> | "
            "<cyan>{name}</cyan> | "
            "{message}"
        ),
        level=level.upper(),
        colorize=True,
    )


def _load_settings() -> Settings:
    """Return the settings, or report the configuration error and exit."""
    try:
        return get_settings()
    except ValidationError as exc:
        configure_logging()
        logger.error("Invalid configuration: {}", exc)
        body = {"error": f"Invalid configuration: {exc.errors()[0]['msg']}"}
        print(json.dumps(body, ensure_ascii=False))
        raise SystemExit(1) from exc


def _emit(status: int, body: dict[str, Any]) -> None:
    """Print the JSON body to stdout; a failure status exits with code 1."""
    print(json.dumps(body, ensure_ascii=False))
    if status >= 400:
        raise SystemExit(1)


# ------------------------------------------------------------------
# Entry points
# ------------------------------------------------------------------


def main() -> None:
    """Run one price refresh for ``PORTFOLIO_USER_ID`` (or everyone)."""
    settings = _load_settings()
    configure_logging(settings.log_level)
    logger.info("=== Price Updater starting ===")
    logger.info(
        "Config loaded — spreadsheet_id={} user={} force_update={} brapi_token={}",
        settings.google_sheets_id,
        settings.user_id or "all",
        settings.force_update,
        "set" if settings.brapi_token else "missing",
    )

    status, body = asyncio.run(
        handle_refresh({"userId": settings.user_id, "forceUpdate": settings.force_update})
    )
    logger.info("=== Done — status {} ===", status)
    _emit(status, body)


def snapshot_main() -> None:
    """Record today's portfolio history snapshot."""
    settings = _load_settings()
    configure_logging(settings.log_level)
    status, body = asyncio.run(handle_snapshot(settings=settings))
    logger.info("=== Done — status {} ===", status)
    _emit(status, body)


if __name__ == "__main__":
    main()
