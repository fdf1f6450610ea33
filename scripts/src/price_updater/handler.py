"""Request/response boundary for the refresh and snapshot jobs.

Both handlers return ``(status, body)``. Provider and per-row failures are
reported inside a 200 body; only a failure to start the job or to load its
input yields an error status.
"""

from __future__ import annotations

from typing import Any, Callable

import httpx
from loguru import logger
from pydantic import ValidationError

from .config import Settings, get_settings
from .errors import ConfigurationError
from .models import RefreshRequest
from .refresher import PriceRefresher
from .sheets_client import SheetsClient
from .snapshot import take_snapshots
from .store import HistoryStore

Response = tuple[int, dict[str, Any]]


def open_store(settings: Settings) -> SheetsClient:
    """Open the spreadsheet store configured in *settings*."""
    if not settings.google_sheets_id:
        raise ConfigurationError("PORTFOLIO_GOOGLE_SHEETS_ID is not set")
    return SheetsClient(
        spreadsheet_id=settings.google_sheets_id,
        service_account_json_path=settings.service_account_json_path,
    )


async def handle_refresh(
    payload: dict[str, Any] | None = None,
    refresher: PriceRefresher | None = None,
) -> Response:
    """Run one refresh for ``{userId?, forceUpdate?}``.

    Parameters
    ----------
    payload:
        Invocation body; camelCase and snake_case keys are both accepted.
    refresher:
        Pre-built refresher.  When omitted one is created from the
        environment settings and the spreadsheet store.
    """
    try:
        request = RefreshRequest.model_validate(payload or {})
    except ValidationError as exc:
        logger.error("Invalid refresh request {}: {}", payload, exc)
        return 400, {"error": f"Invalid request: {exc.errors()[0]['msg']}"}

    try:
        if refresher is None:
            settings = get_settings()
            refresher = PriceRefresher(open_store(settings), settings)
        summary = await refresher.run(request)
    except Exception as exc:  # noqa: BLE001
        logger.exception("Update prices error: {}", exc)
        return 500, {"error": _describe(exc)}

    return 200, summary.to_response()


async def handle_snapshot(
    store: HistoryStore | None = None,
    settings: Settings | None = None,
    client_factory: Callable[[], httpx.AsyncClient] | None = None,
) -> Response:
    """Run the daily portfolio snapshot job."""
    try:
        settings = settings or get_settings()
        store = store or open_store(settings)
        factory = client_factory or (lambda: httpx.AsyncClient(timeout=settings.http_timeout))
        async with factory() as client:
            summary = await take_snapshots(
                store, store, store, client, bcb_base_url=settings.bcb_base_url
            )
    except Exception as exc:  # noqa: BLE001
        logger.exception("Portfolio snapshot error: {}", exc)
        return 500, {"error": _describe(exc)}

    return 200, summary.to_response()


def _describe(exc: Exception) -> str:
    return str(exc) or type(exc).__name__
