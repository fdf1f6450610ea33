"""Fetch equity, ETF, BDR and fund quotes from brapi.dev."""

from __future__ import annotations

import asyncio
from typing import Any, Iterable

import httpx
from loguru import logger

from .errors import MissingCredentialError, ProviderError
from .models import PriceQuote, ProviderResult
from .request_utils import get_json, to_float

PROVIDER = "brapi"
DEFAULT_BATCH_SIZE = 20


async def fetch_equity_quotes(
    client: httpx.AsyncClient,
    symbols: Iterable[str],
    token: str | None,
    *,
    base_url: str = "https://brapi.dev",
    batch_size: int = DEFAULT_BATCH_SIZE,
    max_concurrency: int = 4,
) -> ProviderResult:
    """Fetch the latest quote for each symbol, *batch_size* symbols per request.

    Parameters
    ----------
    client:
        Shared async HTTP client.
    symbols:
        Ticker symbols, e.g. ``["PETR4", "IVVB11"]``. Duplicates and blanks are dropped.
    token:
        brapi API token.
    batch_size:
        Maximum number of symbols per request.  Defaults to 20.
    max_concurrency:
        Maximum number of batch requests in flight at once.

    Returns
    -------
    ProviderResult
        Quotes keyed by symbol.  A failed batch is recorded in ``errors`` and
        the remaining batches are still merged.  Symbols missing from the
        response, or priced at zero, are simply absent.

    Raises
    ------
    MissingCredentialError
        If *token* is empty.
    """
    unique = sorted({s.strip().upper() for s in symbols if s and s.strip()})
    result = ProviderResult(provider=PROVIDER)
    if not unique:
        return result
    if not token:
        raise MissingCredentialError(PROVIDER, "BRAPI_TOKEN")

    batches = [unique[i : i + batch_size] for i in range(0, len(unique), batch_size)]
    logger.info(
        "Fetching {} equity quote(s) from {} in {} batch(es)",
        len(unique),
        PROVIDER,
        len(batches),
    )

    semaphore = asyncio.Semaphore(max_concurrency)

    async def _run(batch: list[str]) -> dict[str, PriceQuote]:
        async with semaphore:
            return await _fetch_batch(client, batch, token, base_url)

    outcomes = await asyncio.gather(*(_run(b) for b in batches), return_exceptions=True)

    for batch, outcome in zip(batches, outcomes):
        if isinstance(outcome, Exception):
            detail = outcome.message if isinstance(outcome, ProviderError) else repr(outcome)
            message = f"Stock batch error ({PROVIDER}) [{','.join(batch)}]: {detail}"
            logger.warning("{}", message)
            result.errors.append(message)
        elif isinstance(outcome, BaseException):
            raise outcome
        else:
            result.quotes.update(outcome)

    logger.info("Received {} equity quote(s) from {}", len(result.quotes), PROVIDER)
    return result


# ------------------------------------------------------------------
# Private helpers
# ------------------------------------------------------------------


async def _fetch_batch(
    client: httpx.AsyncClient,
    batch: list[str],
    token: str,
    base_url: str,
) -> dict[str, PriceQuote]:
    """Request one batch of symbols and parse the ``results`` list.

    Raises ``ProviderError`` so that the caller can record the batch failure.
    """
    url = f"{base_url.rstrip('/')}/api/quote/{','.join(batch)}"
    payload = await get_json(client, PROVIDER, url, params={"token": token})
    if not isinstance(payload, dict):
        raise ProviderError(PROVIDER, "malformed response: expected a JSON object")
    return _parse_results(payload.get("results") or [])


def _parse_results(results: list[Any]) -> dict[str, PriceQuote]:
    quotes: dict[str, PriceQuote] = {}
    for item in results:
        if not isinstance(item, dict):
            continue
        symbol = item.get("symbol")
        price = to_float(item.get("regularMarketPrice"))
        if not symbol or price is None or price <= 0:
            continue
        change = to_float(item.get("regularMarketChangePercent")) or 0.0
        quotes[str(symbol).upper()] = PriceQuote(price=price, change_percent=change)
    return quotes
