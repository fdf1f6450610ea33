"""Fetch foreign currency / BRL exchange rates from AwesomeAPI."""

from __future__ import annotations

import httpx
from loguru import logger

from .classifier import CURRENCY_PAIRS
from .errors import ProviderError
from .models import PriceQuote, ProviderResult
from .request_utils import get_json, to_float

PROVIDER = "awesomeapi"


def _request_code(pair: str) -> str:
    """``"USDBRL"`` -> ``"USD-BRL"``, the form the endpoint path expects."""
    return f"{pair[:3]}-{pair[3:]}"


async def fetch_currency_quotes(
    client: httpx.AsyncClient,
    *,
    base_url: str = "https://economia.awesomeapi.com.br",
    pairs: tuple[str, ...] = CURRENCY_PAIRS,
) -> ProviderResult:
    """Fetch the latest bid for every known pair in one request.

    All pairs are always requested, whether or not anyone holds them.
    The endpoint returns numbers as strings; bids that do not parse to a
    positive number are skipped rather than written as zero.

    Raises
    ------
    ProviderError
        If the request fails or the body is not a pair -> quote mapping.
    """
    codes = ",".join(_request_code(p) for p in pairs)
    logger.info("Fetching {} exchange rate(s) from {}", len(pairs), PROVIDER)

    payload = await get_json(client, PROVIDER, f"{base_url.rstrip('/')}/json/last/{codes}")
    if not isinstance(payload, dict):
        raise ProviderError(PROVIDER, "malformed response: expected a JSON object")

    result = ProviderResult(provider=PROVIDER)
    for key, values in payload.items():
        if not isinstance(values, dict):
            continue
        bid = to_float(values.get("bid"))
        if bid is None or bid <= 0:
            logger.warning("Ignoring unusable bid {!r} for {}", values.get("bid"), key)
            continue
        change = to_float(values.get("pctChange")) or 0.0
        result.quotes[key] = PriceQuote(price=bid, change_percent=change)

    logger.info("Received {} exchange rate(s) from {}", len(result.quotes), PROVIDER)
    return result
