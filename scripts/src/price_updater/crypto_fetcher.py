"""Fetch cryptocurrency prices in BRL from CoinGecko."""

from __future__ import annotations

from typing import Iterable

import httpx
from loguru import logger

from .classifier import CRYPTO_PROVIDER_IDS
from .errors import ProviderError
from .models import PriceQuote, ProviderResult
from .request_utils import get_json, to_float

PROVIDER = "coingecko"
VS_CURRENCY = "brl"


async def fetch_crypto_quotes(
    client: httpx.AsyncClient,
    asset_ids: Iterable[str] = CRYPTO_PROVIDER_IDS,
    *,
    base_url: str = "https://api.coingecko.com",
    api_key: str | None = None,
) -> ProviderResult:
    """Fetch BRL prices for *asset_ids* in a single request.

    Parameters
    ----------
    asset_ids:
        CoinGecko asset ids.  Defaults to every id the name table knows about.
    api_key:
        Optional demo API key, sent as ``x-cg-demo-api-key``.

    Returns
    -------
    ProviderResult
        Quotes keyed by asset id.  Ids absent from the response are skipped.

    Raises
    ------
    ProviderError
        If the request fails or the body is not an id -> price mapping.
    """
    ids = sorted(set(asset_ids))
    if not ids:
        return ProviderResult(provider=PROVIDER)

    logger.info("Fetching {} crypto price(s) from {}", len(ids), PROVIDER)
    headers = {"x-cg-demo-api-key": api_key} if api_key else None
    payload = await get_json(
        client,
        PROVIDER,
        f"{base_url.rstrip('/')}/api/v3/simple/price",
        params={
            "ids": ",".join(ids),
            "vs_currencies": VS_CURRENCY,
            "include_24hr_change": "true",
        },
        headers=headers,
    )
    if not isinstance(payload, dict):
        raise ProviderError(PROVIDER, "malformed response: expected a JSON object")

    result = ProviderResult(provider=PROVIDER)
    for asset_id, values in payload.items():
        if not isinstance(values, dict):
            continue
        price = to_float(values.get(VS_CURRENCY))
        if price is None or price <= 0:
            continue
        change = to_float(values.get(f"{VS_CURRENCY}_24h_change")) or 0.0
        result.quotes[asset_id] = PriceQuote(price=price, change_percent=change)

    logger.info("Received {} crypto price(s) from {}", len(result.quotes), PROVIDER)
    return result
