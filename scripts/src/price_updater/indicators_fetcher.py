"""Fetch accumulated CDI and IPCA benchmark rates from the Banco Central SGS API."""

from __future__ import annotations

import asyncio
from datetime import date, timedelta
from typing import Any

import httpx
from loguru import logger

from .errors import ProviderError
from .models import EconomicIndicators
from .request_utils import get_json, to_float

PROVIDER = "bcb"

_CDI_SERIES = 12  # daily CDI rate, % per day
_IPCA_SERIES = 433  # monthly IPCA, % per month

_CDI_WINDOW = 252  # trading days in a year
_IPCA_WINDOW = 12


def accumulate(values: list[float]) -> float:
    """Compound a list of period rates in %, returning the accumulated rate in %."""
    factor = 1.0
    for value in values:
        factor *= 1 + value / 100
    return (factor - 1) * 100


async def fetch_indicators(
    client: httpx.AsyncClient,
    today: date,
    *,
    base_url: str = "https://api.bcb.gov.br",
) -> EconomicIndicators:
    """Fetch the last-year CDI and IPCA series concurrently and accumulate them.

    Raises
    ------
    ProviderError
        If either series cannot be fetched or parsed.
    """
    start = today - timedelta(days=365)
    cdi_rates, ipca_rates = await asyncio.gather(
        _fetch_series(client, base_url, _CDI_SERIES, start, today),
        _fetch_series(client, base_url, _IPCA_SERIES, start, today),
    )
    indicators = EconomicIndicators(
        cdi_accumulated=accumulate(cdi_rates[-_CDI_WINDOW:]) if cdi_rates else 0.0,
        ipca_accumulated=accumulate(ipca_rates[-_IPCA_WINDOW:]) if ipca_rates else 0.0,
    )
    logger.info(
        "Economic indicators: CDI={:.2f}%, IPCA={:.2f}%",
        indicators.cdi_accumulated,
        indicators.ipca_accumulated,
    )
    return indicators


# ------------------------------------------------------------------
# Private helpers
# ------------------------------------------------------------------


def _sgs_date(day: date) -> str:
    return day.strftime("%d/%m/%Y")


async def _fetch_series(
    client: httpx.AsyncClient,
    base_url: str,
    series: int,
    start: date,
    end: date,
) -> list[float]:
    payload = await get_json(
        client,
        PROVIDER,
        f"{base_url.rstrip('/')}/dados/serie/bcdata.sgs.{series}/dados",
        params={"formato": "json", "dataInicial": _sgs_date(start), "dataFinal": _sgs_date(end)},
    )
    if not isinstance(payload, list):
        raise ProviderError(PROVIDER, f"malformed response for series {series}: expected a list")
    return _parse_series(payload)


def _parse_series(items: list[Any]) -> list[float]:
    values: list[float] = []
    for item in items:
        if not isinstance(item, dict):
            continue
        value = to_float(item.get("valor"))
        if value is not None:
            values.append(value)
    return values
