"""Shared HTTP helpers for the market data fetchers."""

from __future__ import annotations

import time
from typing import Any

import httpx
from loguru import logger

from .errors import ProviderError


async def get_json(
    client: httpx.AsyncClient,
    provider: str,
    url: str,
    params: dict[str, Any] | None = None,
    headers: dict[str, str] | None = None,
) -> Any:
    """GET *url* and return the decoded JSON body.

    Raises
    ------
    ProviderError
        On transport failure, a non-2xx status, or a body that is not JSON.
        The exception is tagged with *provider* so callers can report it.
    """
    logger.debug("{} request: GET {}", provider, url)
    started = time.monotonic()
    try:
        response = await client.get(url, params=params, headers=headers)
    except httpx.HTTPError as exc:
        raise ProviderError(provider, f"request failed: {exc!r}") from exc

    elapsed = time.monotonic() - started
    if response.is_error:
        raise ProviderError(
            provider,
            f"HTTP {response.status_code} {response.reason_phrase} ({elapsed:.2f}s)",
        )

    try:
        payload = response.json()
    except ValueError as exc:
        raise ProviderError(provider, f"malformed JSON response: {exc}") from exc

    logger.debug("{} response: {} ({:.2f}s)", provider, response.status_code, elapsed)
    return payload


def to_float(value: Any) -> float | None:
    """Parse a provider number (possibly a string) into a float, or ``None``."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if number != number:  # NaN
        return None
    return number
