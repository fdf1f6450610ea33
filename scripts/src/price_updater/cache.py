"""Short-lived quote cache owned by a refresher instance."""

from __future__ import annotations

import time
from typing import Callable, Iterable

from .models import PriceQuote


class PriceCache:
    """Quotes keyed by ``(provider, identifier)`` that expire after *ttl* seconds.

    A refresher that runs repeatedly in one process keeps its cache between
    runs, so a second trigger inside the TTL window does not hit providers
    again. A TTL of zero disables caching.
    """

    def __init__(self, ttl: float = 60.0, clock: Callable[[], float] = time.monotonic) -> None:
        self._ttl = ttl
        self._clock = clock
        self._entries: dict[tuple[str, str], tuple[float, PriceQuote]] = {}

    def get(self, provider: str, identifier: str) -> PriceQuote | None:
        entry = self._entries.get((provider, identifier))
        if entry is None:
            return None
        stored_at, quote = entry
        if self._clock() - stored_at >= self._ttl:
            del self._entries[(provider, identifier)]
            return None
        return quote

    def get_many(self, provider: str, identifiers: Iterable[str]) -> dict[str, PriceQuote]:
        """Return the fresh cached quotes among *identifiers*."""
        found: dict[str, PriceQuote] = {}
        for identifier in identifiers:
            quote = self.get(provider, identifier)
            if quote is not None:
                found[identifier] = quote
        return found

    def put_many(self, provider: str, quotes: dict[str, PriceQuote]) -> None:
        if self._ttl <= 0:
            return
        now = self._clock()
        for identifier, quote in quotes.items():
            self._entries[(provider, identifier)] = (now, quote)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
