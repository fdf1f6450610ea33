"""Refresh orchestration: load, classify, fetch, recalculate, aggregate."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Awaitable, Callable

import httpx
from loguru import logger

from .aggregator import aggregate_portfolios
from .cache import PriceCache
from .classifier import CRYPTO_PROVIDER_IDS, ClassifiedHoldings, classify
from .config import Settings
from .crypto_fetcher import PROVIDER as CRYPTO_PROVIDER
from .crypto_fetcher import fetch_crypto_quotes
from .errors import ProviderError
from .models import Holding, PriceQuote, ProviderResult, RefreshRequest, RefreshSummary
from .price_fetcher import PROVIDER as EQUITY_PROVIDER
from .price_fetcher import fetch_equity_quotes
from .rate_fetcher import PROVIDER as CURRENCY_PROVIDER
from .rate_fetcher import fetch_currency_quotes
from .store import Store
from .valuation import apply_quotes

ClientFactory = Callable[[], httpx.AsyncClient]


class PriceRefresher:
    """Runs the price refresh pipeline against one store.

    Parameters
    ----------
    store:
        Holdings and portfolios storage.
    settings:
        Provider credentials, endpoints and tuning.
    cache:
        Quote cache reused across runs of this instance.  Defaults to a new
        cache with ``settings.cache_ttl_seconds``.
    client_factory:
        Builds the HTTP client used for one run.  Tests inject a client with
        a mock transport here.
    """

    def __init__(
        self,
        store: Store,
        settings: Settings,
        cache: PriceCache | None = None,
        client_factory: ClientFactory | None = None,
    ) -> None:
        self._store = store
        self._settings = settings
        self._cache = cache if cache is not None else PriceCache(settings.cache_ttl_seconds)
        self._client_factory = client_factory or (
            lambda: httpx.AsyncClient(timeout=settings.http_timeout)
        )

    @property
    def cache(self) -> PriceCache:
        return self._cache

    async def run(self, request: RefreshRequest | None = None) -> RefreshSummary:
        """Execute one refresh run.

        Only a failure to load holdings propagates; every provider, write and
        aggregation failure is collected into ``RefreshSummary.errors``.
        Store calls are synchronous and run in worker threads.
        """
        request = request or RefreshRequest()
        scope = request.user_id or "all"
        logger.info("Starting price update for user: {} (force={})", scope, request.force_update)

        # 1. Load holdings.
        holdings = await asyncio.to_thread(self._store.get_holdings, request.user_id)
        errors = [row.describe() for row in self._store.invalid_holdings]
        if not holdings:
            logger.warning("No investments found for {} — nothing to do", scope)
            return RefreshSummary(
                updated=0,
                total=0,
                errors=errors,
                message="No investments to update",
                timestamp=_utcnow(),
            )
        logger.info("Found {} investment(s) to update", len(holdings))

        # 2. Classify.
        classified = classify(holdings)

        # 3. Fetch all providers concurrently; gather is the barrier.
        async with self._client_factory() as client:
            equity, crypto, currency = await asyncio.gather(
                self._fetch(
                    "Stock",
                    EQUITY_PROVIDER,
                    classified.equity_symbols,
                    request.force_update,
                    lambda ids: fetch_equity_quotes(
                        client,
                        ids,
                        self._settings.brapi_token,
                        base_url=self._settings.brapi_base_url,
                        batch_size=self._settings.equity_batch_size,
                        max_concurrency=self._settings.equity_max_concurrency,
                    ),
                    errors,
                ),
                self._fetch(
                    "Crypto",
                    CRYPTO_PROVIDER,
                    classified.crypto_ids,
                    request.force_update,
                    lambda ids: fetch_crypto_quotes(
                        client,
                        CRYPTO_PROVIDER_IDS,
                        base_url=self._settings.coingecko_base_url,
                        api_key=self._settings.coingecko_api_key,
                    ),
                    errors,
                ),
                self._fetch(
                    "Currency",
                    CURRENCY_PROVIDER,
                    classified.currency_pairs,
                    request.force_update,
                    lambda ids: fetch_currency_quotes(
                        client, base_url=self._settings.awesomeapi_base_url
                    ),
                    errors,
                ),
            )

        # 4. Recalculate every holding that received a sample.
        priced = _match_quotes(classified, equity, crypto, currency)
        now = _utcnow()
        updated, write_errors = await asyncio.to_thread(apply_quotes, self._store, priced, now)
        errors.extend(write_errors)

        # 5. Aggregate, strictly after all holding writes.
        try:
            _, aggregate_errors = await asyncio.to_thread(
                aggregate_portfolios, self._store, self._store, request.user_id, now
            )
            errors.extend(aggregate_errors)
        except Exception as exc:  # noqa: BLE001
            message = f"Portfolio totals error: {exc}"
            logger.error("{}", message)
            errors.append(message)

        logger.info(
            "Price update complete: {} of {} investment(s) updated, {} error(s)",
            updated,
            len(holdings),
            len(errors),
        )
        return RefreshSummary(
            updated=updated,
            total=len(holdings),
            errors=errors,
            unmatched=classified.unmatched,
            timestamp=_utcnow(),
        )

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _fetch(
        self,
        label: str,
        provider: str,
        needed: set[str],
        force: bool,
        call: Callable[[set[str]], Awaitable[ProviderResult]],
        errors: list[str],
    ) -> dict[str, PriceQuote]:
        """Return quotes for *needed*, from the cache where possible.

        A provider failure is appended to *errors* and yields whatever the
        cache still had.
        """
        if not needed:
            return {}

        cached = {} if force else self._cache.get_many(provider, needed)
        missing = needed - cached.keys()
        if not missing:
            logger.info("{} quotes served from cache ({} id(s))", label, len(cached))
            return cached

        try:
            result = await call(missing)
        except ProviderError as exc:
            message = f"{label} error ({exc.provider}): {exc.message}"
            logger.error("{}", message)
            errors.append(message)
            return cached
        except Exception as exc:  # noqa: BLE001
            message = f"{label} error ({provider}): {exc!r}"
            logger.exception("{}", message)
            errors.append(message)
            return cached

        errors.extend(result.errors)
        self._cache.put_many(provider, result.quotes)
        return {**cached, **result.quotes}


def _match_quotes(
    classified: ClassifiedHoldings,
    equity: dict[str, PriceQuote],
    crypto: dict[str, PriceQuote],
    currency: dict[str, PriceQuote],
) -> list[tuple[Holding, PriceQuote]]:
    """Pair each classified holding with its fetched quote; unpriced holdings are dropped."""
    priced: list[tuple[Holding, PriceQuote]] = []
    for bucket, quotes in (
        (classified.equity, equity),
        (classified.crypto, crypto),
        (classified.currency, currency),
    ):
        for holding, identifier in bucket:
            quote = quotes.get(identifier)
            if quote is None:
                logger.debug("No quote for {} (holding {}) this run", identifier, holding.id)
                continue
            priced.append((holding, quote))
    return priced


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)
