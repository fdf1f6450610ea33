"""Daily portfolio history snapshots."""

from __future__ import annotations

import asyncio
from datetime import date, datetime, timezone

import httpx
from loguru import logger

from .aggregator import compute_portfolio_totals, incomplete_portfolios
from .errors import ProviderError
from .indicators_fetcher import fetch_indicators
from .models import (
    EconomicIndicators,
    PortfolioSnapshot,
    PortfolioTotals,
    SnapshotSummary,
)
from .store import HoldingStore, PortfolioStore, SnapshotStore


def build_snapshot(
    totals: PortfolioTotals,
    snapshot_date: str,
    indicators: EconomicIndicators,
) -> PortfolioSnapshot:
    return PortfolioSnapshot(
        user_id=totals.user_id,
        portfolio_id=totals.portfolio_id,
        snapshot_date=snapshot_date,
        total_value=totals.total_value,
        total_invested=totals.total_invested,
        total_gain=totals.total_gain,
        gain_percent=totals.gain_percent,
        cdi_accumulated=indicators.cdi_accumulated,
        ipca_accumulated=indicators.ipca_accumulated,
    )


async def take_snapshots(
    holdings_store: HoldingStore,
    portfolio_store: PortfolioStore,
    snapshot_store: SnapshotStore,
    client: httpx.AsyncClient,
    today: date | None = None,
    *,
    bcb_base_url: str = "https://api.bcb.gov.br",
) -> SnapshotSummary:
    """Record today's totals of every portfolio and refresh the portfolio rows.

    Benchmark indicators are best effort: when the central bank API fails they
    are recorded as zero. Running twice on one day replaces that day's rows.
    A portfolio with an unreadable holding row is neither snapshotted nor
    updated, and counts as an error.
    """
    today = today or datetime.now(tz=timezone.utc).date()
    snapshot_date = today.isoformat()
    logger.info("=== Portfolio snapshot starting for {} ===", snapshot_date)

    # 1. Benchmarks.
    try:
        indicators = await fetch_indicators(client, today, base_url=bcb_base_url)
    except ProviderError as exc:
        logger.error("Error fetching economic indicators: {}", exc)
        indicators = EconomicIndicators()

    # 2. Totals for every portfolio, including empty ones.
    portfolios = await asyncio.to_thread(portfolio_store.get_portfolios)
    holdings = await asyncio.to_thread(holdings_store.get_holdings)
    totals = compute_portfolio_totals(holdings)
    incomplete = incomplete_portfolios(holdings_store.invalid_holdings)
    logger.info("Found {} portfolio(s) to snapshot", len(portfolios))

    errors = 0
    snapshots: list[PortfolioSnapshot] = []
    for portfolio in portfolios:
        if portfolio.id in incomplete:
            logger.warning(
                "Skipping portfolio {}: unreadable holding row(s) {}",
                portfolio.id,
                incomplete[portfolio.id],
            )
            errors += 1
            continue
        entry = totals.get(portfolio.id) or PortfolioTotals(
            portfolio_id=portfolio.id, user_id=portfolio.user_id
        )
        snapshots.append(build_snapshot(entry, snapshot_date, indicators))

    # 3. Upsert history rows keyed by (portfolio_id, snapshot_date).
    processed = 0
    try:
        await asyncio.to_thread(snapshot_store.upsert_snapshots, snapshots)
        processed = len(snapshots)
    except Exception as exc:  # noqa: BLE001
        logger.error("Error writing {} snapshot(s): {}", len(snapshots), exc)
        errors += len(snapshots)

    # 4. Refresh portfolio rows that have holdings.
    now = datetime.now(tz=timezone.utc)
    for snapshot in snapshots:
        entry = totals.get(snapshot.portfolio_id)
        if entry is None:
            continue
        try:
            await asyncio.to_thread(
                portfolio_store.update_portfolio, snapshot.portfolio_id, entry, now
            )
        except Exception as exc:  # noqa: BLE001
            logger.warning("Error updating portfolio {}: {}", snapshot.portfolio_id, exc)
            errors += 1

    logger.info(
        "=== Snapshot complete: {} portfolio(s) recorded, {} error(s) ===",
        processed,
        errors,
    )
    return SnapshotSummary(
        date=snapshot_date,
        portfolios_processed=processed,
        errors=errors,
        indicators=indicators,
    )
