"""Recompute portfolio totals from the holdings that currently belong to them."""

from __future__ import annotations

from datetime import datetime, timezone

from loguru import logger

from .models import Holding, InvalidRow, PortfolioTotals
from .store import HoldingStore, PortfolioStore


def compute_portfolio_totals(holdings: list[Holding]) -> dict[str, PortfolioTotals]:
    """Sum current value and invested capital per portfolio.

    Holdings never priced yet (``current_value`` unset) contribute zero value
    but still count their invested amount.
    """
    totals: dict[str, PortfolioTotals] = {}
    for holding in holdings:
        entry = totals.get(holding.portfolio_id)
        if entry is None:
            entry = PortfolioTotals(portfolio_id=holding.portfolio_id, user_id=holding.user_id)
            totals[holding.portfolio_id] = entry
        entry.total_value += holding.current_value or 0.0
        entry.total_invested += holding.total_invested or 0.0
        entry.holding_count += 1
    return totals


def incomplete_portfolios(invalid: list[InvalidRow]) -> dict[str, list[int]]:
    """Map each portfolio id to the sheet rows of its holdings that failed validation."""
    rows: dict[str, list[int]] = {}
    for entry in invalid:
        if entry.portfolio_id:
            rows.setdefault(entry.portfolio_id, []).append(entry.row)
    return rows


def aggregate_portfolios(
    holdings_store: HoldingStore,
    portfolio_store: PortfolioStore,
    user_id: str | None = None,
    now: datetime | None = None,
) -> tuple[int, list[str]]:
    """Re-read holdings in scope and write fresh totals to every portfolio that has any.

    Must run after all holding writes of the run have completed. Portfolios
    without holdings are not touched, and neither are portfolios with a
    holding row that could not be read: their totals would leave it out.

    Returns
    -------
    tuple[int, list[str]]
        Number of portfolios written, and error messages for skipped or failed writes.
    """
    now = now or datetime.now(tz=timezone.utc)
    holdings = holdings_store.get_holdings(user_id)
    totals = compute_portfolio_totals(holdings)
    incomplete = incomplete_portfolios(holdings_store.invalid_holdings)
    logger.info("Updating totals of {} portfolio(s)", len(totals))

    updated = 0
    errors: list[str] = []
    for portfolio_id, entry in totals.items():
        if portfolio_id in incomplete:
            message = (
                f"Portfolio {portfolio_id} totals not updated: "
                f"unreadable holding row(s) {', '.join(map(str, incomplete[portfolio_id]))}"
            )
            logger.warning("{}", message)
            errors.append(message)
            continue
        try:
            portfolio_store.update_portfolio(portfolio_id, entry, now)
        except Exception as exc:  # noqa: BLE001
            message = f"Portfolio {portfolio_id} update error: {exc}"
            logger.warning("{}", message)
            errors.append(message)
            continue
        updated += 1
        logger.debug(
            "Portfolio {} -> value={:.2f} gain={:.2f} ({:.2f}%)",
            portfolio_id,
            entry.total_value,
            entry.total_gain,
            entry.gain_percent,
        )

    return updated, errors
