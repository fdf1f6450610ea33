"""Recompute and persist holding valuations from fresh price samples."""

from __future__ import annotations

from datetime import datetime, timezone

from loguru import logger

from .models import Holding, HoldingValuation, PriceQuote
from .store import HoldingStore


def effective_quantity(holding: Holding) -> float:
    """Units used for valuation; an unset or zero quantity counts as one unit."""
    return holding.quantity or 1.0


def compute_valuation(
    holding: Holding,
    quote: PriceQuote,
    now: datetime | None = None,
) -> HoldingValuation:
    """Derive current value and gain of *holding* at ``quote.price``.

    The gain is measured against ``total_invested`` (cost basis), not the
    provider's daily change, which is ignored here.
    """
    new_value = effective_quantity(holding) * quote.price
    invested = holding.total_invested
    gain_percent = (new_value - invested) / invested * 100 if invested > 0 else 0.0
    return HoldingValuation(
        current_price=quote.price,
        current_value=new_value,
        gain_percent=gain_percent,
        updated_at=now or datetime.now(tz=timezone.utc),
    )


def apply_quotes(
    store: HoldingStore,
    priced: list[tuple[Holding, PriceQuote]],
    now: datetime | None = None,
) -> tuple[int, list[str]]:
    """Write a new valuation for every ``(holding, quote)`` pair.

    Each holding is one update; a failed write is recorded and the remaining
    holdings are still processed.

    Returns
    -------
    tuple[int, list[str]]
        Number of holdings written, and error messages for the failures.
    """
    updated = 0
    errors: list[str] = []
    now = now or datetime.now(tz=timezone.utc)

    for holding, quote in priced:
        valuation = compute_valuation(holding, quote, now)
        try:
            store.update_holding(holding.id, valuation)
        except Exception as exc:  # noqa: BLE001
            message = f"Holding {holding.id} update error: {exc}"
            logger.warning("{}", message)
            errors.append(message)
            continue
        updated += 1
        logger.debug(
            "Holding {} ({}) -> price={} value={:.2f} gain={:.2f}%",
            holding.id,
            holding.ticker or holding.asset_name,
            valuation.current_price,
            valuation.current_value,
            valuation.gain_percent,
        )

    logger.info("Updated {} of {} priced holding(s)", updated, len(priced))
    return updated, errors
