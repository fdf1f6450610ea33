"""Storage interfaces the pipeline reads from and writes to.

``SheetsClient`` implements all three protocols against a Google Spreadsheet.
"""

from __future__ import annotations

from datetime import datetime
from typing import Protocol

from .models import (
    Holding,
    HoldingValuation,
    InvalidRow,
    Portfolio,
    PortfolioSnapshot,
    PortfolioTotals,
)


class HoldingStore(Protocol):
    # Rows the last ``get_holdings`` call could not validate, within its scope.
    invalid_holdings: list[InvalidRow]

    def get_holdings(self, user_id: str | None = None) -> list[Holding]:
        """Return every valid holding, or only *user_id*'s holdings."""
        ...

    def update_holding(self, holding_id: str, valuation: HoldingValuation) -> None:
        """Write all valuation fields of one holding in a single operation."""
        ...


class PortfolioStore(Protocol):
    def get_portfolios(self, user_id: str | None = None) -> list[Portfolio]:
        ...

    def update_portfolio(
        self, portfolio_id: str, totals: PortfolioTotals, updated_at: datetime
    ) -> None:
        """Write total_value, total_gain, cdi_percent and updated_at of one portfolio."""
        ...


class SnapshotStore(Protocol):
    def upsert_snapshots(self, snapshots: list[PortfolioSnapshot]) -> None:
        """Insert or replace history rows keyed by ``(portfolio_id, snapshot_date)``."""
        ...


class Store(HoldingStore, PortfolioStore, Protocol):
    """A store holding both investments and portfolios."""


class HistoryStore(Store, SnapshotStore, Protocol):
    """A store that also keeps the portfolio history."""
