import json
import sys
from datetime import datetime
from typing import Any

import httpx
import pytest
from loguru import logger

from price_updater.config import Settings
from price_updater.errors import StoreError
from price_updater.models import (
    Holding,
    HoldingValuation,
    InvalidRow,
    Portfolio,
    PortfolioSnapshot,
    PortfolioTotals,
)

# Configure logging for tests
logger.remove()
logger.add(sys.stderr, level="DEBUG", colorize=False)


class InMemoryStore:
    """Holdings/portfolios/history store kept in dictionaries."""

    def __init__(self, holdings: list[Holding], portfolios: list[Portfolio] = ()):
        self.holdings: dict[str, Holding] = {h.id: h for h in holdings}
        self.portfolios: dict[str, Portfolio] = {p.id: p for p in portfolios}
        self.snapshots: list[PortfolioSnapshot] = []
        self.failing_holdings: set[str] = set()
        self.failing_portfolios: set[str] = set()
        self.fail_reads = False
        self.fail_history = False
        self.invalid_holdings: list[InvalidRow] = []
        self.holding_writes = 0
        self.portfolio_writes = 0

    def get_holdings(self, user_id: str | None = None) -> list[Holding]:
        if self.fail_reads:
            raise StoreError("connection reset while reading investments")
        return [
            h.model_copy()
            for h in self.holdings.values()
            if user_id is None or h.user_id == user_id
        ]

    def update_holding(self, holding_id: str, valuation: HoldingValuation) -> None:
        if holding_id in self.failing_holdings:
            raise StoreError(f"write rejected for {holding_id}")
        self.holding_writes += 1
        self.holdings[holding_id] = self.holdings[holding_id].model_copy(
            update={
                "current_price": valuation.current_price,
                "current_value": valuation.current_value,
                "gain_percent": valuation.gain_percent,
                "updated_at": valuation.updated_at.isoformat(),
            }
        )

    def get_portfolios(self, user_id: str | None = None) -> list[Portfolio]:
        return [
            p.model_copy()
            for p in self.portfolios.values()
            if user_id is None or p.user_id == user_id
        ]

    def update_portfolio(
        self, portfolio_id: str, totals: PortfolioTotals, updated_at: datetime
    ) -> None:
        if portfolio_id in self.failing_portfolios:
            raise StoreError(f"write rejected for {portfolio_id}")
        self.portfolio_writes += 1
        self.portfolios[portfolio_id] = self.portfolios[portfolio_id].model_copy(
            update={
                "total_value": totals.total_value,
                "total_gain": totals.total_gain,
                "cdi_percent": totals.gain_percent,
                "updated_at": updated_at.isoformat(),
            }
        )

    def upsert_snapshots(self, snapshots: list[PortfolioSnapshot]) -> None:
        if self.fail_history:
            raise StoreError("history sheet is read-only")
        for snapshot in snapshots:
            key = (snapshot.portfolio_id, snapshot.snapshot_date)
            self.snapshots = [
                s for s in self.snapshots if (s.portfolio_id, s.snapshot_date) != key
            ]
            self.snapshots.append(snapshot)


class FakeProviders:
    """Serves brapi, CoinGecko, AwesomeAPI and BCB responses from dictionaries."""

    def __init__(self) -> None:
        self.stocks: dict[str, float] = {}
        self.crypto: dict[str, float] = {}
        self.currencies: dict[str, str] = {}
        self.series: dict[int, list[str]] = {}
        self.failing_hosts: set[str] = set()
        self.failing_symbols: set[str] = set()
        self.requests: list[httpx.Request] = []

    def hits(self, host: str) -> int:
        return sum(1 for r in self.requests if r.url.host == host)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        host = request.url.host
        if host in self.failing_hosts:
            return httpx.Response(503, text="Service Unavailable")

        if host == "brapi.dev":
            symbols = request.url.path.rsplit("/", 1)[-1].split(",")
            if self.failing_symbols & set(symbols):
                return httpx.Response(500, text="boom")
            results = [
                {
                    "symbol": s,
                    "regularMarketPrice": self.stocks[s],
                    "regularMarketChangePercent": 1.5,
                }
                for s in symbols
                if s in self.stocks
            ]
            return httpx.Response(200, json={"results": results})

        if host == "api.coingecko.com":
            ids = request.url.params["ids"].split(",")
            body = {
                i: {"brl": self.crypto[i], "brl_24h_change": -2.0}
                for i in ids
                if i in self.crypto
            }
            return httpx.Response(200, json=body)

        if host == "economia.awesomeapi.com.br":
            body = {k: {"bid": v, "pctChange": "0.35"} for k, v in self.currencies.items()}
            return httpx.Response(200, json=body)

        if host == "api.bcb.gov.br":
            series = int(request.url.path.split("bcdata.sgs.")[1].split("/")[0])
            values = self.series.get(series, [])
            body = [{"data": "01/01/2026", "valor": v} for v in values]
            return httpx.Response(200, content=json.dumps(body))

        return httpx.Response(404)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))


def make_holding(**overrides: Any) -> Holding:
    data: dict[str, Any] = {
        "id": "h1",
        "portfolio_id": "p1",
        "user_id": "u1",
        "asset_type": "Ações, Stocks e ETF",
        "asset_name": "PETROBRAS PN",
        "ticker": "PETR4",
        "quantity": 100,
        "total_invested": 2000,
    }
    data.update(overrides)
    return Holding.model_validate(data)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        google_sheets_id="test-sheet",
        brapi_token="test-token",
        cache_ttl_seconds=60,
        _env_file=None,
    )


@pytest.fixture
def providers() -> FakeProviders:
    return FakeProviders()


@pytest.fixture
def scenario_store() -> InMemoryStore:
    """Three holdings of one portfolio: an equity, a crypto and a currency."""
    return InMemoryStore(
        holdings=[
            make_holding(id="A", portfolio_id="X", ticker="PETR4", quantity=100, total_invested=2000),
            make_holding(
                id="B",
                portfolio_id="X",
                asset_type="Criptoativos",
                asset_name="BITCOIN",
                ticker=None,
                quantity=0.01,
                total_invested=3000,
            ),
            make_holding(
                id="C",
                portfolio_id="X",
                asset_type="Moedas",
                asset_name="DÓLAR",
                ticker=None,
                quantity=500,
                total_invested=2400,
            ),
        ],
        portfolios=[Portfolio(id="X", user_id="u1", name="Carteira X")],
    )


@pytest.fixture
def scenario_providers(providers: FakeProviders) -> FakeProviders:
    providers.stocks = {"PETR4": 30.0}
    providers.crypto = {"bitcoin": 350000.0}
    providers.currencies = {"USDBRL": "5.20", "EURBRL": "5.90"}
    return providers
