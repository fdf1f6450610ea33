"""Pydantic V2 data models for the price updater."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Stored ``asset_type`` values, as written by the app when a holding is created.
EQUITY_ASSET_TYPES: frozenset[str] = frozenset(
    {"Ações, Stocks e ETF", "BDRs", "FIIs e REITs", "Fundos"}
)
CRYPTO_ASSET_TYPE = "Criptoativos"
CURRENCY_ASSET_TYPE = "Moedas"


class AssetCategory(str, Enum):
    """Refresh category of a holding, derived from its stored ``asset_type``."""

    EQUITY = "equity"
    CRYPTO = "crypto"
    CURRENCY = "currency"
    OTHER = "other"

    @classmethod
    def from_asset_type(cls, asset_type: str | None) -> AssetCategory:
        if asset_type in EQUITY_ASSET_TYPES:
            return cls.EQUITY
        if asset_type == CRYPTO_ASSET_TYPE:
            return cls.CRYPTO
        if asset_type == CURRENCY_ASSET_TYPE:
            return cls.CURRENCY
        return cls.OTHER


def _blank_to_none(value: Any) -> Any:
    """Spreadsheet cells come back as ``""`` when empty."""
    if isinstance(value, str) and not value.strip():
        return None
    return value


class Holding(BaseModel):
    """A single investment position owned by a user within a portfolio."""

    id: str = Field(..., min_length=1, description="Unique holding identifier")
    portfolio_id: str = Field(..., min_length=1, description="Owning portfolio identifier")
    user_id: str = Field(..., description="Owning user identifier")
    asset_type: str = Field(default="", description="Stored classification, e.g. 'Criptoativos'")
    asset_name: str = Field(default="", description="Display name, e.g. 'BITCOIN' or 'DÓLAR'")
    ticker: str | None = Field(default=None, description="Market symbol for equity-like holdings")
    quantity: float | None = Field(default=None, description="Units held; unset means a single unit")
    total_invested: float = Field(default=0.0, description="Total amount originally invested")
    current_price: float | None = Field(default=None, description="Last refreshed unit price")
    current_value: float | None = Field(default=None, description="quantity × current_price")
    gain_percent: float | None = Field(default=None, description="Gain against invested capital, in %")
    updated_at: str | None = Field(default=None, description="ISO-8601 timestamp of the last refresh")

    @field_validator("id", "portfolio_id", "user_id", mode="before")
    @classmethod
    def _coerce_identifier(cls, value: Any) -> Any:
        if isinstance(value, (int, float)):
            return str(value)
        return value

    @field_validator(
        "ticker", "quantity", "current_price", "current_value", "gain_percent", "updated_at",
        mode="before",
    )
    @classmethod
    def _empty_cell(cls, value: Any) -> Any:
        return _blank_to_none(value)

    @field_validator("total_invested", mode="before")
    @classmethod
    def _empty_invested(cls, value: Any) -> Any:
        value = _blank_to_none(value)
        return 0.0 if value is None else value

    @field_validator("asset_type", "asset_name", mode="before")
    @classmethod
    def _empty_text(cls, value: Any) -> Any:
        return "" if value is None else str(value)

    @property
    def category(self) -> AssetCategory:
        return AssetCategory.from_asset_type(self.asset_type)


class InvalidRow(BaseModel):
    """A stored holding row that could not be read as a ``Holding``."""

    row: int = Field(..., description="Sheet row number, header is row 1")
    id: str | None = None
    portfolio_id: str | None = None
    reason: str = ""

    def describe(self) -> str:
        label = f"holding {self.id}" if self.id else f"row {self.row}"
        return f"Invalid {label} skipped: {self.reason}"


class Portfolio(BaseModel):
    """A named collection of holdings with aggregate value figures."""

    id: str = Field(..., min_length=1, description="Unique portfolio identifier")
    user_id: str = Field(..., description="Owning user identifier")
    name: str = Field(default="", description="Display name")
    total_value: float | None = Field(default=None)
    total_gain: float | None = Field(default=None)
    cdi_percent: float | None = Field(default=None, description="Performance against invested capital, in %")
    updated_at: str | None = Field(default=None)

    @field_validator("id", "user_id", mode="before")
    @classmethod
    def _coerce_identifier(cls, value: Any) -> Any:
        if isinstance(value, (int, float)):
            return str(value)
        return value

    @field_validator("total_value", "total_gain", "cdi_percent", "updated_at", mode="before")
    @classmethod
    def _empty_cell(cls, value: Any) -> Any:
        return _blank_to_none(value)

    @field_validator("name", mode="before")
    @classmethod
    def _empty_name(cls, value: Any) -> Any:
        return "" if value is None else str(value)


class PriceQuote(BaseModel):
    """One provider price sample for one identifier."""

    model_config = ConfigDict(frozen=True)

    price: float = Field(..., gt=0, description="Unit price in BRL")
    change_percent: float = Field(default=0.0, description="Provider-reported daily change, in %")


class ProviderResult(BaseModel):
    """Quotes returned by one adapter call, plus any partial-failure messages."""

    provider: str
    quotes: dict[str, PriceQuote] = Field(default_factory=dict)
    errors: list[str] = Field(default_factory=list)


class HoldingValuation(BaseModel):
    """The derived fields written to a holding in a single update."""

    current_price: float
    current_value: float
    gain_percent: float
    updated_at: datetime


class PortfolioTotals(BaseModel):
    """Aggregates computed over one portfolio's holdings."""

    portfolio_id: str
    user_id: str
    total_value: float = 0.0
    total_invested: float = 0.0
    holding_count: int = 0

    @property
    def total_gain(self) -> float:
        return self.total_value - self.total_invested

    @property
    def gain_percent(self) -> float:
        if self.total_invested > 0:
            return self.total_gain / self.total_invested * 100
        return 0.0


class RefreshRequest(BaseModel):
    """Invocation payload of a refresh run."""

    model_config = ConfigDict(populate_by_name=True)

    user_id: str | None = Field(default=None, alias="userId")
    force_update: bool = Field(default=False, alias="forceUpdate")


class RefreshSummary(BaseModel):
    """Outcome of one refresh run."""

    success: bool = True
    updated: int = 0
    total: int = 0
    errors: list[str] = Field(default_factory=list)
    unmatched: list[str] = Field(
        default_factory=list,
        description="Holdings whose name or symbol has no provider mapping",
    )
    message: str | None = None
    timestamp: datetime

    def to_response(self) -> dict[str, Any]:
        """Render the JSON body returned to the caller; empty lists are omitted."""
        body: dict[str, Any] = {
            "success": self.success,
            "updated": self.updated,
            "total": self.total,
        }
        if self.message:
            body["message"] = self.message
        if self.errors:
            body["errors"] = list(self.errors)
        if self.unmatched:
            body["unmatched"] = list(self.unmatched)
        body["timestamp"] = self.timestamp.isoformat()
        return body


class EconomicIndicators(BaseModel):
    """Accumulated 12-month benchmark rates, in %."""

    cdi_accumulated: float = 0.0
    ipca_accumulated: float = 0.0


class PortfolioSnapshot(BaseModel):
    """A daily history row for one portfolio."""

    user_id: str
    portfolio_id: str
    snapshot_date: str = Field(..., description="Snapshot date in YYYY-MM-DD format")
    total_value: float
    total_invested: float
    total_gain: float
    gain_percent: float
    cdi_accumulated: float
    ipca_accumulated: float


class SnapshotSummary(BaseModel):
    """Outcome of one snapshot job run."""

    success: bool = True
    date: str
    portfolios_processed: int = 0
    errors: int = 0
    indicators: EconomicIndicators = Field(default_factory=EconomicIndicators)

    def to_response(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "date": self.date,
            "portfoliosProcessed": self.portfolios_processed,
            "errors": self.errors,
            "cdiAccumulated": self.indicators.cdi_accumulated,
            "ipcaAccumulated": self.indicators.ipca_accumulated,
        }
