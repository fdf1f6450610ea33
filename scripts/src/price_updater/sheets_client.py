"""Google Sheets store for holdings, portfolios and portfolio history (gspread)."""

from __future__ import annotations

from datetime import datetime
from typing import Any

import gspread
from google.auth.exceptions import GoogleAuthError
from google.oauth2.service_account import Credentials
from gspread.utils import rowcol_to_a1
from loguru import logger
from pydantic import ValidationError

from .errors import ConfigurationError, StoreError
from .models import (
    Holding,
    HoldingValuation,
    InvalidRow,
    Portfolio,
    PortfolioSnapshot,
    PortfolioTotals,
)

# Scopes required for reading and writing Sheets and Drive metadata.
_SCOPES: list[str] = [
    "https://www.googleapis.com/auth/spreadsheets",
    "https://www.googleapis.com/auth/drive.readonly",
]

# Sheet tab names; adjust if your spreadsheet uses different names.
_SHEET_HOLDINGS = "investments"
_SHEET_PORTFOLIOS = "portfolios"
_SHEET_HISTORY = "portfolio_history"

_HISTORY_HEADERS = [
    "user_id",
    "portfolio_id",
    "snapshot_date",
    "total_value",
    "total_invested",
    "total_gain",
    "gain_percent",
    "cdi_accumulated",
    "ipca_accumulated",
]


class SheetsClient:
    """Spreadsheet-backed store exposing typed read and update-by-id helpers.

    Every row update is sent as one ``batch_update`` request, so the derived
    fields of a row are written together or not at all.

    Parameters
    ----------
    spreadsheet_id:
        The Google Spreadsheet ID found in its URL.
    service_account_json_path:
        Path to the service-account credentials JSON downloaded from Google Cloud Console.

    Raises
    ------
    ConfigurationError
        If the credentials cannot be loaded or the spreadsheet cannot be opened.
    """

    def __init__(self, spreadsheet_id: str, service_account_json_path: str) -> None:
        logger.info(
            "Authenticating with Google Sheets using service account: {}",
            service_account_json_path,
        )
        try:
            credentials = Credentials.from_service_account_file(
                service_account_json_path,
                scopes=_SCOPES,
            )
            client = gspread.authorize(credentials)  # type: ignore[no-untyped-call]
            self._spreadsheet = client.open_by_key(spreadsheet_id)
        except (OSError, ValueError, GoogleAuthError, gspread.exceptions.GSpreadException) as exc:
            raise ConfigurationError(f"Cannot open spreadsheet {spreadsheet_id!r}: {exc}") from exc
        logger.info("Opened spreadsheet: {}", self._spreadsheet.title)

        # id -> sheet row number, refreshed on every full read.
        self._holding_rows: dict[str, int] = {}
        self._portfolio_rows: dict[str, int] = {}
        self._headers: dict[str, list[str]] = {}
        self.invalid_holdings: list[InvalidRow] = []

    # ------------------------------------------------------------------
    # Read helpers
    # ------------------------------------------------------------------

    def get_holdings(self, user_id: str | None = None) -> list[Holding]:
        """Return the holdings in the investments sheet, optionally for one user only.

        Rows that fail validation are left out of the result and recorded in
        ``invalid_holdings`` until the next read.
        """
        logger.debug("Reading investments sheet…")
        rows = self._read_records(_SHEET_HOLDINGS)
        self._holding_rows = _row_index(rows)

        holdings: list[Holding] = []
        invalid: list[InvalidRow] = []
        for row_number, row in enumerate(rows, start=2):
            if not any(_cell_text(value) for value in row.values()):
                continue
            if user_id is not None and _cell_text(row.get("user_id")) != user_id:
                continue
            try:
                holdings.append(Holding.model_validate(row))
            except ValidationError as exc:
                logger.warning("Skipping invalid investment row {}: {}", row_number, exc)
                invalid.append(
                    InvalidRow(
                        row=row_number,
                        id=_cell_text(row.get("id")),
                        portfolio_id=_cell_text(row.get("portfolio_id")),
                        reason=_describe_validation(exc),
                    )
                )
        self.invalid_holdings = invalid
        logger.info("Loaded {} investment(s), {} invalid row(s)", len(holdings), len(invalid))
        return holdings

    def get_portfolios(self, user_id: str | None = None) -> list[Portfolio]:
        """Return the portfolios sheet rows, optionally for one user only."""
        logger.debug("Reading portfolios sheet…")
        rows = self._read_records(_SHEET_PORTFOLIOS)
        self._portfolio_rows = _row_index(rows)

        portfolios: list[Portfolio] = []
        for row in rows:
            try:
                portfolio = Portfolio.model_validate(row)
            except ValidationError as exc:
                logger.warning("Skipping invalid portfolio row {}: {}", row, exc)
                continue
            if user_id is None or portfolio.user_id == user_id:
                portfolios.append(portfolio)
        logger.info("Loaded {} portfolio(s)", len(portfolios))
        return portfolios

    # ------------------------------------------------------------------
    # Write helpers
    # ------------------------------------------------------------------

    def update_holding(self, holding_id: str, valuation: HoldingValuation) -> None:
        """Write current_price, current_value, gain_percent and updated_at of one holding."""
        self._update_row(
            _SHEET_HOLDINGS,
            self._holding_rows,
            holding_id,
            {
                "current_price": valuation.current_price,
                "current_value": valuation.current_value,
                "gain_percent": valuation.gain_percent,
                "updated_at": valuation.updated_at.isoformat(),
            },
        )

    def update_portfolio(
        self, portfolio_id: str, totals: PortfolioTotals, updated_at: datetime
    ) -> None:
        """Write total_value, total_gain, cdi_percent and updated_at of one portfolio."""
        self._update_row(
            _SHEET_PORTFOLIOS,
            self._portfolio_rows,
            portfolio_id,
            {
                "total_value": totals.total_value,
                "total_gain": totals.total_gain,
                "cdi_percent": totals.gain_percent,
                "updated_at": updated_at.isoformat(),
            },
        )

    def upsert_snapshots(self, snapshots: list[PortfolioSnapshot]) -> None:
        """Write snapshot rows to the history sheet, one row per (portfolio_id, snapshot_date).

        Rows whose key already exists are overwritten in place; the rest are
        appended. Creates the sheet with a header row if it does not yet exist.
        """
        if not snapshots:
            logger.debug("No snapshots to write")
            return

        worksheet = self._get_or_create_worksheet(_SHEET_HISTORY, headers=_HISTORY_HEADERS)
        try:
            records: list[dict[str, Any]] = worksheet.get_all_records()
        except gspread.exceptions.GSpreadException as exc:
            raise StoreError(f"Cannot read sheet '{_SHEET_HISTORY}': {exc}") from exc
        existing = {
            (_cell_text(row.get("portfolio_id")), _cell_text(row.get("snapshot_date"))): idx
            for idx, row in enumerate(records, start=2)
        }

        replaced: list[dict[str, Any]] = []
        appended: list[list[Any]] = []
        for snapshot in snapshots:
            values = [getattr(snapshot, column) for column in _HISTORY_HEADERS]
            row = existing.get((snapshot.portfolio_id, snapshot.snapshot_date))
            if row is None:
                appended.append(values)
                continue
            span = f"{rowcol_to_a1(row, 1)}:{rowcol_to_a1(row, len(_HISTORY_HEADERS))}"
            replaced.append({"range": span, "values": [values]})

        try:
            if replaced:
                worksheet.batch_update(replaced, value_input_option="USER_ENTERED")
            if appended:
                worksheet.append_rows(appended, value_input_option="USER_ENTERED")
        except gspread.exceptions.GSpreadException as exc:
            raise StoreError(f"Cannot write to sheet '{_SHEET_HISTORY}': {exc}") from exc
        logger.info(
            "Snapshots in '{}': {} replaced, {} appended",
            _SHEET_HISTORY,
            len(replaced),
            len(appended),
        )

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _read_records(self, title: str) -> list[dict[str, Any]]:
        try:
            worksheet = self._spreadsheet.worksheet(title)
            return worksheet.get_all_records()
        except gspread.exceptions.GSpreadException as exc:
            raise StoreError(f"Cannot read sheet '{title}': {exc}") from exc

    def _update_row(
        self,
        title: str,
        row_index: dict[str, int],
        record_id: str,
        values: dict[str, Any],
    ) -> None:
        """Write *values* into the row whose ``id`` column equals *record_id*.

        The row number from the last full read is used only while its ``id``
        cell still holds *record_id*; rows shift when others are inserted or
        deleted, and then the ``id`` column is searched instead.
        """
        try:
            worksheet = self._spreadsheet.worksheet(title)
            headers = self._headers.get(title)
            if headers is None:
                headers = self._headers[title] = worksheet.row_values(1)
        except gspread.exceptions.GSpreadException as exc:
            raise StoreError(f"Cannot open sheet '{title}': {exc}") from exc

        missing = [c for c in ("id", *values) if c not in headers]
        if missing:
            raise StoreError(f"Sheet '{title}' is missing column(s): {', '.join(missing)}")

        id_column = headers.index("id") + 1
        try:
            row = row_index.get(record_id)
            if row is not None and _cell_text(worksheet.cell(row, id_column).value) != record_id:
                logger.warning(
                    "Row {} of '{}' no longer holds id {}; searching for it", row, title, record_id
                )
                row = None
            if row is None:
                cell = worksheet.find(record_id, in_column=id_column)
                if cell is None:
                    row_index.pop(record_id, None)
                    raise StoreError(f"No row with id {record_id!r} in sheet '{title}'")
                row = cell.row
                row_index[record_id] = row
        except gspread.exceptions.GSpreadException as exc:
            raise StoreError(f"Cannot locate {record_id!r} in sheet '{title}': {exc}") from exc

        data = [
            {"range": rowcol_to_a1(row, headers.index(column) + 1), "values": [[value]]}
            for column, value in values.items()
        ]
        try:
            worksheet.batch_update(data, value_input_option="USER_ENTERED")
        except gspread.exceptions.GSpreadException as exc:
            raise StoreError(f"Cannot update {record_id!r} in sheet '{title}': {exc}") from exc

    def _get_or_create_worksheet(
        self, title: str, headers: list[str]
    ) -> gspread.Worksheet:
        """Return the worksheet named *title*, creating it with *headers* if absent."""
        try:
            return self._spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            logger.info("Sheet '{}' not found — creating it now", title)
            worksheet: gspread.Worksheet = self._spreadsheet.add_worksheet(
                title=title, rows=1000, cols=len(headers)
            )
            worksheet.append_row(headers, value_input_option="USER_ENTERED")
            return worksheet


def _row_index(rows: list[dict[str, Any]]) -> dict[str, int]:
    """Map each record id to its sheet row number; row 1 is the header."""
    index: dict[str, int] = {}
    for idx, row in enumerate(rows, start=2):
        record_id = _cell_text(row.get("id"))
        if record_id is not None:
            index[record_id] = idx
    return index


def _cell_text(value: Any) -> str | None:
    """Return a cell value as stripped text, or ``None`` when the cell is blank."""
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _describe_validation(exc: ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
        for error in exc.errors()
    )
