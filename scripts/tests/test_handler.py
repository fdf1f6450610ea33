from datetime import datetime, timezone
from unittest.mock import patch

import pytest

from conftest import InMemoryStore, make_holding
from price_updater.errors import ConfigurationError
from price_updater.handler import handle_refresh, handle_snapshot
from price_updater.models import Portfolio
from price_updater.refresher import PriceRefresher


class TestHandleRefresh:
    @pytest.mark.asyncio
    async def test_success_body(self, scenario_store, scenario_providers, settings):
        refresher = PriceRefresher(scenario_store, settings, client_factory=scenario_providers.client)

        status, body = await handle_refresh({"forceUpdate": True}, refresher=refresher)

        assert status == 200
        assert body["success"] is True
        assert body["updated"] == 3
        assert body["total"] == 3
        assert "errors" not in body
        assert "timestamp" in body

    @pytest.mark.asyncio
    async def test_errors_are_soft_warnings(self, scenario_store, scenario_providers, settings):
        scenario_providers.failing_hosts = {"economia.awesomeapi.com.br"}
        refresher = PriceRefresher(scenario_store, settings, client_factory=scenario_providers.client)

        status, body = await handle_refresh({}, refresher=refresher)

        assert status == 200
        assert body["success"] is True
        assert body["updated"] == 2
        assert body["errors"][0].startswith("Currency error (awesomeapi)")

    @pytest.mark.asyncio
    async def test_snake_case_payload_is_accepted(self, providers, settings):
        store = InMemoryStore(
            [make_holding(user_id="u9", portfolio_id="p9")],
            [Portfolio(id="p9", user_id="u9")],
        )
        providers.stocks = {"PETR4": 20.0}
        refresher = PriceRefresher(store, settings, client_factory=providers.client)

        status, body = await handle_refresh({"user_id": "nobody"}, refresher=refresher)

        assert status == 200
        assert body["total"] == 0
        assert body["message"] == "No investments to update"

    @pytest.mark.asyncio
    async def test_unreadable_store_is_a_500(self, providers, settings):
        store = InMemoryStore([make_holding()])
        store.fail_reads = True
        refresher = PriceRefresher(store, settings, client_factory=providers.client)

        status, body = await handle_refresh({}, refresher=refresher)

        assert status == 500
        assert body == {"error": "connection reset while reading investments"}

    @pytest.mark.asyncio
    async def test_store_configuration_error_is_a_500(self, settings):
        with (
            patch("price_updater.handler.get_settings", return_value=settings),
            patch(
                "price_updater.handler.SheetsClient",
                side_effect=ConfigurationError("Cannot open spreadsheet 'test-sheet'"),
            ),
        ):
            status, body = await handle_refresh({"userId": "u1"})

        assert status == 500
        assert "Cannot open spreadsheet" in body["error"]

    @pytest.mark.asyncio
    async def test_invalid_payload_is_a_400(self):
        status, body = await handle_refresh({"forceUpdate": "sometimes"})

        assert status == 400
        assert body["error"].startswith("Invalid request")


class TestHandleSnapshot:
    @pytest.mark.asyncio
    async def test_snapshot_body(self, providers, settings):
        store = InMemoryStore(
            [make_holding(current_value=2500, total_invested=2000)],
            [Portfolio(id="p1", user_id="u1")],
        )
        providers.series = {12: ["0.05"], 433: ["0.4"]}

        status, body = await handle_snapshot(
            store=store, settings=settings, client_factory=providers.client
        )

        assert status == 200
        assert body["date"] == datetime.now(tz=timezone.utc).date().isoformat()
        assert body["portfoliosProcessed"] == 1
        assert body["errors"] == 0
        assert body["cdiAccumulated"] == pytest.approx(0.05)
        assert body["ipcaAccumulated"] == pytest.approx(0.4)
