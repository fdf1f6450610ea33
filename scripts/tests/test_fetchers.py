import httpx
import pytest

from price_updater.crypto_fetcher import fetch_crypto_quotes
from price_updater.errors import MissingCredentialError, ProviderError
from price_updater.indicators_fetcher import accumulate
from price_updater.price_fetcher import fetch_equity_quotes
from price_updater.rate_fetcher import fetch_currency_quotes
from price_updater.request_utils import to_float


class TestEquityFetcher:
    @pytest.mark.asyncio
    async def test_batches_of_twenty_and_deduplicates(self, providers):
        symbols = [f"TICK{i:02d}" for i in range(45)]
        providers.stocks = {s: 10.0 + i for i, s in enumerate(symbols)}

        async with providers.client() as client:
            result = await fetch_equity_quotes(client, symbols + symbols[:5], "tok")

        batch_sizes = [
            len(r.url.path.rsplit("/", 1)[-1].split(",")) for r in providers.requests
        ]
        assert sorted(batch_sizes) == [5, 20, 20]
        assert all(r.url.params["token"] == "tok" for r in providers.requests)
        assert len(result.quotes) == 45
        assert result.quotes["TICK00"].price == 10.0
        assert result.quotes["TICK00"].change_percent == 1.5
        assert result.errors == []

    @pytest.mark.asyncio
    async def test_failed_batch_does_not_abort_others(self, providers):
        symbols = [f"S{i:02d}" for i in range(25)]
        providers.stocks = {s: 1.0 for s in symbols}
        providers.failing_symbols = {"S24"}

        async with providers.client() as client:
            result = await fetch_equity_quotes(client, symbols, "tok", batch_size=20)

        assert len(result.quotes) == 20
        assert "S24" not in result.quotes
        assert len(result.errors) == 1
        assert result.errors[0].startswith("Stock batch error (brapi)")
        assert "HTTP 500" in result.errors[0]

    @pytest.mark.asyncio
    async def test_zero_prices_and_unknown_symbols_are_absent(self, providers):
        providers.stocks = {"PETR4": 30.0, "OIBR3": 0.0}

        async with providers.client() as client:
            result = await fetch_equity_quotes(client, ["PETR4", "OIBR3", "XXXX3"], "tok")

        assert set(result.quotes) == {"PETR4"}

    @pytest.mark.asyncio
    async def test_missing_token_raises(self, providers):
        async with providers.client() as client:
            with pytest.raises(MissingCredentialError) as excinfo:
                await fetch_equity_quotes(client, ["PETR4"], None)

        assert excinfo.value.provider == "brapi"
        assert providers.requests == []

    @pytest.mark.asyncio
    async def test_no_symbols_makes_no_request(self, providers):
        async with providers.client() as client:
            result = await fetch_equity_quotes(client, [], None)

        assert result.quotes == {}
        assert providers.requests == []


class TestCryptoFetcher:
    @pytest.mark.asyncio
    async def test_parses_brl_price_and_change(self, providers):
        providers.crypto = {"bitcoin": 350000.0, "ethereum": 18000.0}

        async with providers.client() as client:
            result = await fetch_crypto_quotes(client, ["bitcoin", "ethereum", "solana"])

        assert set(result.quotes) == {"bitcoin", "ethereum"}
        assert result.quotes["bitcoin"].price == 350000.0
        assert result.quotes["bitcoin"].change_percent == -2.0
        request = providers.requests[0]
        assert request.url.params["vs_currencies"] == "brl"
        assert request.url.params["include_24hr_change"] == "true"
        assert "x-cg-demo-api-key" not in request.headers

    @pytest.mark.asyncio
    async def test_sends_api_key_when_configured(self, providers):
        async with providers.client() as client:
            await fetch_crypto_quotes(client, ["bitcoin"], api_key="demo")

        assert providers.requests[0].headers["x-cg-demo-api-key"] == "demo"

    @pytest.mark.asyncio
    async def test_http_failure_raises_provider_error(self, providers):
        providers.failing_hosts = {"api.coingecko.com"}

        async with providers.client() as client:
            with pytest.raises(ProviderError) as excinfo:
                await fetch_crypto_quotes(client)

        assert excinfo.value.provider == "coingecko"
        assert "503" in excinfo.value.message


class TestCurrencyFetcher:
    @pytest.mark.asyncio
    async def test_requests_all_pairs_and_parses_strings(self, providers):
        providers.currencies = {"USDBRL": "5.20", "EURBRL": "not-a-number", "JPYBRL": "0"}

        async with providers.client() as client:
            result = await fetch_currency_quotes(client)

        path = providers.requests[0].url.path
        assert path.startswith("/json/last/USD-BRL,EUR-BRL,GBP-BRL")
        assert path.count("-BRL") == 10
        assert set(result.quotes) == {"USDBRL"}
        assert result.quotes["USDBRL"].price == pytest.approx(5.2)
        assert result.quotes["USDBRL"].change_percent == pytest.approx(0.35)

    @pytest.mark.asyncio
    async def test_malformed_body_raises_provider_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text="<html>maintenance</html>")

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            with pytest.raises(ProviderError, match="malformed JSON"):
                await fetch_currency_quotes(client)

    @pytest.mark.asyncio
    async def test_transport_error_raises_provider_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            with pytest.raises(ProviderError, match="request failed"):
                await fetch_currency_quotes(client)


@pytest.mark.parametrize(
    "value, expected",
    [("5.20", 5.2), (3, 3.0), ("", None), (None, None), ("abc", None), (True, None), ("nan", None)],
)
def test_to_float(value, expected):
    assert to_float(value) == expected


def test_accumulate_compounds_rates():
    assert accumulate([1.0, 1.0]) == pytest.approx(2.01)
    assert accumulate([]) == 0
