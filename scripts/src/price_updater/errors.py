"""Exception hierarchy for the price updater."""

from __future__ import annotations


class PriceUpdaterError(Exception):
    """Base class for every error raised by this package."""


class ConfigurationError(PriceUpdaterError):
    """The job cannot start: settings or storage credentials are unusable."""


class StoreError(PriceUpdaterError):
    """A read or write against the holdings/portfolios store failed."""


class ProviderError(PriceUpdaterError):
    """A market data provider call failed as a whole.

    Parameters
    ----------
    provider:
        Short provider name, e.g. ``"brapi"`` or ``"coingecko"``.
    message:
        Human-readable description of the underlying failure.
    """

    def __init__(self, provider: str, message: str) -> None:
        super().__init__(f"{provider}: {message}")
        self.provider = provider
        self.message = message


class MissingCredentialError(ProviderError):
    """The provider requires an API token that is not configured."""

    def __init__(self, provider: str, setting: str) -> None:
        super().__init__(provider, f"missing credential ({setting} is not set)")
        self.setting = setting
