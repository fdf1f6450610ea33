"""Application configuration loaded from environment variables via pydantic-settings."""

from __future__ import annotations

from functools import lru_cache

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Price updater configuration.

    All fields are loaded from environment variables prefixed with ``PORTFOLIO_``.
    The BRAPI token is also accepted under its bare ``BRAPI_TOKEN`` name.

    Example::

        export PORTFOLIO_GOOGLE_SHEETS_ID="1BxiMVs0XRA5nFMdKvBdBZjgmUUqptlbs74OgVE2upms"
        export PORTFOLIO_SERVICE_ACCOUNT_JSON_PATH="/secrets/service-account.json"
        export BRAPI_TOKEN="your-brapi-token"
        export PORTFOLIO_USER_ID="8f9c1c2e-..."   # optional, refresh one user only
    """

    model_config = SettingsConfigDict(
        env_prefix="PORTFOLIO_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Storage
    google_sheets_id: str = Field(
        ...,
        description="The ID of the Google Spreadsheet holding investments and portfolios",
    )
    service_account_json_path: str = Field(
        default="service-account.json",
        description="Path to the Google service account credentials JSON file",
    )

    # Providers
    brapi_token: str | None = Field(
        default=None,
        validation_alias=AliasChoices("PORTFOLIO_BRAPI_TOKEN", "BRAPI_TOKEN"),
        description="API token for brapi.dev (equities, ETFs, BDRs, funds)",
    )
    coingecko_api_key: str | None = Field(
        default=None,
        description="Optional CoinGecko demo API key",
    )
    brapi_base_url: str = Field(default="https://brapi.dev")
    coingecko_base_url: str = Field(default="https://api.coingecko.com")
    awesomeapi_base_url: str = Field(default="https://economia.awesomeapi.com.br")
    bcb_base_url: str = Field(default="https://api.bcb.gov.br")

    # Fetch tuning
    equity_batch_size: int = Field(
        default=20,
        gt=0,
        description="Maximum number of symbols per brapi quote request",
    )
    equity_max_concurrency: int = Field(
        default=4,
        gt=0,
        description="Maximum number of brapi batch requests in flight at once",
    )
    http_timeout: float = Field(default=10.0, gt=0, description="HTTP timeout in seconds")
    cache_ttl_seconds: float = Field(
        default=60.0,
        ge=0,
        description="How long a fetched quote may be reused by the same refresher",
    )

    # Run parameters used by the command-line entry point
    user_id: str | None = Field(
        default=None,
        description="Restrict the refresh to one user's holdings; unset refreshes everyone",
    )
    force_update: bool = Field(
        default=False,
        description="When True ignore cached quotes and fetch every identifier",
    )
    log_level: str = Field(default="INFO")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached singleton Settings instance."""
    return Settings()  # type: ignore[call-arg]
