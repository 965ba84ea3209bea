"""
Application configuration models and helpers.

Centralizes settings management so the FastAPI app, the warehouse client and
the maintenance scripts share a consistent configuration surface.
"""

from functools import lru_cache
from pathlib import Path
from typing import Annotated, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class WarehouseSettings(BaseSettings):
    """Configuration required for querying the BigQuery warehouse."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        populate_by_name=True,
        extra="ignore",
    )

    service_account_json: str = Field(
        ...,
        validation_alias="GCP_SERVICE_ACCOUNT_JSON",
        description="Full service-account key document as a JSON string.",
    )
    project_id: Optional[str] = Field(
        None,
        validation_alias="GCP_PROJECT_ID",
        description="Project hosting the datasets. Defaults to the key's project.",
    )
    dataset_id: str = Field("new_gmc_data", validation_alias="BIGQUERY_DATASET_ID")
    location: Optional[str] = Field(
        None,
        validation_alias="BIGQUERY_LOCATION",
        description="Optional processing location sent with every query.",
    )
    token_url: str = Field(
        "https://oauth2.googleapis.com/token",
        validation_alias="GOOGLE_TOKEN_URL",
    )
    api_base_url: str = Field(
        "https://bigquery.googleapis.com/bigquery/v2",
        validation_alias="BIGQUERY_API_BASE_URL",
    )
    scopes: Annotated[tuple[str, ...], NoDecode] = Field(
        ("https://www.googleapis.com/auth/bigquery",),
        validation_alias="BIGQUERY_SCOPES",
    )
    profile_table_id: str = Field("UserProfile", validation_alias="BIGQUERY_PROFILE_TABLE")
    favorites_table_id: str = Field(
        "Product_Favorites", validation_alias="BIGQUERY_FAVORITES_TABLE"
    )
    weekly_source_table_id: str = Field(
        "BestSellersProductClusterWeekly_479974220",
        validation_alias="BIGQUERY_WEEKLY_SOURCE_TABLE",
        description="Merchant Center best-sellers export the weekly ranks are built from.",
    )
    rank_table_id: str = Field(
        "product_week_rank_enriched", validation_alias="BIGQUERY_RANK_TABLE"
    )
    momentum_table_id: str = Field(
        "product_momentum_analysis", validation_alias="BIGQUERY_MOMENTUM_TABLE"
    )
    taxonomy_table_id: str = Field(
        "Google_Product_Taxonomy", validation_alias="BIGQUERY_TAXONOMY_TABLE"
    )
    taxonomy_location: Optional[str] = Field(
        "US", validation_alias="BIGQUERY_TAXONOMY_LOCATION"
    )

    @field_validator("scopes", mode="before")
    @classmethod
    def _split_scopes(
        cls, value: str | tuple[str, ...] | list[str]
    ) -> tuple[str, ...]:
        """Support providing scopes as a comma-separated string."""
        if isinstance(value, tuple):
            return value
        if isinstance(value, list):
            return tuple(value)
        return tuple(scope.strip() for scope in value.split(",") if scope.strip())


class AppSettings(BaseSettings):
    """Root settings object for the FastAPI application."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        populate_by_name=True,
        extra="ignore",
    )

    environment: str = Field("development", validation_alias="APP_ENV")
    log_level: str = Field("INFO", validation_alias="APP_LOG_LEVEL")
    warehouse: WarehouseSettings = Field(default_factory=WarehouseSettings)
    stripe_secret_key: Optional[str] = Field(None, validation_alias="STRIPE_SECRET_KEY")
    clerk_secret_key: Optional[str] = Field(None, validation_alias="CLERK_SECRET_KEY")
    admin_api_token: Optional[str] = Field(
        None,
        validation_alias="ADMIN_API_TOKEN",
        description="Shared secret required by the admin rank generation route.",
    )


def load_settings(env_file: str | Path | None = ".env") -> AppSettings:
    """Build settings reading ``env_file`` for both the root and warehouse sections."""
    warehouse = WarehouseSettings(_env_file=env_file)  # type: ignore[call-arg]
    return AppSettings(_env_file=env_file, warehouse=warehouse)  # type: ignore[call-arg]


@lru_cache()
def get_settings() -> AppSettings:
    """Return a cached settings object."""
    return AppSettings()  # type: ignore[call-arg]


__all__ = [
    "AppSettings",
    "WarehouseSettings",
    "get_settings",
    "load_settings",
]
