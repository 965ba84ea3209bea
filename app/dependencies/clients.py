"""
Factory functions to provide shared clients and services as FastAPI dependencies.
"""

from functools import lru_cache

from app.clients import BigQueryRestClient, ServiceAccountTokenSigner
from app.core.config import get_settings
from app.models.warehouse import ServiceAccountCredential
from app.services import FavoritesRepository, RankingsRepository, UserProfileRepository


@lru_cache()
def _settings():
    """Internal helper to cache settings for client factories."""
    return get_settings()


@lru_cache()
def get_service_account_credential() -> ServiceAccountCredential:
    """Parse the service-account key once per process."""
    settings = _settings()
    return ServiceAccountCredential.from_json(settings.warehouse.service_account_json)


@lru_cache()
def get_token_signer() -> ServiceAccountTokenSigner:
    """Provide the signer that exchanges service-account assertions for tokens."""
    warehouse = _settings().warehouse
    return ServiceAccountTokenSigner(
        get_service_account_credential(),
        warehouse.scopes,
        token_url=warehouse.token_url,
    )


@lru_cache()
def get_bigquery_client() -> BigQueryRestClient:
    """Create the single warehouse client shared by every handler."""
    warehouse = _settings().warehouse
    credential = get_service_account_credential()
    project_id = warehouse.project_id or credential.project_id
    if not project_id:
        raise RuntimeError(
            "GCP_PROJECT_ID is not set and the service account key has no project_id."
        )
    return BigQueryRestClient(
        project_id=project_id,
        signer=get_token_signer(),
        base_url=warehouse.api_base_url,
        default_location=warehouse.location,
    )


def get_user_profile_repository() -> UserProfileRepository:
    """Build a user profile repository over the shared warehouse client."""
    warehouse = _settings().warehouse
    return UserProfileRepository(
        get_bigquery_client(),
        dataset_id=warehouse.dataset_id,
        table_id=warehouse.profile_table_id,
    )


def get_favorites_repository() -> FavoritesRepository:
    """Build a favorites repository over the shared warehouse client."""
    warehouse = _settings().warehouse
    return FavoritesRepository(
        get_bigquery_client(),
        dataset_id=warehouse.dataset_id,
        table_id=warehouse.favorites_table_id,
    )


def get_rankings_repository() -> RankingsRepository:
    """Build the rankings repository over the shared warehouse client."""
    warehouse = _settings().warehouse
    return RankingsRepository(
        get_bigquery_client(),
        dataset_id=warehouse.dataset_id,
        rank_table_id=warehouse.rank_table_id,
        momentum_table_id=warehouse.momentum_table_id,
        taxonomy_table_id=warehouse.taxonomy_table_id,
        source_table_id=warehouse.weekly_source_table_id,
        taxonomy_location=warehouse.taxonomy_location,
    )


__all__ = [
    "get_bigquery_client",
    "get_favorites_repository",
    "get_rankings_repository",
    "get_service_account_credential",
    "get_token_signer",
    "get_user_profile_repository",
]
