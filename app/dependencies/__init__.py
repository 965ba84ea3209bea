"""Expose dependency helpers for FastAPI routers."""

from .auth import get_current_user_id, require_admin_token
from .clients import (
    get_bigquery_client,
    get_favorites_repository,
    get_rankings_repository,
    get_service_account_credential,
    get_token_signer,
    get_user_profile_repository,
)
from .config import SettingsDependency, get_app_settings

__all__ = [
    "SettingsDependency",
    "get_app_settings",
    "get_bigquery_client",
    "get_current_user_id",
    "get_favorites_repository",
    "get_rankings_repository",
    "get_service_account_credential",
    "get_token_signer",
    "get_user_profile_repository",
    "require_admin_token",
]
