"""Expose constructed client wrappers."""

from .bigquery import (
    BigQueryRestClient,
    MalformedResponseError,
    PartialInsertError,
    WarehouseInsertError,
    WarehouseQueryError,
)
from .google_auth import ServiceAccountTokenError, ServiceAccountTokenSigner, WarehouseError

__all__ = [
    "BigQueryRestClient",
    "MalformedResponseError",
    "PartialInsertError",
    "ServiceAccountTokenError",
    "ServiceAccountTokenSigner",
    "WarehouseError",
    "WarehouseInsertError",
    "WarehouseQueryError",
]
