"""
Warehouse-backed storage for users' favorite products.

Removal is a soft delete: rows keep their data and move to ``status = 'Delete'``.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Tuple

from app.schemas.favorites import FavoriteCreateRequest

if TYPE_CHECKING:  # pragma: no cover - type hints only
    from app.clients.bigquery import BigQueryRestClient

logger = logging.getLogger(__name__)

_FAVORITE_COLUMNS = (
    "id",
    "userid",
    "username",
    "useremail",
    "rank",
    "country_code",
    "categroy_id",
    "brand",
    "title",
    "previous_rank",
    "price_range",
    "relative_demand",
    "relative_demand_change",
    "rank_timestamp",
    "created_at",
)


class DuplicateFavoriteError(Exception):
    """Raised when the product is already in the user's favorites."""


class FavoriteNotFoundError(Exception):
    """Raised when a favorite is missing, already removed or owned by someone else."""


def sanitize_row(row: Mapping[str, Any]) -> Dict[str, Any]:
    """Unwrap ``{"value": ...}`` cells into their primitive value."""
    cleaned: Dict[str, Any] = {}
    for key, value in row.items():
        if isinstance(value, dict) and "value" in value:
            cleaned[key] = value["value"]
        else:
            cleaned[key] = value
    return cleaned


class FavoritesRepository:
    """Manage rows in the ``Product_Favorites`` table."""

    DELETED_STATUS = "Delete"
    ACTIVE_STATUS = "Add"

    def __init__(
        self,
        client: "BigQueryRestClient",
        *,
        dataset_id: str,
        table_id: str = "Product_Favorites",
    ) -> None:
        self._client = client
        self._dataset_id = dataset_id
        self._table_id = table_id
        self._table = client.table_ref(dataset_id, table_id)

    @property
    def table_id(self) -> str:
        return self._table_id

    @property
    def dataset_id(self) -> str:
        return self._dataset_id

    async def list_favorites(
        self, user_id: str, *, page: int = 1, page_size: int = 20
    ) -> Tuple[List[Dict[str, Any]], int]:
        """Return one page of active favorites and the total active count."""
        offset = (page - 1) * page_size
        query = (
            f"SELECT {', '.join(_FAVORITE_COLUMNS)} FROM {self._table} "
            f"WHERE userid = @userid AND status != '{self.DELETED_STATUS}' "
            "ORDER BY created_at DESC LIMIT @pageSize OFFSET @offset"
        )
        rows, _ = await self._client.query(
            query,
            params={"userid": user_id, "pageSize": page_size, "offset": offset},
            types={"userid": "STRING", "pageSize": "INT64", "offset": "INT64"},
        )

        count_query = (
            f"SELECT COUNT(*) AS total FROM {self._table} "
            f"WHERE userid = @userid AND status != '{self.DELETED_STATUS}'"
        )
        count_rows, _ = await self._client.query(
            count_query, params={"userid": user_id}, types={"userid": "STRING"}
        )
        total_raw = sanitize_row(count_rows[0]).get("total") if count_rows else None
        total = int(total_raw) if total_raw else 0

        return [sanitize_row(row) for row in rows], total

    async def add_favorite(self, user_id: str, favorite: FavoriteCreateRequest) -> None:
        check_query = (
            f"SELECT 1 FROM {self._table} "
            "WHERE userid = @userid AND title = @title "
            "AND country_code = @country_code AND categroy_id = @categroy_id"
        )
        existing, _ = await self._client.query(
            check_query,
            params={
                "userid": user_id,
                "title": favorite.title,
                "country_code": favorite.country_code,
                "categroy_id": favorite.categroy_id,
            },
            types={
                "userid": "STRING",
                "title": "STRING",
                "country_code": "STRING",
                "categroy_id": "INT64",
            },
        )
        if existing:
            raise DuplicateFavoriteError("Product already in favorites")

        insert_query = (
            f"INSERT INTO {self._table} ("
            "userid, username, useremail, rank, country_code, categroy_id, "
            "brand, title, previous_rank, price_range, relative_demand, "
            "relative_demand_change, rank_timestamp, created_at, id, status"
            ") VALUES ("
            "@userid, @username, @useremail, @rank, @country_code, @categroy_id, "
            "@brand, @title, @previous_rank, @price_range, @relative_demand, "
            "@relative_demand_change, @rank_timestamp, CURRENT_TIMESTAMP(), "
            f"GENERATE_UUID(), '{self.ACTIVE_STATUS}')"
        )
        await self._client.query(
            insert_query,
            params={
                "userid": user_id,
                "username": favorite.username or "Unknown",
                "useremail": favorite.useremail or "",
                "rank": favorite.rank,
                "country_code": favorite.country_code,
                "categroy_id": favorite.categroy_id,
                "brand": favorite.brand,
                "title": favorite.title,
                "previous_rank": favorite.previous_rank,
                "price_range": favorite.price_range,
                "relative_demand": favorite.relative_demand,
                "relative_demand_change": favorite.relative_demand_change,
                "rank_timestamp": favorite.rank_timestamp,
            },
            types={
                "rank": "INT64",
                "categroy_id": "INT64",
                "previous_rank": "INT64",
                "rank_timestamp": "TIMESTAMP",
            },
        )
        logger.info("User %s added favorite %r", user_id, favorite.title)

    async def remove_favorite(self, user_id: str, favorite_id: str) -> None:
        params = {"id": favorite_id, "userid": user_id}
        types = {"id": "STRING", "userid": "STRING"}

        check_query = (
            f"SELECT id FROM {self._table} "
            f"WHERE id = @id AND userid = @userid AND status != '{self.DELETED_STATUS}'"
        )
        rows, _ = await self._client.query(check_query, params=params, types=types)
        if not rows:
            raise FavoriteNotFoundError(
                "Favorite not found, already removed, or not authorized"
            )

        update_query = (
            f"UPDATE {self._table} SET status = '{self.DELETED_STATUS}' "
            "WHERE id = @id AND userid = @userid"
        )
        await self._client.query(update_query, params=params, types=types)
        logger.info("User %s removed favorite %s", user_id, favorite_id)

    async def count_all(self) -> int:
        """Count every row in the table; used as a connectivity check."""
        rows, _ = await self._client.query(
            f"SELECT COUNT(*) AS count FROM {self._table}"
        )
        value = sanitize_row(rows[0]).get("count") if rows else None
        return int(value) if value else 0


__all__ = [
    "DuplicateFavoriteError",
    "FavoriteNotFoundError",
    "FavoritesRepository",
    "sanitize_row",
]
