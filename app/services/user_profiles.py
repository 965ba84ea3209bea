"""
Warehouse-backed storage for user profiles and their query credits.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Dict, Optional

if TYPE_CHECKING:  # pragma: no cover - type hints only
    from app.clients.bigquery import BigQueryRestClient

logger = logging.getLogger(__name__)


def coerce_credits(value: Any) -> int:
    """INT64 cells arrive as strings on the wire; normalise them to ``int``."""
    if value is None or value == "":
        return 0
    if isinstance(value, dict) and "value" in value:
        value = value["value"]
    return int(value)


class UserProfileRepository:
    """Read and update rows in the ``UserProfile`` table."""

    STARTER_CREDITS = 20
    STARTER_TIER = "starter"

    def __init__(
        self,
        client: "BigQueryRestClient",
        *,
        dataset_id: str,
        table_id: str = "UserProfile",
    ) -> None:
        self._client = client
        self._table = client.table_ref(dataset_id, table_id)

    async def get_profile(self, user_id: str) -> Optional[Dict[str, Any]]:
        """Return the profile row for ``user_id`` or ``None``."""
        query = f"SELECT * FROM {self._table} WHERE id = @userId LIMIT 1"
        rows, _ = await self._client.query(query, params={"userId": user_id})
        return rows[0] if rows else None

    async def create_profile(self, user_id: str, name: str, email: str) -> None:
        query = (
            f"INSERT INTO {self._table} "
            "(id, credits, tier, createdAt, updatedAt, name, email) "
            "VALUES (@userId, @credits, @tier, CURRENT_TIMESTAMP(), "
            "CURRENT_TIMESTAMP(), @name, @email)"
        )
        await self._client.query(
            query,
            params={
                "userId": user_id,
                "credits": self.STARTER_CREDITS,
                "tier": self.STARTER_TIER,
                "name": name,
                "email": email,
            },
        )
        logger.info("Created profile for user %s", user_id)

    async def deduct_credit(self, user_id: str) -> None:
        """Take one credit; rows already at zero are left untouched."""
        query = (
            f"UPDATE {self._table} "
            "SET credits = credits - 1, updatedAt = CURRENT_TIMESTAMP() "
            "WHERE id = @userId AND credits > 0"
        )
        await self._client.query(query, params={"userId": user_id})


__all__ = ["UserProfileRepository", "coerce_credits"]
