"""
Weekly best-seller rankings, momentum analysis and the product taxonomy.

The enriched weekly rank table is filled by :meth:`RankingsRepository.generate_week_rank`
from the Merchant Center best-sellers export; the read paths query it and the
momentum analysis table maintained alongside it.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Mapping, Optional, Sequence

if TYPE_CHECKING:  # pragma: no cover - type hints only
    from app.clients.bigquery import BigQueryRestClient

logger = logging.getLogger(__name__)

ALL_CATEGORIES = "123456"
GROWTH_FASTEST = "fastest"
GROWTH_PAGE_SIZE = 10
WEEKLY_RANK_TYPE = "1"


def to_int(value: Any, default: int = 0) -> int:
    """Wire INT64 cells are strings; return ``default`` for blanks and junk."""
    if value is None or value == "":
        return default
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return default


def to_float(value: Any, default: float = 0.0) -> float:
    if value is None or value == "":
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def parse_timestamp_cell(value: Any) -> Optional[datetime]:
    """Parse a TIMESTAMP cell, sent as epoch seconds (``"1.7145216E9"``) or ISO text."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    text = str(value)
    try:
        return datetime.fromtimestamp(float(text), tz=timezone.utc)
    except ValueError:
        pass
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _timestamp_text(value: Any) -> str:
    parsed = parse_timestamp_cell(value)
    return parsed.isoformat() if parsed else ""


def build_taxonomy_tree(rows: Sequence[Mapping[str, Any]]) -> List[Dict[str, Any]]:
    """Nest taxonomy rows under their parent; rows with an unknown parent become roots.

    Input order is kept within each level, so rows sorted by depth then code
    produce sorted children.
    """
    nodes: Dict[str, Dict[str, Any]] = {}
    for row in rows:
        nodes[str(row.get("code"))] = {**row, "children": []}

    tree: List[Dict[str, Any]] = []
    for row in rows:
        node = nodes[str(row.get("code"))]
        parent_code = row.get("parent_catalog_code")
        parent = nodes.get(str(parent_code)) if parent_code not in (None, "") else None
        if parent is not None and parent is not node:
            parent["children"].append(node)
        else:
            tree.append(node)
    return tree


def format_rank_improvement(row: Mapping[str, Any]) -> Dict[str, Any]:
    current_rank = to_int(row.get("current_rank"))
    improvement = to_int(row.get("rank_improvement"))
    demand = to_float(row.get("current_relative_demand"))
    timestamp = _timestamp_text(row.get("rank_timestamp"))
    title = row.get("product_title")
    return {
        "productTitle": title if isinstance(title, str) else "",
        "currentRank": current_rank,
        "previousRank": current_rank + improvement,
        "rankImprovement": improvement,
        "currentRelativeDemand": demand,
        "previousRelativeDemand": demand,
        "daysBetweenRankings": 7,
        "currentTimestamp": timestamp,
        "previousTimestamp": timestamp,
        "rankingCategory": str(row.get("ranking_category") or ""),
        "imageUrl": str(row.get("image_url") or ""),
    }


def format_momentum(row: Mapping[str, Any]) -> Dict[str, Any]:
    return {
        "productTitle": row.get("product_title"),
        "currentRank": to_int(row.get("current_rank")),
        "previousRank": to_int(row.get("previous_rank")),
        "rankImprovement": to_int(row.get("rank_improvement")),
        "currentRelativeDemand": to_float(row.get("current_relative_demand")),
        "previousRelativeDemand": to_float(row.get("previous_relative_demand")),
        "demandChange": to_float(row.get("demand_change")),
        "momentumScore": to_float(row.get("momentum_score")),
        "trendType": row.get("trend_type"),
        "imageUrl": row.get("image_url"),
        "searchTitle": row.get("search_title"),
        "searchLink": row.get("search_link"),
        "analysisTimestamp": _timestamp_text(row.get("analysis_timestamp")),
    }


def build_enriched_rank_rows(
    source_rows: Sequence[Mapping[str, Any]], *, now: datetime
) -> List[Dict[str, Any]]:
    """Turn best-seller export rows into ``product_week_rank_enriched`` rows.

    Image search enrichment is not performed; the image and search columns are
    written empty.
    """
    stamp = now.isoformat()
    enriched = []
    for index, row in enumerate(source_rows, start=1):
        rank = to_int(row.get("rank"))
        previous_rank = to_int(row.get("previous_rank"))
        rank_timestamp = row.get("rank_timestamp")
        if isinstance(rank_timestamp, Mapping):
            rank_timestamp = rank_timestamp.get("value")
        enriched.append(
            {
                "rank_id": str(row.get("entity_id")),
                "rank": rank,
                "product_title": str(row.get("title") or ""),
                "category_id": to_int(row.get("report_category_id")),
                "country": str(row.get("country_code")),
                "image_url": "",
                "search_link": "",
                "search_title": "",
                "rank_timestamp": str(rank_timestamp) if rank_timestamp else stamp,
                "previous_rank": previous_rank,
                "rank_improvement": previous_rank - rank,
                "rank_type": WEEKLY_RANK_TYPE,
                "rank_order": str(index),
                "created_at": stamp,
                "updated_at": stamp,
            }
        )
    return enriched


class RankingsRepository:
    """Query and build the weekly product ranking tables."""

    def __init__(
        self,
        client: "BigQueryRestClient",
        *,
        dataset_id: str,
        rank_table_id: str = "product_week_rank_enriched",
        momentum_table_id: str = "product_momentum_analysis",
        taxonomy_table_id: str = "Google_Product_Taxonomy",
        source_table_id: str = "BestSellersProductClusterWeekly_479974220",
        taxonomy_location: Optional[str] = "US",
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self._client = client
        self._dataset_id = dataset_id
        self._rank_table_id = rank_table_id
        self._rank_table = client.table_ref(dataset_id, rank_table_id)
        self._momentum_table = client.table_ref(dataset_id, momentum_table_id)
        self._taxonomy_table = client.table_ref(dataset_id, taxonomy_table_id)
        self._source_table = client.table_ref(dataset_id, source_table_id)
        self._taxonomy_location = taxonomy_location
        self._clock = clock

    async def products_growth(
        self,
        country: str,
        category: int,
        *,
        growth_type: str = GROWTH_FASTEST,
        product_title: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Top products for the latest ranking date, by improvement or by rank."""
        base_params: Dict[str, Any] = {"country": country, "category": category}
        date_rows, _ = await self._client.query(
            f"SELECT MAX(rank_timestamp) AS latest_date FROM {self._rank_table} "
            "WHERE country = @country AND category_id = @category",
            params=base_params,
        )
        latest = parse_timestamp_cell(date_rows[0].get("latest_date")) if date_rows else None
        if latest is None:
            return {"products": [], "rank_timestamp": None}

        order_by = "rank_improvement DESC" if growth_type == GROWTH_FASTEST else "rank ASC"
        params = {**base_params, "latestDate": latest}
        title_filter = ""
        if product_title:
            title_filter = "AND LOWER(product_title) LIKE LOWER(@productTitle) "
            params["productTitle"] = f"%{product_title}%"

        query = (
            "SELECT rank_id, rank, product_title, image_url, rank_improvement, rank_timestamp "
            f"FROM {self._rank_table} "
            "WHERE country = @country AND category_id = @category "
            "AND DATE(rank_timestamp) = DATE(@latestDate) "
            f"{title_filter}"
            f"ORDER BY {order_by} "
            f"LIMIT {GROWTH_PAGE_SIZE}"
        )
        rows, _ = await self._client.query(query, params=params, types={"latestDate": "TIMESTAMP"})
        products = [
            {
                **row,
                "rank": to_int(row.get("rank")),
                "rank_improvement": to_int(row.get("rank_improvement")),
                "rank_timestamp": _timestamp_text(row.get("rank_timestamp")),
            }
            for row in rows
        ]
        return {"products": products, "rank_timestamp": latest.isoformat()}

    def _momentum_window(
        self, category_id: str, timestamp: Optional[str], params: Dict[str, Any]
    ) -> str:
        """Return category and week conditions, filling ``params`` as needed."""
        category_condition = ""
        if category_id != ALL_CATEGORIES:
            category_condition = "AND category_id = @categoryId "
            params["categoryId"] = category_id

        if timestamp:
            params["timestamp"] = timestamp
            week_condition = (
                "AND DATE_TRUNC(analysis_timestamp, WEEK) = "
                "DATE_TRUNC(CAST(@timestamp AS TIMESTAMP), WEEK) "
            )
        else:
            week_condition = (
                "AND DATE_TRUNC(analysis_timestamp, WEEK) = ("
                f"SELECT MAX(DATE_TRUNC(analysis_timestamp, WEEK)) FROM {self._momentum_table} "
                f"WHERE country = @country {category_condition}) "
            )
        return category_condition + week_condition

    async def rank_improvements(
        self,
        country: str,
        category_id: str = "1",
        *,
        limit: int = 10,
        timestamp: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """Products that climbed the ranking in one week, biggest climb first.

        ``category_id`` ``"123456"`` searches every category. Without
        ``timestamp`` the most recent analysed week is used.
        """
        params: Dict[str, Any] = {"country": country, "limit": limit}
        window = self._momentum_window(category_id, timestamp, params)
        query = (
            "SELECT product_title, MAX(current_rank) AS current_rank, "
            "MAX(rank_change) AS rank_improvement, "
            "MAX(current_relative_demand) AS current_relative_demand, "
            "MAX(analysis_timestamp) AS rank_timestamp, "
            "MAX(category_id) AS ranking_category, MAX(image_url) AS image_url "
            f"FROM {self._momentum_table} "
            "WHERE country = @country AND rank_change > 0 "
            f"{window}"
            "GROUP BY product_title "
            "ORDER BY rank_improvement DESC "
            "LIMIT @limit"
        )
        rows, _ = await self._client.query(query, params=params)
        logger.info("Found %d products with rank improvement for %s", len(rows), country)
        return [format_rank_improvement(row) for row in rows]

    async def rank_change_statistics(
        self,
        country: str,
        category_id: str = "1",
        *,
        timestamp: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Rising, declining and stable counts for one week of the momentum table."""
        params: Dict[str, Any] = {"country": country}
        window = self._momentum_window(category_id, timestamp, params)
        query = (
            "SELECT COUNT(*) AS total_products, "
            "COUNT(CASE WHEN rank_change > 0 THEN 1 END) AS rising_products, "
            "COUNT(CASE WHEN rank_change < 0 THEN 1 END) AS declining_products, "
            "COUNT(CASE WHEN rank_change = 0 THEN 1 END) AS stable_products, "
            "AVG(CASE WHEN rank_change > 0 THEN rank_change END) AS avg_rank_improvement, "
            "MAX(CASE WHEN rank_change > 0 THEN rank_change END) AS max_rank_improvement, "
            "MIN(CASE WHEN rank_change > 0 THEN rank_change END) AS min_rank_improvement "
            f"FROM {self._momentum_table} "
            "WHERE country = @country "
            f"{window}"
        )
        rows, _ = await self._client.query(query, params=params)
        row = rows[0] if rows else {}
        stats: Dict[str, Any] = {
            key: to_int(row.get(key))
            for key in ("total_products", "rising_products", "declining_products", "stable_products")
        }
        for key in ("avg_rank_improvement", "max_rank_improvement", "min_rank_improvement"):
            value = row.get(key)
            stats[key] = None if value in (None, "") else to_float(value)
        return stats

    async def momentum_analysis(
        self,
        country: str,
        category_id: str = "1",
        *,
        trend_type: Optional[str] = None,
        limit: int = 10,
        analysis_date: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """Momentum rows for a single analysis run, highest score first."""
        params: Dict[str, Any] = {"country": country, "categoryId": category_id, "limit": limit}
        types: Dict[str, str] = {}
        conditions = ["country = @country", "category_id = @categoryId"]
        if trend_type:
            conditions.append("trend_type = @trendType")
            params["trendType"] = trend_type
        if analysis_date:
            conditions.append("DATE(analysis_timestamp) = @analysisDate")
            params["analysisDate"] = analysis_date
            types["analysisDate"] = "DATE"
        else:
            conditions.append(
                "analysis_timestamp = (SELECT MAX(analysis_timestamp) "
                f"FROM {self._momentum_table} "
                "WHERE country = @country AND category_id = @categoryId)"
            )

        query = (
            "SELECT product_title, current_rank, previous_rank, "
            "(previous_rank - current_rank) AS rank_improvement, "
            "current_relative_demand, previous_relative_demand, demand_change, "
            "momentum_score, trend_type, image_url, search_title, search_link, "
            "analysis_timestamp "
            f"FROM {self._momentum_table} "
            f"WHERE {' AND '.join(conditions)} "
            "ORDER BY momentum_score DESC "
            "LIMIT @limit"
        )
        rows, _ = await self._client.query(query, params=params, types=types)
        return [format_momentum(row) for row in rows]

    async def taxonomy_tree(self) -> List[Dict[str, Any]]:
        query = (
            "SELECT code, catalog_name, catalog_depth, parent_catalog_code, full_catalog_name "
            f"FROM {self._taxonomy_table} "
            "ORDER BY catalog_depth ASC, code ASC"
        )
        rows, _ = await self._client.query(query, location=self._taxonomy_location)
        return build_taxonomy_tree(rows)

    async def generate_week_rank(
        self,
        country: str,
        category: int,
        *,
        top_n: int,
        fastest: bool,
    ) -> List[Dict[str, Any]]:
        """Copy the top ``top_n`` best sellers into the enriched weekly rank table.

        Returns the inserted rows. Insert failures, including per-row
        ``insertErrors``, propagate to the caller.
        """
        order_by = "ORDER BY previous_rank - rank DESC" if fastest else "ORDER BY rank ASC"
        query = (
            "SELECT entity_id, rank, title, report_category_id, country_code, "
            "_PARTITIONDATE AS rank_timestamp, previous_rank "
            f"FROM {self._source_table} "
            "WHERE country_code = @country AND report_category_id = @category "
            f"{order_by} "
            "LIMIT @topN"
        )
        source_rows, _ = await self._client.query(
            query,
            params={"country": country, "category": category, "topN": top_n},
        )
        rows = build_enriched_rank_rows(source_rows, now=self._clock())
        if not rows:
            logger.info("No best sellers for %s category %s; nothing to insert", country, category)
            return rows

        await self._client.insert(self._dataset_id, self._rank_table_id, rows)
        logger.info(
            "Inserted %d weekly rank rows for %s category %s", len(rows), country, category
        )
        return rows


__all__ = [
    "ALL_CATEGORIES",
    "RankingsRepository",
    "build_enriched_rank_rows",
    "build_taxonomy_tree",
    "format_momentum",
    "format_rank_improvement",
    "parse_timestamp_cell",
    "to_float",
    "to_int",
]
