from __future__ import annotations

from datetime import datetime, timezone

import pytest

from app.clients import PartialInsertError
from app.schemas import FavoriteCreateRequest
from app.services import (
    DuplicateFavoriteError,
    FavoriteNotFoundError,
    FavoritesRepository,
    RankingsRepository,
    UserProfileRepository,
    build_taxonomy_tree,
    coerce_credits,
    sanitize_row,
)
from app.services.rankings import parse_timestamp_cell


class ScriptedWarehouseClient:
    """Replays canned row sets and records every query issued."""

    project_id = "trends"

    def __init__(self, *results: list[dict]) -> None:
        self.results = list(results)
        self.calls: list[dict] = []
        self.inserts: list[tuple[str, str, list[dict]]] = []
        self.insert_error: Exception | None = None

    def table_ref(self, dataset_id: str, table_id: str) -> str:
        return f"`{self.project_id}.{dataset_id}.{table_id}`"

    async def query(self, query, params=None, types=None, location=None):
        self.calls.append(
            {"query": query, "params": params or {}, "types": types or {}, "location": location}
        )
        rows = self.results.pop(0) if self.results else []
        return rows, {"rows": rows}

    async def insert(self, dataset_id, table_id, rows):
        if self.insert_error is not None:
            raise self.insert_error
        self.inserts.append((dataset_id, table_id, list(rows)))
        return {"kind": "bigquery#tableDataInsertAllResponse"}


def _favorite(**overrides) -> FavoriteCreateRequest:
    data = {
        "title": "Widget",
        "country_code": "US",
        "categroy_id": 536,
        "rank": 3,
        "previous_rank": 9,
        "rank_timestamp": datetime(2024, 5, 1, tzinfo=timezone.utc),
    }
    data.update(overrides)
    return FavoriteCreateRequest(**data)


@pytest.mark.anyio
async def test_get_profile_returns_first_row_or_none() -> None:
    client = ScriptedWarehouseClient([{"id": "user-1", "credits": "20"}], [])
    repo = UserProfileRepository(client, dataset_id="new_gmc_data")

    assert await repo.get_profile("user-1") == {"id": "user-1", "credits": "20"}
    assert await repo.get_profile("user-2") is None
    assert "`trends.new_gmc_data.UserProfile`" in client.calls[0]["query"]
    assert client.calls[0]["params"] == {"userId": "user-1"}


@pytest.mark.anyio
async def test_create_profile_starts_with_starter_credits() -> None:
    client = ScriptedWarehouseClient()
    repo = UserProfileRepository(client, dataset_id="new_gmc_data")

    await repo.create_profile("user-1", "Ada", "ada@example.com")

    call = client.calls[0]
    assert call["query"].startswith("INSERT INTO `trends.new_gmc_data.UserProfile`")
    assert call["params"] == {
        "userId": "user-1",
        "credits": 20,
        "tier": "starter",
        "name": "Ada",
        "email": "ada@example.com",
    }


@pytest.mark.anyio
async def test_deduct_credit_guards_against_negative_balance() -> None:
    client = ScriptedWarehouseClient()
    repo = UserProfileRepository(client, dataset_id="new_gmc_data")

    await repo.deduct_credit("user-1")

    assert "credits > 0" in client.calls[0]["query"]


def test_coerce_credits() -> None:
    assert coerce_credits("7") == 7
    assert coerce_credits(None) == 0
    assert coerce_credits({"value": "3"}) == 3


def test_sanitize_row_unwraps_value_objects() -> None:
    assert sanitize_row({"total": {"value": "4"}, "title": "Widget"}) == {
        "total": "4",
        "title": "Widget",
    }


@pytest.mark.anyio
async def test_list_favorites_pages_and_counts() -> None:
    client = ScriptedWarehouseClient(
        [{"id": "fav-1", "title": "Widget"}],
        [{"total": "11"}],
    )
    repo = FavoritesRepository(client, dataset_id="new_gmc_data")

    rows, total = await repo.list_favorites("user-1", page=2, page_size=10)

    assert rows == [{"id": "fav-1", "title": "Widget"}]
    assert total == 11
    page_call, count_call = client.calls
    assert page_call["params"] == {"userid": "user-1", "pageSize": 10, "offset": 10}
    assert page_call["types"]["offset"] == "INT64"
    assert "status != 'Delete'" in page_call["query"]
    assert "status != 'Delete'" in count_call["query"]


@pytest.mark.anyio
async def test_add_favorite_rejects_duplicates() -> None:
    client = ScriptedWarehouseClient([{"f0_": "1"}])
    repo = FavoritesRepository(client, dataset_id="new_gmc_data")

    with pytest.raises(DuplicateFavoriteError):
        await repo.add_favorite("user-1", _favorite())

    assert len(client.calls) == 1


@pytest.mark.anyio
async def test_add_favorite_inserts_with_declared_types() -> None:
    client = ScriptedWarehouseClient([], [])
    repo = FavoritesRepository(client, dataset_id="new_gmc_data")

    await repo.add_favorite("user-1", _favorite(username=None))

    insert_call = client.calls[1]
    assert insert_call["query"].startswith("INSERT INTO `trends.new_gmc_data.Product_Favorites`")
    assert "GENERATE_UUID()" in insert_call["query"]
    assert insert_call["params"]["username"] == "Unknown"
    assert insert_call["params"]["categroy_id"] == 536
    assert insert_call["types"]["rank_timestamp"] == "TIMESTAMP"


@pytest.mark.anyio
async def test_remove_favorite_soft_deletes_owned_rows() -> None:
    client = ScriptedWarehouseClient([{"id": "fav-1"}], [])
    repo = FavoritesRepository(client, dataset_id="new_gmc_data")

    await repo.remove_favorite("user-1", "fav-1")

    update_call = client.calls[1]
    assert update_call["query"].startswith("UPDATE")
    assert "SET status = 'Delete'" in update_call["query"]
    assert update_call["params"] == {"id": "fav-1", "userid": "user-1"}


@pytest.mark.anyio
async def test_remove_favorite_not_found() -> None:
    client = ScriptedWarehouseClient([])
    repo = FavoritesRepository(client, dataset_id="new_gmc_data")

    with pytest.raises(FavoriteNotFoundError):
        await repo.remove_favorite("user-1", "fav-404")

    assert len(client.calls) == 1


FIXED_NOW = datetime(2024, 5, 6, 9, 30, tzinfo=timezone.utc)


def _rankings(client: ScriptedWarehouseClient) -> RankingsRepository:
    return RankingsRepository(client, dataset_id="new_gmc_data", clock=lambda: FIXED_NOW)


def test_parse_timestamp_cell_accepts_epoch_and_iso_text() -> None:
    may_first = datetime(2024, 5, 1, tzinfo=timezone.utc)

    assert parse_timestamp_cell("1.7145216E9") == may_first
    assert parse_timestamp_cell("2024-05-01T00:00:00Z") == may_first
    assert parse_timestamp_cell("2024-05-01") == may_first
    assert parse_timestamp_cell(None) is None
    assert parse_timestamp_cell("soon") is None


def test_build_taxonomy_tree_nests_children_and_keeps_orphans_as_roots() -> None:
    rows = [
        {"code": "1", "catalog_name": "Animals", "catalog_depth": "1", "parent_catalog_code": None},
        {"code": "8", "catalog_name": "Arts", "catalog_depth": "1", "parent_catalog_code": ""},
        {"code": "2", "catalog_name": "Pet Supplies", "catalog_depth": "2", "parent_catalog_code": "1"},
        {"code": "99", "catalog_name": "Lost", "catalog_depth": "2", "parent_catalog_code": "404"},
        {"code": "3", "catalog_name": "Bird Supplies", "catalog_depth": "3", "parent_catalog_code": "2"},
    ]

    tree = build_taxonomy_tree(rows)

    assert [node["code"] for node in tree] == ["1", "8", "99"]
    animals = tree[0]
    assert [child["code"] for child in animals["children"]] == ["2"]
    assert animals["children"][0]["children"][0]["catalog_name"] == "Bird Supplies"
    assert tree[2]["children"] == []


@pytest.mark.anyio
async def test_products_growth_without_rankings_returns_empty() -> None:
    client = ScriptedWarehouseClient([{"latest_date": None}])

    result = await _rankings(client).products_growth("US", 536)

    assert result == {"products": [], "rank_timestamp": None}
    assert len(client.calls) == 1
    assert client.calls[0]["params"] == {"country": "US", "category": 536}


@pytest.mark.anyio
async def test_products_growth_reads_latest_day_with_title_filter() -> None:
    client = ScriptedWarehouseClient(
        [{"latest_date": "1.7145216E9"}],
        [
            {
                "rank_id": "r-1",
                "rank": "4",
                "product_title": "Widget Pro",
                "image_url": "",
                "rank_improvement": "12",
                "rank_timestamp": "1.7145216E9",
            }
        ],
    )

    result = await _rankings(client).products_growth("US", 536, product_title="widget")

    assert result["rank_timestamp"] == "2024-05-01T00:00:00+00:00"
    assert result["products"][0]["rank"] == 4
    assert result["products"][0]["rank_improvement"] == 12
    top_call = client.calls[1]
    assert "`trends.new_gmc_data.product_week_rank_enriched`" in top_call["query"]
    assert "ORDER BY rank_improvement DESC" in top_call["query"]
    assert "LIKE LOWER(@productTitle)" in top_call["query"]
    assert top_call["params"]["productTitle"] == "%widget%"
    assert top_call["params"]["latestDate"] == datetime(2024, 5, 1, tzinfo=timezone.utc)
    assert top_call["types"] == {"latestDate": "TIMESTAMP"}


@pytest.mark.anyio
async def test_products_growth_top_sellers_order_by_rank() -> None:
    client = ScriptedWarehouseClient([{"latest_date": "1.7145216E9"}], [])

    await _rankings(client).products_growth("DE", 1, growth_type="top")

    assert "ORDER BY rank ASC" in client.calls[1]["query"]
    assert "productTitle" not in client.calls[1]["params"]


@pytest.mark.anyio
async def test_rank_improvements_for_every_category_uses_latest_week() -> None:
    client = ScriptedWarehouseClient(
        [
            {
                "product_title": "Widget",
                "current_rank": "3",
                "rank_improvement": "5",
                "current_relative_demand": "0.75",
                "rank_timestamp": "1.7145216E9",
                "ranking_category": "536",
                "image_url": None,
            }
        ]
    )

    rows = await _rankings(client).rank_improvements("US", "123456", limit=5)

    call = client.calls[0]
    assert "category_id = @categoryId" not in call["query"]
    assert "SELECT MAX(DATE_TRUNC(analysis_timestamp, WEEK))" in call["query"]
    assert call["params"] == {"country": "US", "limit": 5}
    assert rows == [
        {
            "productTitle": "Widget",
            "currentRank": 3,
            "previousRank": 8,
            "rankImprovement": 5,
            "currentRelativeDemand": 0.75,
            "previousRelativeDemand": 0.75,
            "daysBetweenRankings": 7,
            "currentTimestamp": "2024-05-01T00:00:00+00:00",
            "previousTimestamp": "2024-05-01T00:00:00+00:00",
            "rankingCategory": "536",
            "imageUrl": "",
        }
    ]


@pytest.mark.anyio
async def test_rank_improvements_for_a_given_week_and_category() -> None:
    client = ScriptedWarehouseClient([])

    await _rankings(client).rank_improvements("US", "536", timestamp="2024-05-01T00:00:00Z")

    call = client.calls[0]
    assert "category_id = @categoryId" in call["query"]
    assert "DATE_TRUNC(CAST(@timestamp AS TIMESTAMP), WEEK)" in call["query"]
    assert call["params"] == {
        "country": "US",
        "limit": 10,
        "categoryId": "536",
        "timestamp": "2024-05-01T00:00:00Z",
    }


@pytest.mark.anyio
async def test_rank_change_statistics_coerces_counts() -> None:
    client = ScriptedWarehouseClient(
        [
            {
                "total_products": "40",
                "rising_products": "12",
                "declining_products": "20",
                "stable_products": "8",
                "avg_rank_improvement": "6.5",
                "max_rank_improvement": "30",
                "min_rank_improvement": None,
            }
        ]
    )

    stats = await _rankings(client).rank_change_statistics("US", "536")

    assert stats["total_products"] == 40
    assert stats["rising_products"] == 12
    assert stats["avg_rank_improvement"] == 6.5
    assert stats["max_rank_improvement"] == 30.0
    assert stats["min_rank_improvement"] is None


@pytest.mark.anyio
async def test_momentum_analysis_filters_by_trend_and_date() -> None:
    client = ScriptedWarehouseClient(
        [
            {
                "product_title": "Widget",
                "current_rank": "2",
                "previous_rank": "9",
                "rank_improvement": "7",
                "momentum_score": "88.5",
                "trend_type": "ROCKET_RISING",
                "analysis_timestamp": "1.7145216E9",
            }
        ]
    )

    rows = await _rankings(client).momentum_analysis(
        "US", "536", trend_type="ROCKET_RISING", analysis_date="2024-05-01"
    )

    call = client.calls[0]
    assert "trend_type = @trendType" in call["query"]
    assert "DATE(analysis_timestamp) = @analysisDate" in call["query"]
    assert call["types"] == {"analysisDate": "DATE"}
    assert rows[0]["rankImprovement"] == 7
    assert rows[0]["momentumScore"] == 88.5
    assert rows[0]["analysisTimestamp"] == "2024-05-01T00:00:00+00:00"


@pytest.mark.anyio
async def test_taxonomy_tree_queries_in_configured_location() -> None:
    client = ScriptedWarehouseClient(
        [
            {"code": "1", "parent_catalog_code": None},
            {"code": "2", "parent_catalog_code": "1"},
        ]
    )

    tree = await _rankings(client).taxonomy_tree()

    assert client.calls[0]["location"] == "US"
    assert "ORDER BY catalog_depth ASC, code ASC" in client.calls[0]["query"]
    assert tree[0]["children"][0]["code"] == "2"


@pytest.mark.anyio
async def test_generate_week_rank_inserts_enriched_rows() -> None:
    client = ScriptedWarehouseClient(
        [
            {
                "entity_id": "111",
                "rank": "2",
                "title": "Widget",
                "report_category_id": "536",
                "country_code": "US",
                "rank_timestamp": "2024-05-05",
                "previous_rank": "10",
            },
            {
                "entity_id": "222",
                "rank": "5",
                "title": None,
                "report_category_id": "536",
                "country_code": "US",
                "rank_timestamp": None,
                "previous_rank": "6",
            },
        ]
    )

    rows = await _rankings(client).generate_week_rank("US", 536, top_n=2, fastest=True)

    select_call = client.calls[0]
    assert "ORDER BY previous_rank - rank DESC" in select_call["query"]
    assert "`trends.new_gmc_data.BestSellersProductClusterWeekly_479974220`" in select_call["query"]
    assert select_call["params"] == {"country": "US", "category": 536, "topN": 2}

    assert client.inserts == [("new_gmc_data", "product_week_rank_enriched", rows)]
    first, second = rows
    assert first == {
        "rank_id": "111",
        "rank": 2,
        "product_title": "Widget",
        "category_id": 536,
        "country": "US",
        "image_url": "",
        "search_link": "",
        "search_title": "",
        "rank_timestamp": "2024-05-05",
        "previous_rank": 10,
        "rank_improvement": 8,
        "rank_type": "1",
        "rank_order": "1",
        "created_at": FIXED_NOW.isoformat(),
        "updated_at": FIXED_NOW.isoformat(),
    }
    assert second["product_title"] == ""
    assert second["rank_timestamp"] == FIXED_NOW.isoformat()
    assert second["rank_order"] == "2"


@pytest.mark.anyio
async def test_generate_week_rank_skips_insert_without_source_rows() -> None:
    client = ScriptedWarehouseClient([])

    rows = await _rankings(client).generate_week_rank("US", 536, top_n=10, fastest=False)

    assert rows == []
    assert "ORDER BY rank ASC" in client.calls[0]["query"]
    assert client.inserts == []


@pytest.mark.anyio
async def test_generate_week_rank_propagates_row_errors() -> None:
    client = ScriptedWarehouseClient(
        [{"entity_id": "111", "rank": "1", "previous_rank": "1", "country_code": "US"}]
    )
    client.insert_error = PartialInsertError([{"index": 0, "errors": [{"reason": "invalid"}]}])

    with pytest.raises(PartialInsertError):
        await _rankings(client).generate_week_rank("US", 536, top_n=1, fastest=False)
