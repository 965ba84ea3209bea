"""
FastAPI routes for the trend intelligence API.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from http import HTTPStatus
from typing import Annotated, Any

from fastapi import APIRouter, Body, Depends, Query
from fastapi.responses import JSONResponse

from app.clients import PartialInsertError, WarehouseError
from app.core.config import AppSettings
from app.dependencies import (
    get_app_settings,
    get_current_user_id,
    get_favorites_repository,
    get_rankings_repository,
    get_user_profile_repository,
    require_admin_token,
)
from app.schemas import (
    CreditDeductionResponse,
    FavoriteCreateRequest,
    FavoriteListResponse,
    GenerateRankRequest,
    ProfileInitRequest,
    RankListResponse,
    RankStatisticsRequest,
)
from app.services import (
    DuplicateFavoriteError,
    FavoriteNotFoundError,
    FavoritesRepository,
    RankingsRepository,
    UserProfileRepository,
    coerce_credits,
)

router = APIRouter()
logger = logging.getLogger(__name__)

UserId = Annotated[str, Depends(get_current_user_id)]
Profiles = Annotated[UserProfileRepository, Depends(get_user_profile_repository)]
Favorites = Annotated[FavoritesRepository, Depends(get_favorites_repository)]
Rankings = Annotated[RankingsRepository, Depends(get_rankings_repository)]


def _error(status: HTTPStatus, error: str, **extra: Any) -> JSONResponse:
    return JSONResponse(status_code=status, content={"success": False, "error": error, **extra})


@router.get("/health", status_code=HTTPStatus.OK)
async def healthcheck() -> dict:
    """Simple health endpoint for monitoring."""
    return {"status": "ok"}


@router.get("/check-config", status_code=HTTPStatus.OK)
async def check_config(settings: Annotated[AppSettings, Depends(get_app_settings)]) -> dict:
    """Report which integrations are configured without exposing their values."""
    warehouse = settings.warehouse
    return {
        "environment": settings.environment,
        "warehouse": {
            "serviceAccount": bool(warehouse.service_account_json),
            "projectId": bool(warehouse.project_id),
            "datasetId": warehouse.dataset_id,
            "location": warehouse.location,
        },
        "stripe": {"secretKey": bool(settings.stripe_secret_key)},
        "clerk": {"secretKey": bool(settings.clerk_secret_key)},
    }


@router.get("/warehouse/ping", status_code=HTTPStatus.OK)
async def ping_warehouse(favorites: Favorites):
    """Run a trivial count against the favorites table to prove connectivity."""
    try:
        count = await favorites.count_all()
    except WarehouseError as exc:
        logger.error("Warehouse connectivity check failed: %s", exc)
        return _error(
            HTTPStatus.INTERNAL_SERVER_ERROR,
            "BigQuery connection failed",
            details=str(exc),
            datasetId=favorites.dataset_id,
            tableId=favorites.table_id,
        )
    return {
        "success": True,
        "datasetId": favorites.dataset_id,
        "tableId": favorites.table_id,
        "recordCount": count,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.get("/user/profile", status_code=HTTPStatus.OK)
async def get_profile(user_id: UserId, profiles: Profiles):
    try:
        profile = await profiles.get_profile(user_id)
    except WarehouseError as exc:
        logger.exception("Failed to fetch profile for user %s", user_id)
        return JSONResponse(
            status_code=HTTPStatus.INTERNAL_SERVER_ERROR,
            content={"error": "Failed to fetch UserProfile", "detail": str(exc)},
        )
    if profile is None:
        return JSONResponse(status_code=HTTPStatus.NOT_FOUND, content={"error": "Profile not found"})
    return profile


@router.post("/user/init", status_code=HTTPStatus.OK)
async def init_profile(
    user_id: UserId,
    profiles: Profiles,
    payload: ProfileInitRequest | None = Body(default=None),
):
    """Create a starter profile on first sign-in."""
    payload = payload or ProfileInitRequest()
    try:
        if await profiles.get_profile(user_id) is not None:
            return {"exists": True}
        await profiles.create_profile(user_id, payload.name, payload.email)
    except WarehouseError as exc:
        logger.exception("Failed to create profile for user %s", user_id)
        return JSONResponse(
            status_code=HTTPStatus.INTERNAL_SERVER_ERROR,
            content={"error": "Failed to create UserProfile", "detail": str(exc)},
        )
    return {"created": True}


@router.post("/credits/deduct", status_code=HTTPStatus.OK)
async def deduct_credit(user_id: UserId, profiles: Profiles):
    try:
        profile = await profiles.get_profile(user_id)
        if profile is None:
            return JSONResponse(
                status_code=HTTPStatus.NOT_FOUND,
                content={"error": "User profile not found"},
            )

        credits = coerce_credits(profile.get("credits"))
        if credits <= 0:
            return JSONResponse(
                status_code=HTTPStatus.BAD_REQUEST,
                content={
                    "error": "Insufficient credits",
                    "message": "No credits left; upgrade the plan or wait for the monthly reset.",
                },
            )

        await profiles.deduct_credit(user_id)
        updated = await profiles.get_profile(user_id)
        remaining = coerce_credits(updated.get("credits")) if updated else credits - 1
    except WarehouseError as exc:
        logger.exception("Failed to deduct credit for user %s", user_id)
        return JSONResponse(
            status_code=HTTPStatus.INTERNAL_SERVER_ERROR,
            content={"error": "Failed to deduct credit", "detail": str(exc)},
        )

    logger.info("User %s credits changed from %d to %d", user_id, credits, remaining)
    return CreditDeductionResponse(
        remainingCredits=remaining,
        message=f"Credit deducted, {remaining} remaining.",
    )


@router.get("/favorites", status_code=HTTPStatus.OK)
async def list_favorites(
    user_id: UserId,
    favorites: Favorites,
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=20, ge=1, le=100, alias="pageSize"),
):
    try:
        rows, total = await favorites.list_favorites(user_id, page=page, page_size=page_size)
    except WarehouseError:
        logger.exception("Failed to fetch favorites for user %s", user_id)
        return _error(HTTPStatus.INTERNAL_SERVER_ERROR, "Failed to fetch favorites")
    return FavoriteListResponse(data=rows, total=total, page=page, pageSize=page_size)


@router.post("/favorites", status_code=HTTPStatus.OK)
async def add_favorite(
    payload: FavoriteCreateRequest,
    user_id: UserId,
    favorites: Favorites,
):
    try:
        await favorites.add_favorite(user_id, payload)
    except DuplicateFavoriteError as exc:
        return _error(HTTPStatus.BAD_REQUEST, str(exc))
    except WarehouseError:
        logger.exception("Failed to add favorite for user %s", user_id)
        return _error(HTTPStatus.INTERNAL_SERVER_ERROR, "Failed to add favorite")
    return {"success": True, "message": "Favorite added successfully"}


@router.delete("/favorites/{favorite_id}", status_code=HTTPStatus.OK)
async def remove_favorite(favorite_id: str, user_id: UserId, favorites: Favorites):
    try:
        await favorites.remove_favorite(user_id, favorite_id)
    except FavoriteNotFoundError as exc:
        return _error(HTTPStatus.NOT_FOUND, str(exc))
    except WarehouseError:
        logger.exception("Failed to remove favorite %s for user %s", favorite_id, user_id)
        return _error(HTTPStatus.INTERNAL_SERVER_ERROR, "Failed to remove favorite")
    return {"success": True, "message": "Favorite removed"}


@router.get("/products-growth", status_code=HTTPStatus.OK)
async def products_growth(
    rankings: Rankings,
    category: int = Query(...),
    country: str = Query(default="US"),
    growth_type: str = Query(default="fastest", alias="type"),
    product_title: str | None = Query(default=None, alias="productTitle"),
):
    """Top ten products of the latest weekly ranking."""
    try:
        return await rankings.products_growth(
            country, category, growth_type=growth_type, product_title=product_title
        )
    except WarehouseError as exc:
        logger.exception("Failed to fetch product growth for %s/%s", country, category)
        return JSONResponse(status_code=HTTPStatus.INTERNAL_SERVER_ERROR, content={"error": str(exc)})


@router.get("/rank-improvement", status_code=HTTPStatus.OK)
async def rank_improvement(
    rankings: Rankings,
    country: str = Query(default="US"),
    category_id: str = Query(default="1", alias="categoryId"),
    limit: int = Query(default=10, ge=1, le=500),
    timestamp: str | None = Query(default=None),
):
    try:
        rows = await rankings.rank_improvements(
            country, category_id, limit=limit, timestamp=timestamp
        )
    except WarehouseError as exc:
        logger.exception("Failed to fetch rank improvements")
        return _error(
            HTTPStatus.INTERNAL_SERVER_ERROR,
            "Failed to fetch rank improvement analysis data",
            details=str(exc),
        )
    return RankListResponse(
        data=rows,
        count=len(rows),
        filters={"country": country, "categoryId": category_id, "limit": limit},
    )


@router.post("/rank-improvement", status_code=HTTPStatus.OK)
async def rank_improvement_statistics(
    rankings: Rankings,
    payload: RankStatisticsRequest | None = Body(default=None),
):
    payload = payload or RankStatisticsRequest()
    try:
        stats = await rankings.rank_change_statistics(
            payload.country, payload.categoryId, timestamp=payload.timestamp
        )
    except WarehouseError as exc:
        logger.exception("Failed to fetch rank improvement statistics")
        return _error(
            HTTPStatus.INTERNAL_SERVER_ERROR,
            "Failed to fetch rank improvement statistics",
            details=str(exc),
        )
    return {
        "success": True,
        "data": stats,
        "filters": {"country": payload.country, "categoryId": payload.categoryId},
    }


@router.get("/momentum-analysis", status_code=HTTPStatus.OK)
async def momentum_analysis(
    rankings: Rankings,
    country: str = Query(default="US"),
    category_id: str = Query(default="1", alias="categoryId"),
    trend_type: str | None = Query(default=None, alias="trendType"),
    limit: int = Query(default=10, ge=1, le=500),
    analysis_date: str | None = Query(default=None, alias="analysisDate"),
):
    try:
        rows = await rankings.momentum_analysis(
            country,
            category_id,
            trend_type=trend_type,
            limit=limit,
            analysis_date=analysis_date,
        )
    except WarehouseError as exc:
        logger.exception("Failed to fetch momentum analysis")
        return _error(
            HTTPStatus.INTERNAL_SERVER_ERROR,
            "Failed to fetch momentum analysis data",
            details=str(exc),
        )
    return RankListResponse(
        data=rows,
        count=len(rows),
        filters={
            "country": country,
            "categoryId": category_id,
            "trendType": trend_type,
            "limit": limit,
            "analysisDate": analysis_date,
        },
    )


@router.get("/taxonomy-tree", status_code=HTTPStatus.OK)
async def taxonomy_tree(rankings: Rankings):
    try:
        return await rankings.taxonomy_tree()
    except WarehouseError:
        logger.exception("Failed to fetch taxonomy tree")
        return JSONResponse(
            status_code=HTTPStatus.INTERNAL_SERVER_ERROR,
            content={"error": "Failed to fetch taxonomy tree"},
        )


@router.post(
    "/admin/generate-rank",
    status_code=HTTPStatus.OK,
    dependencies=[Depends(require_admin_token)],
)
async def generate_rank(payload: GenerateRankRequest, rankings: Rankings):
    """Copy one category's best sellers into the weekly rank table."""
    try:
        rows = await rankings.generate_week_rank(
            payload.country,
            payload.category,
            top_n=payload.topN,
            fastest=payload.isFastest,
        )
    except PartialInsertError as exc:
        logger.error("Weekly rank insert reported %d row errors", len(exc.errors))
        return _error(HTTPStatus.INTERNAL_SERVER_ERROR, str(exc), details=exc.errors)
    except WarehouseError as exc:
        logger.exception("Failed to generate weekly rank for %s", payload.country)
        return _error(HTTPStatus.INTERNAL_SERVER_ERROR, str(exc))
    return {"success": True, "count": len(rows)}


__all__ = ["router"]
