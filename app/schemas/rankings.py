"""Schemas for ranking, momentum and rank generation endpoints."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class RankStatisticsRequest(BaseModel):
    country: str = "US"
    categoryId: str = "1"
    timestamp: Optional[str] = None


class GenerateRankRequest(BaseModel):
    """Which best-seller slice to copy into the weekly rank table."""

    country: str = Field(..., min_length=2)
    category: int
    topN: int = Field(10, ge=1, le=1000)
    isFastest: bool = False


class RankListResponse(BaseModel):
    success: bool = True
    data: List[Dict[str, Any]]
    count: int
    filters: Dict[str, Any]


__all__ = ["GenerateRankRequest", "RankListResponse", "RankStatisticsRequest"]
