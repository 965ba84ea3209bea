"""Schemas for product favorites."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class FavoriteCreateRequest(BaseModel):
    """A ranked product the user wants to keep track of."""

    title: str = Field(..., min_length=1)
    country_code: str
    categroy_id: int = Field(..., description="Category identifier, named as in the table.")
    rank: Optional[int] = None
    previous_rank: Optional[int] = None
    brand: str = ""
    price_range: str = ""
    relative_demand: str = ""
    relative_demand_change: str = ""
    rank_timestamp: datetime
    username: Optional[str] = None
    useremail: Optional[str] = None


class FavoriteListResponse(BaseModel):
    success: bool = True
    data: List[Dict[str, Any]]
    total: int
    page: int
    pageSize: int


__all__ = ["FavoriteCreateRequest", "FavoriteListResponse"]
