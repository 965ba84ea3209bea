"""Public schema exports."""

from .favorites import FavoriteCreateRequest, FavoriteListResponse
from .profile import CreditDeductionResponse, ProfileInitRequest
from .rankings import GenerateRankRequest, RankListResponse, RankStatisticsRequest

__all__ = [
    "CreditDeductionResponse",
    "FavoriteCreateRequest",
    "FavoriteListResponse",
    "GenerateRankRequest",
    "ProfileInitRequest",
    "RankListResponse",
    "RankStatisticsRequest",
]
