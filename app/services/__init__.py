"""Service layer exports."""

from .favorites import (
    DuplicateFavoriteError,
    FavoriteNotFoundError,
    FavoritesRepository,
    sanitize_row,
)
from .rankings import ALL_CATEGORIES, RankingsRepository, build_taxonomy_tree
from .user_profiles import UserProfileRepository, coerce_credits

__all__ = [
    "ALL_CATEGORIES",
    "DuplicateFavoriteError",
    "FavoriteNotFoundError",
    "FavoritesRepository",
    "RankingsRepository",
    "UserProfileRepository",
    "build_taxonomy_tree",
    "coerce_credits",
    "sanitize_row",
]
