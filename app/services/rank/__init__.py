"""
Rank services package.
"""

from app.services.rank.rank_resolver import RankSnapshot, RankTier


__all__ = [
    "RankSnapshot",
    "RankTier",
]
