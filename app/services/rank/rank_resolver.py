"""
Rank resolution.

Maps a points total to a rank tier using a snapshot of the rank table
taken once per unit of work.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from typing import TYPE_CHECKING

from app.utils.exceptions import RankConfigurationError

if TYPE_CHECKING:
    from app.models.rank import Rank


@dataclass(frozen=True)
class RankTier:
    """One row of the rank table."""

    rank_id: int
    title: str
    required_points: int


@dataclass(frozen=True)
class RankSnapshot:
    """
    Immutable view of the rank table.

    Tiers are held by required points descending. Construction validates
    the table so resolution itself cannot fail.
    """

    tiers: tuple[RankTier, ...]

    def __post_init__(self) -> None:
        if not self.tiers:
            raise RankConfigurationError("Rank table is empty")

        seen: dict[int, str] = {}
        for tier in self.tiers:
            if tier.required_points < 0:
                raise RankConfigurationError(
                    f"Rank {tier.title!r} has negative threshold "
                    f"{tier.required_points}"
                )
            if tier.required_points in seen:
                raise RankConfigurationError(
                    f"Ranks {seen[tier.required_points]!r} and {tier.title!r} "
                    f"share threshold {tier.required_points}"
                )
            seen[tier.required_points] = tier.title

        ordered = tuple(
            sorted(self.tiers, key=lambda t: t.required_points, reverse=True)
        )
        object.__setattr__(self, "tiers", ordered)

    @classmethod
    def from_ranks(cls, ranks: Iterable["Rank"]) -> "RankSnapshot":
        return cls(
            tiers=tuple(
                RankTier(
                    rank_id=rank.id,
                    title=rank.title,
                    required_points=rank.required_points,
                )
                for rank in ranks
            )
        )

    @property
    def lowest(self) -> RankTier:
        return self.tiers[-1]

    def resolve_rank(self, points: int) -> RankTier:
        """
        Get the highest tier whose threshold the points reach.

        Reaching a threshold exactly qualifies. Totals below every
        threshold resolve to the lowest tier.

        Args:
            points: Accumulated points

        Returns:
            Matching rank tier
        """
        for tier in self.tiers:
            if tier.required_points <= points:
                return tier
        return self.lowest
