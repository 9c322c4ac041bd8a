"""
Rank model.

Rank tiers keyed by the points needed to reach them.
"""

from sqlalchemy import Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base


class Rank(Base):
    """Rank tier. Thresholds are unique so resolution is unambiguous."""

    __tablename__ = "ranks"

    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )
    title: Mapped[str] = mapped_column(
        String(100), unique=True, nullable=False
    )
    required_points: Mapped[int] = mapped_column(
        Integer, unique=True, nullable=False
    )
    details: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<Rank(id={self.id}, title={self.title!r}, "
            f"required_points={self.required_points})>"
        )
