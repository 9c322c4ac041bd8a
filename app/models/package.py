"""
Package model.

A purchasable package: price, points granted and the commission schedule.
"""

from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import JSON, Boolean, CheckConstraint, DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base
from app.models.types import MoneyType, RateType


class Package(Base):
    """
    Package model.

    indirect_commission_rates maps depth (as a string key, "2", "3", ...)
    to a decimal rate string, e.g. {"2": "0.05", "3": "0.03"}.
    """

    __tablename__ = "packages"
    __table_args__ = (
        CheckConstraint('price >= 0', name='check_package_price_non_negative'),
        CheckConstraint(
            'points >= 0', name='check_package_points_non_negative'
        ),
        CheckConstraint(
            'direct_commission_rate >= 0 AND direct_commission_rate <= 1',
            name='check_package_direct_rate_range',
        ),
    )

    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    price: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    points: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    direct_commission_rate: Mapped[Decimal] = mapped_column(
        RateType, default=Decimal("0"), nullable=False
    )
    indirect_commission_rates: Mapped[dict[str, Any]] = mapped_column(
        JSON, default=dict, nullable=False
    )

    is_active: Mapped[bool] = mapped_column(
        Boolean, default=True, nullable=False
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
        nullable=False,
    )

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<Package(id={self.id}, name={self.name!r}, "
            f"price={self.price})>"
        )
