"""
User model.

Member of the referral tree. Each user has at most one referrer.
"""

from datetime import UTC, datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    String,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import Base
from app.models.types import MoneyType

if TYPE_CHECKING:
    from app.models.earning import Earning
    from app.models.package import Package
    from app.models.rank import Rank


class User(Base):
    """User model - members of the referral tree."""

    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint(
            'balance >= 0', name='check_user_balance_non_negative'
        ),
        CheckConstraint(
            'total_earnings >= 0',
            name='check_user_total_earnings_non_negative'
        ),
        CheckConstraint(
            'points >= 0', name='check_user_points_non_negative'
        ),
    )

    # Primary key
    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )

    # Identity
    username: Mapped[str] = mapped_column(
        String(255), unique=True, index=True, nullable=False
    )

    # Referral link: id-based pointer plus the username the user signed
    # up with. Older rows may carry only referred_by.
    referrer_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("users.id"), nullable=True, index=True
    )
    referred_by: Mapped[str | None] = mapped_column(
        String(255), nullable=True, index=True
    )
    referral_count: Mapped[int] = mapped_column(
        Integer, default=0, nullable=False
    )

    # Rank progress
    points: Mapped[int] = mapped_column(
        Integer, default=0, nullable=False
    )
    rank_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("ranks.id"), nullable=True
    )

    # Financial
    balance: Mapped[Decimal] = mapped_column(
        MoneyType, default=Decimal("0"), nullable=False
    )
    total_earnings: Mapped[Decimal] = mapped_column(
        MoneyType, default=Decimal("0"), nullable=False
    )

    # Granted package
    current_package_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("packages.id"), nullable=True
    )
    package_expires_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # Status
    is_active: Mapped[bool] = mapped_column(
        Boolean, default=True, nullable=False
    )
    is_banned: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )

    # Timestamps
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

    # Relationships
    referrer: Mapped["User | None"] = relationship(
        "User", remote_side="User.id", lazy="noload"
    )
    rank: Mapped["Rank | None"] = relationship("Rank", lazy="noload")
    current_package: Mapped["Package | None"] = relationship(
        "Package", lazy="noload"
    )
    earnings: Mapped[list["Earning"]] = relationship(
        "Earning", back_populates="user", lazy="noload"
    )

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<User(id={self.id}, username={self.username!r}, "
            f"referrer_id={self.referrer_id})>"
        )
