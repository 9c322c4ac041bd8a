"""
Earning model.

Immutable ledger entry recording one commission payout.
"""

from datetime import UTC, datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import Base
from app.models.types import MoneyType

if TYPE_CHECKING:
    from app.models.user import User


class Earning(Base):
    """
    Earning entity.

    At most one entry per (package_request_id, user_id, type);
    idempotency_key encodes the same triple as "{request}:{user}:{type}".
    """

    __tablename__ = "earnings"
    __table_args__ = (
        UniqueConstraint(
            'package_request_id', 'user_id', 'type',
            name='uq_earning_request_user_type',
        ),
        CheckConstraint('amount > 0', name='check_earning_amount_positive'),
        CheckConstraint('depth >= 1', name='check_earning_depth_positive'),
    )

    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id"), nullable=False, index=True
    )
    package_request_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("package_requests.id"),
        nullable=False,
        index=True,
    )

    type: Mapped[str] = mapped_column(String(32), nullable=False)
    depth: Mapped[int] = mapped_column(Integer, nullable=False)
    amount: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)

    idempotency_key: Mapped[str] = mapped_column(
        String(128), unique=True, nullable=False
    )
    approval_token: Mapped[str | None] = mapped_column(
        String(64), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )

    user: Mapped["User"] = relationship(
        "User", back_populates="earnings", lazy="noload"
    )

    @staticmethod
    def build_idempotency_key(
        package_request_id: int, user_id: int, earning_type: str
    ) -> str:
        """Key identifying one payout of one request."""
        return f"{package_request_id}:{user_id}:{earning_type}"

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<Earning(id={self.id}, user_id={self.user_id}, "
            f"request={self.package_request_id}, type={self.type!r}, "
            f"amount={self.amount})>"
        )
