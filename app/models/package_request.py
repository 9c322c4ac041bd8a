"""
PackageRequest model.

A user's request to buy a package, decided by an administrator.
"""

from datetime import UTC, datetime
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import Base
from app.models.enums import PackageRequestStatus

if TYPE_CHECKING:
    from app.models.package import Package
    from app.models.user import User


class PackageRequest(Base):
    """
    PackageRequest entity.

    Status lifecycle: pending -> approved | failed. Terminal statuses are
    only left through reconciliation (failed -> approved).
    """

    __tablename__ = "package_requests"

    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id"), nullable=False, index=True
    )
    package_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("packages.id"), nullable=False
    )

    status: Mapped[str] = mapped_column(
        String(20),
        default=PackageRequestStatus.PENDING.value,
        nullable=False,
        index=True,
    )
    admin_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    failure_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    processed_by: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # Token of the approval unit of work that wrote this request's ledger
    approval_token: Mapped[str | None] = mapped_column(
        String(64), nullable=True
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
    processed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    user: Mapped["User"] = relationship("User", lazy="noload")
    package: Mapped["Package"] = relationship("Package", lazy="noload")

    @property
    def is_pending(self) -> bool:
        return self.status == PackageRequestStatus.PENDING

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<PackageRequest(id={self.id}, user_id={self.user_id}, "
            f"package_id={self.package_id}, status={self.status!r})>"
        )
