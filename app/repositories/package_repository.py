"""
Package repository.

Data access layer for Package model.
"""

from sqlalchemy.ext.asyncio import AsyncSession

from app.models.package import Package
from app.repositories.base import BaseRepository


class PackageRepository(BaseRepository[Package]):
    """Package repository."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize package repository."""
        super().__init__(Package, session)
