"""Read access to the taxonomy reference tables.

Rows are fetched fresh on every call and returned as frozen value types in
primary-key order, which is the iteration order the classifier relies on.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from sample_library.models.taxonomy import Category, Manufacturer, Subcategory


@dataclass(frozen=True)
class ManufacturerRow:
    id: int
    name: str


@dataclass(frozen=True)
class CategoryRow:
    id: int
    name: str


@dataclass(frozen=True)
class SubcategoryRow:
    id: int
    category_id: int
    name: str


class TaxonomyRepository(Protocol):
    async def list_manufacturers(self) -> list[ManufacturerRow]: ...

    async def list_categories(self) -> list[CategoryRow]: ...

    async def list_subcategories(self, category_id: int) -> list[SubcategoryRow]: ...


class SqlTaxonomyRepository:
    """``TaxonomyRepository`` reading through an open session."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def list_manufacturers(self) -> list[ManufacturerRow]:
        result = await self.session.execute(
            select(Manufacturer.id, Manufacturer.name).order_by(Manufacturer.id)
        )
        return [ManufacturerRow(id=row.id, name=row.name) for row in result]

    async def list_categories(self) -> list[CategoryRow]:
        result = await self.session.execute(
            select(Category.id, Category.name).order_by(Category.id)
        )
        return [CategoryRow(id=row.id, name=row.name) for row in result]

    async def list_subcategories(self, category_id: int) -> list[SubcategoryRow]:
        result = await self.session.execute(
            select(Subcategory.id, Subcategory.category_id, Subcategory.name)
            .where(Subcategory.category_id == category_id)
            .order_by(Subcategory.id)
        )
        return [
            SubcategoryRow(id=row.id, category_id=row.category_id, name=row.name)
            for row in result
        ]
