"""
Offset pagination for list queries
"""
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import ValidationException

T = TypeVar("T")

DEFAULT_PAGE_LIMIT = 20
MAX_PAGE_LIMIT = 50


@dataclass
class Page(Generic[T]):
    items: list[T] = field(default_factory=list)
    total: int = 0
    page: int = 1
    limit: int = DEFAULT_PAGE_LIMIT

    @property
    def total_pages(self) -> int:
        return max(1, (self.total + self.limit - 1) // self.limit)


def validate_page_params(page: int, limit: int) -> None:
    if page < 1:
        raise ValidationException("page must be at least 1", field="page")
    if limit < 1 or limit > MAX_PAGE_LIMIT:
        raise ValidationException(f"limit must be between 1 and {MAX_PAGE_LIMIT}", field="limit")


async def fetch_page(
    db: AsyncSession,
    model: Any,
    where: list,
    order_by: list,
    page: int = 1,
    limit: int = DEFAULT_PAGE_LIMIT,
) -> Page:
    """Count and fetch one page of `model` rows matching `where`"""
    validate_page_params(page, limit)

    count_result = await db.execute(
        select(func.count(model.id)).where(*where)
    )
    total = count_result.scalar() or 0

    offset = (page - 1) * limit
    result = await db.execute(
        select(model)
        .where(*where)
        .order_by(*order_by)
        .offset(offset)
        .limit(limit)
    )
    return Page(items=list(result.scalars().all()), total=total, page=page, limit=limit)
