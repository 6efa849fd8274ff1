"""Page/per_page query parameters for HR list endpoints."""

from dataclasses import dataclass

from fastapi import Query

MAX_PER_PAGE = 100


@dataclass(frozen=True)
class PaginationParams:
    page: int = 1
    per_page: int = 20

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.per_page

    def page_count(self, total: int) -> int:
        """Number of pages needed for `total` rows (0 when empty)."""
        return -(-total // self.per_page)


def get_pagination(
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=MAX_PER_PAGE),
) -> PaginationParams:
    return PaginationParams(page=page, per_page=per_page)
