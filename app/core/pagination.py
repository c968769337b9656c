from fastapi import Query

from app.core.schemas import PaginationParams


def pagination_params(default_limit: int = 20):
    """Dependency factory for page/limit query parameters (page >= 1, 1 <= limit <= 100)."""

    def _params(
        page: int = Query(1, ge=1, description="1-based page number"),
        limit: int = Query(default_limit, ge=1, le=100, description="Items per page (max 100)"),
    ) -> PaginationParams:
        return PaginationParams(page=page, limit=limit)

    return _params
