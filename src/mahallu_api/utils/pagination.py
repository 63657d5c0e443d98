"""Pagination parameters and the standard response envelope."""

from dataclasses import dataclass
import math
from typing import Any, Dict, List, Optional

from bson import ObjectId
from fastapi import Query
from fastapi.encoders import jsonable_encoder

from mahallu_api.config import settings


@dataclass(frozen=True)
class PageParams:
    page: int
    limit: int

    @property
    def skip(self) -> int:
        return (self.page - 1) * self.limit


def clamp_page_params(page: Optional[int], limit: Optional[int]) -> PageParams:
    """Clamp raw values: page >= 1, 1 <= limit <= MAX_PAGE_LIMIT."""
    page = max(1, page or 1)
    limit = min(settings.MAX_PAGE_LIMIT, max(1, limit or settings.DEFAULT_PAGE_LIMIT))
    return PageParams(page=page, limit=limit)


def get_page_params(
    page: Optional[int] = Query(None, description="1-based page number"),
    limit: Optional[int] = Query(None, description="Page size"),
) -> PageParams:
    """FastAPI dependency for list endpoints."""
    return clamp_page_params(page, limit)


def serialize(data: Any) -> Any:
    """JSON-safe copy of documents (ObjectId -> str, datetime -> ISO)."""
    return jsonable_encoder(data, custom_encoder={ObjectId: str})


def success_response(data: Any = None, message: Optional[str] = None) -> Dict[str, Any]:
    body: Dict[str, Any] = {"success": True}
    if message:
        body["message"] = message
    if data is not None:
        body["data"] = serialize(data)
    return body


def paginated_response(items: List[Dict[str, Any]], total: int, params: PageParams) -> Dict[str, Any]:
    return {
        "success": True,
        "data": serialize(items),
        "pagination": {
            "page": params.page,
            "limit": params.limit,
            "total": total,
            "pages": math.ceil(total / params.limit),
        },
    }
