"""
Page windows over built pipelines.

The total is counted in the same aggregation as the window, through a
``$facet`` appended after every filter/join/sort stage, so ``totalItems``
never depends on which page was asked for.
"""

import math
from dataclasses import dataclass
from typing import Any, Dict, List

from fastapi import Depends, Query

from context import AppContext, get_context
from database import Database

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100


@dataclass(frozen=True)
class PageRequest:
    page: int = 1
    limit: int = DEFAULT_PAGE_SIZE

    @classmethod
    def of(cls, page: int = 1, limit: int = DEFAULT_PAGE_SIZE, max_size: int = MAX_PAGE_SIZE) -> "PageRequest":
        # page/limit below 1 are rejected at the route, oversized pages are clamped here
        return cls(page=max(1, page), limit=max(1, min(limit, max_size)))

    @property
    def skip(self) -> int:
        return (self.page - 1) * self.limit


def page_stages(page: PageRequest) -> List[dict]:
    return [{
        "$facet": {
            "items": [{"$skip": page.skip}, {"$limit": page.limit}],
            "total": [{"$count": "count"}],
        }
    }]


def build_page(items: List[Any], total: int, page: PageRequest) -> Dict[str, Any]:
    total_pages = math.ceil(total / page.limit) if total else 0
    return {
        "items": items,
        "totalItems": total,
        "totalPages": total_pages,
        "currentPage": page.page,
        "pageSize": page.limit,
        "hasNextPage": page.page < total_pages,
        "hasPrevPage": page.page > 1,
    }


def paginate(db: Database, collection: str, pipeline: List[dict], page: PageRequest) -> Dict[str, Any]:
    result = db.aggregate(collection, pipeline + page_stages(page))
    facet = result[0] if result else {"items": [], "total": []}
    total = facet["total"][0]["count"] if facet.get("total") else 0
    return build_page(facet.get("items", []), total, page)


def page_request(page: int = Query(1, ge=1), limit: int = Query(DEFAULT_PAGE_SIZE, ge=1),
                 ctx: AppContext = Depends(get_context)) -> PageRequest:
    return PageRequest.of(page, limit, ctx.settings.max_page_size)
