"""
Pagination helper shared by the list endpoints.

Returns the envelope the front end already consumes:
{"total_pages", "total_docs_count", "current_page", "docs"}
"""
import math
from typing import Any, Callable, Dict


def paginate(query, page: int = 1, per_page: int = 10, serializer: Callable[[Any], Any] = None) -> Dict[str, Any]:
    page = max(int(page or 1), 1)
    per_page = max(int(per_page or 10), 1)

    total = query.count()
    items = query.offset((page - 1) * per_page).limit(per_page).all()

    return {
        "total_pages": math.ceil(total / per_page) or 1,
        "total_docs_count": total,
        "current_page": page,
        "docs": [serializer(item) for item in items] if serializer else items,
    }
