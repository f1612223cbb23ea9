"""
Filtered, sorted and paginated listings of posts and users.
"""
import re
from typing import Any, Dict, List, Optional, Tuple

from pymongo import ASCENDING, DESCENDING
from pymongo.collection import Collection
from pymongo.database import Database

from accounts import USER_PROJECTION, public_user
from auth import Capability, Identity
from database import POSTS, USERS, to_object_id
from errors import ValidationError
from posts import populate_posts, visibility_clause
from schemas import PostFilters, PostStatus, UserFilters

USER_SEARCH_FIELDS = ("username", "email", "firstName", "lastName")


def search_clause(term: str, fields) -> Dict[str, Any]:
    pattern = {"$regex": re.escape(term), "$options": "i"}
    return {"$or": [{f: dict(pattern)} for f in fields]}


def sort_spec(sort_by: str, sort_order: str) -> List[Tuple[str, int]]:
    direction = DESCENDING if sort_order == "desc" else ASCENDING
    return [(sort_by, direction), ("_id", direction)]


def paginate(collection: Collection, query: Dict[str, Any], sort: List[Tuple[str, int]],
             page: int, limit: int, projection: Optional[Dict[str, int]] = None) -> Tuple[List[dict], dict]:
    total = collection.count_documents(query)
    cursor = collection.find(query, projection).sort(sort).skip((page - 1) * limit).limit(limit)
    items = list(cursor)
    total_pages = (total + limit - 1) // limit
    return items, {
        "currentPage": page,
        "totalPages": total_pages,
        "totalCount": total,
        "hasNextPage": page < total_pages,
        "hasPrevPage": page > 1,
        "limit": limit,
    }


def _object_id_filter(value: Optional[str], field: str):
    if not value:
        return None
    oid = to_object_id(value)
    if oid is None:
        raise ValidationError("Validation Error", [f"{field}: Invalid {field} ID"])
    return oid


def build_post_query(filters: PostFilters, requester: Optional[Identity]) -> Dict[str, Any]:
    clauses: List[Dict[str, Any]] = []
    sees_all = requester is not None and requester.can(Capability.VIEW_ANY_POST)

    if filters.status:
        clauses.append({"status": PostStatus(filters.status).value})
        if not sees_all and filters.status != PostStatus.PUBLISHED:
            clauses.append(visibility_clause(requester))
    elif not sees_all:
        clauses.append({"status": PostStatus.PUBLISHED.value})

    category = _object_id_filter(filters.category, "category")
    if category is not None:
        clauses.append({"category": category})
    author = _object_id_filter(filters.author, "author")
    if author is not None:
        clauses.append({"author": author})

    if filters.search:
        clauses.append(search_clause(filters.search, ("title", "content", "tags")))

    if not clauses:
        return {}
    if len(clauses) == 1:
        return clauses[0]
    return {"$and": clauses}


def list_posts(db: Database, filters: PostFilters, requester: Optional[Identity] = None) -> dict:
    query = build_post_query(filters, requester)
    docs, pagination = paginate(
        db[POSTS], query, sort_spec(filters.sortBy, filters.sortOrder), filters.page, filters.limit
    )
    return {"posts": populate_posts(db, docs, requester), "pagination": pagination}


def list_users(db: Database, filters: UserFilters) -> dict:
    query = search_clause(filters.search, USER_SEARCH_FIELDS) if filters.search else {}
    docs, pagination = paginate(
        db[USERS], query, sort_spec(filters.sortBy, filters.sortOrder), filters.page, filters.limit,
        projection=USER_PROJECTION,
    )
    return {"users": [public_user(d) for d in docs], "pagination": pagination}
