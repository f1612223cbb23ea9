"""
Post lifecycle: creation, edits and status changes, deletion, reads with
view counting, likes and comments.

Status moves are plain field writes (draft, published, archived in any
order). ``slug`` is derived once from the title at creation. ``publishedAt``
is stamped the first time a post is published and never rewritten.
Likes, comments and view counts are changed with single-document atomic
updates.
"""
import logging
import re
from typing import Any, Dict, Iterable, List, Optional

from bson import ObjectId
from pymongo import ReturnDocument
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from auth import Capability, Identity, can_modify
from database import CATEGORIES, POSTS, USERS, now, serialize, to_object_id
from errors import Conflict, Forbidden, InvalidCategory, NotFound, ValidationError
from schemas import Post, PostStatus

logger = logging.getLogger(__name__)

TITLE_MIN, TITLE_MAX = 5, 100
CONTENT_MIN, CONTENT_MAX = 10, 5000
EXCERPT_MAX = 200
COMMENT_MAX = 500

AUTHOR_FIELDS = ("username", "firstName", "lastName", "avatar")
CATEGORY_FIELDS = ("name", "slug", "color")


def slugify(text: str) -> str:
    s = re.sub(r"[^a-z0-9]+", "-", text.lower())
    return s.strip("-")


def normalize_tags(tags: Iterable[str]) -> List[str]:
    out: List[str] = []
    for tag in tags or []:
        t = str(tag).strip().lower()
        if t and t not in out:
            out.append(t)
    return out


def validate_post_fields(fields: Dict[str, Any], partial: bool = False) -> List[str]:
    """Return field-level errors for title/content/excerpt bounds."""
    errors = []
    if "title" in fields or not partial:
        title = (fields.get("title") or "").strip()
        if not TITLE_MIN <= len(title) <= TITLE_MAX:
            errors.append(f"title: Title must be between {TITLE_MIN} and {TITLE_MAX} characters")
    if "content" in fields or not partial:
        content = fields.get("content") or ""
        if not CONTENT_MIN <= len(content) <= CONTENT_MAX:
            errors.append(f"content: Content must be between {CONTENT_MIN} and {CONTENT_MAX} characters")
    excerpt = fields.get("excerpt")
    if excerpt is not None and len(excerpt) > EXCERPT_MAX:
        errors.append(f"excerpt: Excerpt must be less than {EXCERPT_MAX} characters")
    return errors


def resolve_category(db: Database, category_id: Optional[str]) -> Optional[ObjectId]:
    if not category_id:
        return None
    oid = to_object_id(category_id)
    if oid is None:
        raise InvalidCategory("Invalid category ID")
    if not db[CATEGORIES].find_one({"_id": oid}, {"_id": 1}):
        raise InvalidCategory("Category not found")
    return oid


# -------------------------------------------------------------------
# Serialization
# -------------------------------------------------------------------
def _summaries(db: Database, collection: str, ids: Iterable[ObjectId], fields) -> Dict[ObjectId, dict]:
    wanted = list({i for i in ids if i is not None})
    if not wanted:
        return {}
    projection = {f: 1 for f in fields}
    return {d["_id"]: d for d in db[collection].find({"_id": {"$in": wanted}}, projection)}


def populate_posts(db: Database, docs: List[dict], requester: Optional[Identity] = None) -> List[dict]:
    """Attach author/category/comment-author summaries and derived counters."""
    user_ids = [d.get("author") for d in docs]
    for d in docs:
        user_ids.extend(c.get("user") for c in d.get("comments", []))
    users = _summaries(db, USERS, user_ids, AUTHOR_FIELDS)
    categories = _summaries(db, CATEGORIES, (d.get("category") for d in docs), CATEGORY_FIELDS)

    out = []
    for d in docs:
        item = dict(d)
        likes = item.get("likes", [])
        comments = item.get("comments", [])
        item["author"] = users.get(item.get("author"), item.get("author"))
        item["category"] = categories.get(item.get("category"), item.get("category"))
        item["comments"] = [dict(c, user=users.get(c.get("user"), c.get("user"))) for c in comments]
        item["likeCount"] = len(likes)
        item["commentCount"] = len(comments)
        if requester is not None:
            item["isLiked"] = any(str(like.get("user")) == requester.id for like in likes)
        out.append(serialize(item))
    return out


def present(db: Database, doc: dict, requester: Optional[Identity] = None) -> dict:
    return populate_posts(db, [doc], requester)[0]


# -------------------------------------------------------------------
# Lifecycle
# -------------------------------------------------------------------
def _load_for_write(db: Database, requester: Identity, post_id: str, action: str) -> dict:
    oid = to_object_id(post_id)
    post = db[POSTS].find_one({"_id": oid}) if oid else None
    if not post:
        raise NotFound("Post not found")
    if not can_modify(requester, post.get("author")):
        raise Forbidden(f"Not authorized to {action} this post")
    return post


def _stamp_published(db: Database, oid: ObjectId) -> None:
    db[POSTS].update_one(
        {"_id": oid, "status": PostStatus.PUBLISHED.value, "publishedAt": None},
        {"$set": {"publishedAt": now()}},
    )


def create_post(db: Database, author: Identity, fields: Dict[str, Any]) -> dict:
    errors = validate_post_fields(fields)
    if errors:
        raise ValidationError("Validation Error", errors)
    category = resolve_category(db, fields.get("category"))

    title = fields["title"].strip()
    slug = slugify(title)
    if not slug:
        raise ValidationError("Validation Error", ["title: Title must contain letters or numbers"])
    status = fields.get("status") or PostStatus.DRAFT
    post = Post(
        title=title,
        content=fields["content"],
        author=author.object_id,
        category=category,
        tags=normalize_tags(fields.get("tags") or []),
        slug=slug,
        excerpt=fields.get("excerpt"),
        featuredImage=fields.get("featuredImage") or "",
        status=status,
    )
    doc = post.model_dump()
    stamp = now()
    doc.update(createdAt=stamp, updatedAt=stamp)
    if doc["status"] == PostStatus.PUBLISHED.value:
        doc["publishedAt"] = stamp
    try:
        doc["_id"] = db[POSTS].insert_one(doc).inserted_id
    except DuplicateKeyError:
        raise Conflict(f"A post with slug '{doc['slug']}' already exists")

    logger.info("New post created: %s by %s", doc["title"], author.email)
    return present(db, doc, author)


def update_post(db: Database, requester: Identity, post_id: str, fields: Dict[str, Any]) -> dict:
    post = _load_for_write(db, requester, post_id, "update")

    changes: Dict[str, Any] = {}
    errors = validate_post_fields(fields, partial=True)
    if errors:
        raise ValidationError("Validation Error", errors)

    if "title" in fields:
        changes["title"] = fields["title"].strip()
    if "content" in fields:
        changes["content"] = fields["content"]
    if "category" in fields:
        current = post.get("category")
        if fields["category"] and str(current) != fields["category"]:
            changes["category"] = resolve_category(db, fields["category"])
        elif not fields["category"]:
            changes["category"] = None
    if "tags" in fields:
        changes["tags"] = normalize_tags(fields["tags"])
    if "excerpt" in fields:
        changes["excerpt"] = fields["excerpt"]
    if "featuredImage" in fields:
        changes["featuredImage"] = fields["featuredImage"] or ""
    if fields.get("status"):
        changes["status"] = PostStatus(fields["status"]).value
    changes["updatedAt"] = now()

    db[POSTS].update_one({"_id": post["_id"]}, {"$set": changes})
    if changes.get("status") == PostStatus.PUBLISHED.value:
        _stamp_published(db, post["_id"])

    updated = db[POSTS].find_one({"_id": post["_id"]})
    if updated is None:
        raise NotFound("Post not found")
    logger.info("Post updated: %s by %s", updated["title"], requester.email)
    return present(db, updated, requester)


def remove_post(db: Database, requester: Identity, post_id: str) -> None:
    post = _load_for_write(db, requester, post_id, "delete")
    db[POSTS].delete_one({"_id": post["_id"]})
    logger.info("Post deleted: %s by %s", post["title"], requester.email)


def visibility_clause(requester: Optional[Identity]) -> Dict[str, Any]:
    """Statuses a caller may read: everything for admins, published or own posts otherwise."""
    if requester is not None and requester.can(Capability.VIEW_ANY_POST):
        return {}
    if requester is None:
        return {"status": PostStatus.PUBLISHED.value}
    return {"$or": [{"status": PostStatus.PUBLISHED.value}, {"author": requester.object_id}]}


def view_post(db: Database, identifier: str, requester: Optional[Identity] = None) -> dict:
    oid = to_object_id(identifier)
    lookup = {"_id": oid} if oid else {"slug": identifier.lower()}
    clause = visibility_clause(requester)
    query = {"$and": [lookup, clause]} if clause else lookup

    post = db[POSTS].find_one_and_update(
        query,
        {"$inc": {"views": 1}},
        return_document=ReturnDocument.AFTER,
    )
    if not post:
        raise NotFound("Post not found")
    return present(db, post, requester)


def toggle_like(db: Database, requester: Identity, post_id: str) -> dict:
    oid = to_object_id(post_id)
    if oid is None:
        raise NotFound("Post not found")
    uid = requester.object_id

    post = db[POSTS].find_one_and_update(
        {"_id": oid, "likes.user": uid},
        {"$pull": {"likes": {"user": uid}}},
        return_document=ReturnDocument.AFTER,
    )
    if post is None:
        post = db[POSTS].find_one_and_update(
            {"_id": oid, "likes.user": {"$ne": uid}},
            {"$push": {"likes": {"user": uid, "createdAt": now()}}},
            return_document=ReturnDocument.AFTER,
        )
    if post is None:
        # a concurrent toggle by the same user won the race; report current state
        post = db[POSTS].find_one({"_id": oid})
    if post is None:
        raise NotFound("Post not found")

    likes = post.get("likes", [])
    return {
        "likeCount": len(likes),
        "isLiked": any(like.get("user") == uid for like in likes),
    }


def add_comment(db: Database, requester: Identity, post_id: str, content: Optional[str]) -> dict:
    text = (content or "").strip()
    if not text:
        raise ValidationError("Comment content is required", ["content: Comment content is required"])
    if len(text) > COMMENT_MAX:
        raise ValidationError(
            "Validation Error",
            [f"content: Comment must be between 1 and {COMMENT_MAX} characters"],
        )

    oid = to_object_id(post_id)
    comment = {"_id": ObjectId(), "user": requester.object_id, "content": text, "createdAt": now()}
    result = db[POSTS].update_one({"_id": oid}, {"$push": {"comments": comment}}) if oid else None
    if result is None or result.matched_count == 0:
        raise NotFound("Post not found")

    users = _summaries(db, USERS, [requester.object_id], AUTHOR_FIELDS)
    return serialize(dict(comment, user=users.get(requester.object_id, requester.object_id)))
