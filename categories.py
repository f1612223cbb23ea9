import logging
from typing import Any, Dict, List

from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from database import CATEGORIES, POSTS, create_document, serialize, to_object_id
from errors import Conflict, NotFound, ValidationError
from posts import slugify
from schemas import Category, CategoryIn

logger = logging.getLogger(__name__)


def create_category(db: Database, data: CategoryIn) -> Dict[str, Any]:
    name = data.name.strip()
    slug = slugify(name)
    if not slug:
        raise ValidationError("Validation Error", ["name: Category name must contain letters or numbers"])
    if db[CATEGORIES].find_one({"$or": [{"name": name}, {"slug": slug}]}):
        raise Conflict("Category already exists")

    category = Category(name=name, slug=slug, description=data.description, color=data.color)
    try:
        doc = create_document(db, CATEGORIES, category)
    except DuplicateKeyError:
        raise Conflict("Category already exists")
    logger.info("Category created: %s", name)
    return serialize(doc)


def list_categories(db: Database) -> List[Dict[str, Any]]:
    return [serialize(c) for c in db[CATEGORIES].find({"isActive": True}).sort("name", 1)]


def delete_category(db: Database, category_id: str) -> None:
    """Delete a category; refused while any post still references it."""
    oid = to_object_id(category_id)
    category = db[CATEGORIES].find_one({"_id": oid}) if oid else None
    if not category:
        raise NotFound("Category not found")
    in_use = db[POSTS].count_documents({"category": oid})
    if in_use:
        raise Conflict(f"Category is used by {in_use} post(s)")
    db[CATEGORIES].delete_one({"_id": oid})
    logger.info("Category deleted: %s", category["name"])
