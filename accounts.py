"""
User accounts: registration, login, profile edits, password changes and
admin-only role/active-flag updates.
"""
import logging
from typing import Any, Dict, Optional, Tuple

from pymongo import ReturnDocument
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

import config
from auth import Identity, hash_password, issue_token, validate_password, validate_username, verify_password
from database import USERS, create_document, now, serialize, to_object_id
from errors import Conflict, NotFound, Unauthorized, ValidationError, duplicate_field
from schemas import ChangePasswordIn, ProfileIn, RegisterIn, User, UserAdminIn

logger = logging.getLogger(__name__)

USER_PROJECTION = {"password": 0, "algo": 0}


def public_user(doc: Dict[str, Any]) -> Dict[str, Any]:
    """Serialize a user document without its credentials."""
    return serialize({k: v for k, v in doc.items() if k not in USER_PROJECTION})


def get_user(db: Database, user_id: str) -> Dict[str, Any]:
    oid = to_object_id(user_id)
    user = db[USERS].find_one({"_id": oid}, USER_PROJECTION) if oid else None
    if not user:
        raise NotFound("User not found")
    return public_user(user)


def register(db: Database, data: RegisterIn) -> Tuple[Dict[str, Any], str]:
    errors = validate_username(data.username) + validate_password(data.password)
    if errors:
        raise ValidationError("Validation Error", errors)

    email = data.email.lower()
    existing = db[USERS].find_one({"$or": [{"email": email}, {"username": data.username}]})
    if existing:
        field = "Email" if existing.get("email") == email else "Username"
        raise Conflict(f"{field} already exists")

    user = User(
        username=data.username,
        email=email,
        password=hash_password(data.password, config.PASSWORD_ALGO),
        algo=config.PASSWORD_ALGO,
        firstName=data.firstName,
        lastName=data.lastName,
    )
    try:
        doc = create_document(db, USERS, user)
    except DuplicateKeyError as exc:
        raise Conflict(f"{duplicate_field(exc)} already exists")

    logger.info("New user registered: %s", email)
    return public_user(doc), issue_token(Identity.from_user(doc))


def login(db: Database, email: str, password: str) -> Tuple[Dict[str, Any], str]:
    user = db[USERS].find_one({"email": email.lower()})
    if not user or not user.get("isActive", True):
        raise Unauthorized("Invalid credentials")
    if not verify_password(password, user.get("password"), user.get("algo", "argon2")):
        logger.warning("Failed login for %s", email)
        raise Unauthorized("Invalid credentials")

    logger.info("User logged in: %s", user["email"])
    return public_user(user), issue_token(Identity.from_user(user))


def update_profile(db: Database, identity: Identity, data: ProfileIn) -> Dict[str, Any]:
    changes = data.model_dump(exclude_unset=True)
    changes["updatedAt"] = now()
    user = db[USERS].find_one_and_update(
        {"_id": identity.object_id},
        {"$set": changes},
        projection=USER_PROJECTION,
        return_document=ReturnDocument.AFTER,
    )
    if not user:
        raise NotFound("User not found")
    logger.info("User profile updated: %s", identity.email)
    return public_user(user)


def change_password(db: Database, identity: Identity, data: ChangePasswordIn) -> None:
    errors = validate_password(data.newPassword)
    if errors:
        raise ValidationError("New password does not meet requirements", errors)

    user = db[USERS].find_one({"_id": identity.object_id})
    if not user:
        raise NotFound("User not found")
    if not verify_password(data.currentPassword, user.get("password"), user.get("algo", "argon2")):
        raise ValidationError("Current password is incorrect")

    db[USERS].update_one(
        {"_id": user["_id"]},
        {"$set": {
            "password": hash_password(data.newPassword, config.PASSWORD_ALGO),
            "algo": config.PASSWORD_ALGO,
            "updatedAt": now(),
        }},
    )
    logger.info("Password changed for user: %s", identity.email)


def admin_update(db: Database, user_id: str, data: UserAdminIn) -> Dict[str, Any]:
    oid = to_object_id(user_id)
    changes: Dict[str, Any] = {}
    if data.role is not None:
        changes["role"] = data.role.value
    if data.isActive is not None:
        changes["isActive"] = data.isActive
    changes["updatedAt"] = now()

    user: Optional[Dict[str, Any]] = None
    if oid:
        user = db[USERS].find_one_and_update(
            {"_id": oid},
            {"$set": changes},
            projection=USER_PROJECTION,
            return_document=ReturnDocument.AFTER,
        )
    if not user:
        raise NotFound("User not found")
    logger.info("User %s updated by admin: %s", user_id, sorted(k for k in changes if k != "updatedAt"))
    return public_user(user)
