"""
Credentials and access control.

Password hashing (argon2 by default, bcrypt for older accounts), signed
session tokens (PyJWT, HS256) and the FastAPI dependencies that resolve
a bearer token into the calling identity.
"""
import logging
import re
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Dict, FrozenSet, List, Optional

import jwt  # PyJWT
from argon2 import PasswordHasher as Argon2Hasher
from argon2.exceptions import InvalidHashError, VerificationError
from bson import ObjectId
from fastapi import Depends, Request
from passlib.hash import bcrypt as bcrypt_hasher
from pydantic import BaseModel
from pymongo.database import Database

import config
from database import USERS, get_db, to_object_id
from errors import Forbidden, InvalidToken, TokenExpired, Unauthorized
from schemas import Role

logger = logging.getLogger(__name__)

argon2_hasher = Argon2Hasher()

USERNAME_RE = re.compile(r"^[a-zA-Z0-9_]+$")


# -------------------------------------------------------------------
# Passwords
# -------------------------------------------------------------------
def hash_password(password: str, algo: str = config.PASSWORD_ALGO) -> str:
    if algo == "bcrypt":
        return bcrypt_hasher.hash(password)
    return argon2_hasher.hash(password)


def verify_password(password: str, stored: Optional[str], algo: str = "argon2") -> bool:
    if not stored:
        return False
    if algo == "bcrypt":
        try:
            return bcrypt_hasher.verify(password, stored)
        except ValueError:
            return False
    try:
        return argon2_hasher.verify(stored, password)
    except (VerificationError, InvalidHashError):
        return False


def validate_password(password: Optional[str]) -> List[str]:
    errors = []
    if not password or len(password) < 6:
        errors.append("Password must be at least 6 characters long")
    if password and len(password) > 128:
        errors.append("Password must be less than 128 characters")
    if password and not re.search(r"[a-z]", password):
        errors.append("Password must contain at least one lowercase letter")
    if password and not re.search(r"[A-Z]", password):
        errors.append("Password must contain at least one uppercase letter")
    if password and not re.search(r"\d", password):
        errors.append("Password must contain at least one number")
    return errors


def validate_username(username: Optional[str]) -> List[str]:
    errors = []
    if not username or len(username) < 3:
        errors.append("Username must be at least 3 characters long")
    if username and len(username) > 30:
        errors.append("Username must be less than 30 characters")
    if username and not USERNAME_RE.match(username):
        errors.append("Username can only contain letters, numbers, and underscores")
    return errors


# -------------------------------------------------------------------
# Identity, roles and capabilities
# -------------------------------------------------------------------
class Capability(str, Enum):
    VIEW_ANY_POST = "view_any_post"
    MANAGE_ANY_POST = "manage_any_post"
    MANAGE_USERS = "manage_users"
    MANAGE_CATEGORIES = "manage_categories"


ROLE_CAPABILITIES: Dict[Role, FrozenSet[Capability]] = {
    Role.USER: frozenset(),
    Role.ADMIN: frozenset(Capability),
}


def has_capability(role: Role, capability: Capability) -> bool:
    return capability in ROLE_CAPABILITIES.get(role, frozenset())


class Identity(BaseModel):
    id: str
    username: str
    email: str
    role: Role = Role.USER

    @property
    def object_id(self) -> ObjectId:
        return ObjectId(self.id)

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN

    def can(self, capability: Capability) -> bool:
        return has_capability(self.role, capability)

    @classmethod
    def from_user(cls, user: dict) -> "Identity":
        return cls(
            id=str(user["_id"]),
            username=user["username"],
            email=user["email"],
            role=Role(user.get("role", Role.USER.value)),
        )


def is_owner(identity: Optional[Identity], owner_id) -> bool:
    return identity is not None and owner_id is not None and identity.id == str(owner_id)


def can_modify(identity: Optional[Identity], owner_id) -> bool:
    """Authors may modify their own resources; admins may modify any."""
    if identity is None:
        return False
    return is_owner(identity, owner_id) or identity.can(Capability.MANAGE_ANY_POST)


# -------------------------------------------------------------------
# Tokens
# -------------------------------------------------------------------
def issue_token(identity: Identity, expires_in: Optional[timedelta] = None) -> str:
    now = datetime.now(timezone.utc)
    exp = now + (expires_in if expires_in is not None else timedelta(days=config.JWT_EXPIRES_DAYS))
    payload = {
        "id": identity.id,
        "username": identity.username,
        "email": identity.email,
        "role": identity.role.value,
        "iat": int(now.timestamp()),
        "exp": int(exp.timestamp()),
    }
    return jwt.encode(payload, config.JWT_SECRET, algorithm=config.JWT_ALGORITHM)


def verify_token(token: str) -> dict:
    try:
        claims = jwt.decode(
            token,
            config.JWT_SECRET,
            algorithms=[config.JWT_ALGORITHM],
            options={"require": ["exp", "id"]},
        )
    except jwt.ExpiredSignatureError:
        raise TokenExpired()
    except jwt.InvalidTokenError:
        raise InvalidToken()
    if claims.get("role") not in {r.value for r in Role}:
        raise InvalidToken()
    return claims


def extract_token(header: Optional[str]) -> Optional[str]:
    if not header:
        return None
    parts = header.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        return None
    return parts[1]


# -------------------------------------------------------------------
# Guards (FastAPI dependencies)
# -------------------------------------------------------------------
def resolve_identity(db: Database, header: Optional[str]) -> Identity:
    token = extract_token(header)
    if not token:
        raise Unauthorized("Access token is required")
    try:
        claims = verify_token(token)
    except TokenExpired:
        raise Unauthorized("Access token has expired")
    except InvalidToken:
        raise Unauthorized("Invalid access token")

    user_id = to_object_id(claims.get("id"))
    user = db[USERS].find_one({"_id": user_id}) if user_id else None
    if not user:
        raise Unauthorized("User not found")
    if not user.get("isActive", True):
        raise Unauthorized("User account is deactivated")
    return Identity.from_user(user)


def require_auth(request: Request, db: Database = Depends(get_db)) -> Identity:
    try:
        identity = resolve_identity(db, request.headers.get("Authorization"))
    except Unauthorized as exc:
        logger.warning("Authentication failed on %s %s: %s", request.method, request.url.path, exc.message)
        raise
    request.state.user = identity
    return identity


def optional_auth(request: Request, db: Database = Depends(get_db)) -> Optional[Identity]:
    try:
        identity = resolve_identity(db, request.headers.get("Authorization"))
    except Unauthorized as exc:
        logger.debug("Continuing without identity: %s", exc.message)
        return None
    request.state.user = identity
    return identity


def require_role(*roles: Role):
    allowed = frozenset(roles)

    def checker(identity: Identity = Depends(require_auth)) -> Identity:
        if identity.role not in allowed:
            raise Forbidden("Insufficient permissions")
        return identity

    return checker


def require_capability(capability: Capability):
    def checker(identity: Identity = Depends(require_auth)) -> Identity:
        if not identity.can(capability):
            raise Forbidden("Insufficient permissions")
        return identity

    return checker
