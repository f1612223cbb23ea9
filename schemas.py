"""
Database Schemas for the Blog API

Each Pydantic model maps to a MongoDB collection using the lowercase
class name as the collection name. Field names are camelCase so stored
documents match what the API returns.
"""
from datetime import datetime
from enum import Enum
from typing import List, Literal, Optional

from bson import ObjectId
from pydantic import BaseModel, ConfigDict, EmailStr, Field

HEX_COLOR_PATTERN = r"^#([A-Fa-f0-9]{6}|[A-Fa-f0-9]{3})$"
DEFAULT_CATEGORY_COLOR = "#3B82F6"


class Role(str, Enum):
    USER = "user"
    ADMIN = "admin"


class PostStatus(str, Enum):
    DRAFT = "draft"
    PUBLISHED = "published"
    ARCHIVED = "archived"


# -------------------------------------------------------------------
# Collections
# -------------------------------------------------------------------
class User(BaseModel):
    """
    Collection: "user"
    """
    model_config = ConfigDict(use_enum_values=True)

    username: str = Field(..., description="Unique handle, 3-30 chars")
    email: EmailStr = Field(..., description="Unique email address")
    password: str = Field(..., description="Password hash (argon2/bcrypt), never serialized")
    algo: str = Field("argon2", description="Scheme used for the password hash")
    role: Role = Role.USER
    isActive: bool = Field(True, description="Whether user may sign in")
    firstName: Optional[str] = None
    lastName: Optional[str] = None
    bio: Optional[str] = ""
    avatar: Optional[str] = ""


class Post(BaseModel):
    """
    Collection: "post"
    """
    model_config = ConfigDict(use_enum_values=True, arbitrary_types_allowed=True)

    title: str
    content: str
    author: ObjectId
    category: Optional[ObjectId] = None
    tags: List[str] = []
    slug: str
    excerpt: Optional[str] = None
    featuredImage: str = ""
    status: PostStatus = PostStatus.DRAFT
    publishedAt: Optional[datetime] = None
    views: int = 0
    likes: List[dict] = []
    comments: List[dict] = []


class Category(BaseModel):
    """
    Collection: "category"
    """
    name: str = Field(..., min_length=2, max_length=50)
    slug: str
    description: Optional[str] = Field(None, max_length=200)
    color: str = Field(DEFAULT_CATEGORY_COLOR, pattern=HEX_COLOR_PATTERN)
    isActive: bool = True


# -------------------------------------------------------------------
# Request bodies
# -------------------------------------------------------------------
class RegisterIn(BaseModel):
    username: str
    email: EmailStr
    password: str
    firstName: Optional[str] = Field(None, max_length=50)
    lastName: Optional[str] = Field(None, max_length=50)


class LoginIn(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class ProfileIn(BaseModel):
    firstName: Optional[str] = Field(None, max_length=50)
    lastName: Optional[str] = Field(None, max_length=50)
    bio: Optional[str] = Field(None, max_length=500)
    avatar: Optional[str] = None


class ChangePasswordIn(BaseModel):
    currentPassword: str = Field(..., min_length=1)
    newPassword: str


class UserAdminIn(BaseModel):
    role: Optional[Role] = None
    isActive: Optional[bool] = None


class PostCreateIn(BaseModel):
    title: str
    content: str
    category: Optional[str] = None
    tags: List[str] = []
    excerpt: Optional[str] = None
    featuredImage: Optional[str] = None
    status: Optional[PostStatus] = None


class PostUpdateIn(BaseModel):
    title: Optional[str] = None
    content: Optional[str] = None
    category: Optional[str] = None
    tags: Optional[List[str]] = None
    excerpt: Optional[str] = None
    featuredImage: Optional[str] = None
    status: Optional[PostStatus] = None


class CommentIn(BaseModel):
    content: str = ""


class CategoryIn(BaseModel):
    name: str = Field(..., min_length=2, max_length=50)
    description: Optional[str] = Field(None, max_length=200)
    color: str = Field(DEFAULT_CATEGORY_COLOR, pattern=HEX_COLOR_PATTERN)


# -------------------------------------------------------------------
# Query filters
# -------------------------------------------------------------------
class PostFilters(BaseModel):
    page: int = Field(1, ge=1)
    limit: int = Field(10, ge=1, le=100)
    status: Optional[PostStatus] = None
    category: Optional[str] = None
    author: Optional[str] = None
    search: Optional[str] = None
    sortBy: Literal["createdAt", "updatedAt", "title", "views", "publishedAt"] = "createdAt"
    sortOrder: Literal["asc", "desc"] = "desc"


class UserFilters(BaseModel):
    page: int = Field(1, ge=1)
    limit: int = Field(10, ge=1, le=100)
    search: Optional[str] = None
    sortBy: Literal["createdAt", "updatedAt", "username", "email"] = "createdAt"
    sortOrder: Literal["asc", "desc"] = "desc"
