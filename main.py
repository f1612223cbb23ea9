import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, FastAPI, Query
from fastapi.middleware.cors import CORSMiddleware
from pymongo.database import Database

import accounts
import categories
import config
import listing
import posts
from auth import Capability, Identity, optional_auth, require_auth, require_capability
from database import close, connect, ensure_indexes, get_db
from errors import install_error_handlers
from schemas import (
    CategoryIn,
    ChangePasswordIn,
    CommentIn,
    LoginIn,
    PostCreateIn,
    PostFilters,
    PostUpdateIn,
    ProfileIn,
    RegisterIn,
    UserAdminIn,
    UserFilters,
)

logging.basicConfig(
    level=getattr(logging, config.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

START_TIME = time.monotonic()

router = APIRouter()
manage_users = require_capability(Capability.MANAGE_USERS)
manage_categories = require_capability(Capability.MANAGE_CATEGORIES)


def ok(data: Optional[dict] = None, message: Optional[str] = None) -> dict:
    body = {"success": True}
    if message:
        body["message"] = message
    if data is not None:
        body["data"] = data
    return body


# -------------------------------------------------------------------
# Root + health
# -------------------------------------------------------------------
@router.get("/")
def root():
    return ok(message="Blog API is running")


@router.get("/health")
def health():
    return {
        "status": "OK",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "uptime": round(time.monotonic() - START_TIME, 3),
    }


# -------------------------------------------------------------------
# Auth endpoints
# -------------------------------------------------------------------
@router.post("/auth/register", status_code=201)
def register(data: RegisterIn, db: Database = Depends(get_db)):
    user, token = accounts.register(db, data)
    return ok({"user": user, "token": token}, "User registered successfully")


@router.post("/auth/login")
def login(data: LoginIn, db: Database = Depends(get_db)):
    user, token = accounts.login(db, data.email, data.password)
    return ok({"user": user, "token": token}, "Login successful")


@router.get("/auth/profile")
def get_profile(identity: Identity = Depends(require_auth), db: Database = Depends(get_db)):
    return ok({"user": accounts.get_user(db, identity.id)})


@router.put("/auth/profile")
def update_profile(data: ProfileIn, identity: Identity = Depends(require_auth), db: Database = Depends(get_db)):
    user = accounts.update_profile(db, identity, data)
    return ok({"user": user}, "Profile updated successfully")


@router.put("/auth/change-password")
def change_password(data: ChangePasswordIn, identity: Identity = Depends(require_auth),
                    db: Database = Depends(get_db)):
    accounts.change_password(db, identity, data)
    return ok(message="Password changed successfully")


# -------------------------------------------------------------------
# Post endpoints
# -------------------------------------------------------------------
@router.get("/posts")
def list_posts(filters: Annotated[PostFilters, Query()],
               identity: Optional[Identity] = Depends(optional_auth), db: Database = Depends(get_db)):
    return ok(listing.list_posts(db, filters, identity))


@router.get("/posts/{identifier}")
def get_post(identifier: str, identity: Optional[Identity] = Depends(optional_auth),
             db: Database = Depends(get_db)):
    return ok({"post": posts.view_post(db, identifier, identity)})


@router.post("/posts", status_code=201)
def create_post(data: PostCreateIn, identity: Identity = Depends(require_auth), db: Database = Depends(get_db)):
    post = posts.create_post(db, identity, data.model_dump())
    return ok({"post": post}, "Post created successfully")


@router.put("/posts/{post_id}")
def update_post(post_id: str, data: PostUpdateIn, identity: Identity = Depends(require_auth),
                db: Database = Depends(get_db)):
    post = posts.update_post(db, identity, post_id, data.model_dump(exclude_unset=True))
    return ok({"post": post}, "Post updated successfully")


@router.delete("/posts/{post_id}")
def delete_post(post_id: str, identity: Identity = Depends(require_auth), db: Database = Depends(get_db)):
    posts.remove_post(db, identity, post_id)
    return ok(message="Post deleted successfully")


@router.post("/posts/{post_id}/like")
def like_post(post_id: str, identity: Identity = Depends(require_auth), db: Database = Depends(get_db)):
    result = posts.toggle_like(db, identity, post_id)
    return ok(result, "Post liked" if result["isLiked"] else "Post unliked")


@router.post("/posts/{post_id}/comments", status_code=201)
def add_comment(post_id: str, data: CommentIn, identity: Identity = Depends(require_auth),
                db: Database = Depends(get_db)):
    comment = posts.add_comment(db, identity, post_id, data.content)
    return ok({"comment": comment}, "Comment added successfully")


# -------------------------------------------------------------------
# User endpoints
# -------------------------------------------------------------------
@router.get("/users")
def list_users(filters: Annotated[UserFilters, Query()], _: Identity = Depends(manage_users),
               db: Database = Depends(get_db)):
    return ok(listing.list_users(db, filters))


@router.get("/users/{user_id}")
def get_user(user_id: str, _: Identity = Depends(require_auth), db: Database = Depends(get_db)):
    return ok({"user": accounts.get_user(db, user_id)})


@router.put("/users/{user_id}")
def update_user(user_id: str, data: UserAdminIn, _: Identity = Depends(manage_users),
                db: Database = Depends(get_db)):
    return ok({"user": accounts.admin_update(db, user_id, data)}, "User updated successfully")


# -------------------------------------------------------------------
# Category endpoints
# -------------------------------------------------------------------
@router.get("/categories")
def list_categories(db: Database = Depends(get_db)):
    return ok({"categories": categories.list_categories(db)})


@router.post("/categories", status_code=201)
def create_category(data: CategoryIn, _: Identity = Depends(manage_categories), db: Database = Depends(get_db)):
    return ok({"category": categories.create_category(db, data)}, "Category created successfully")


@router.delete("/categories/{category_id}")
def delete_category(category_id: str, _: Identity = Depends(manage_categories), db: Database = Depends(get_db)):
    categories.delete_category(db, category_id)
    return ok(message="Category deleted successfully")


# -------------------------------------------------------------------
# App factory
# -------------------------------------------------------------------
def create_app(database: Optional[Database] = None) -> FastAPI:
    """Build the API. Pass ``database`` to use an existing handle instead of connecting."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if database is None:
            app.state.db = connect()
            ensure_indexes(app.state.db)
        yield
        if database is None:
            close(app.state.db)

    app = FastAPI(title="Blog API", version="1.0.0", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    install_error_handlers(app)
    app.include_router(router)

    if database is not None:
        app.state.db = database
        ensure_indexes(database)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=config.PORT)
