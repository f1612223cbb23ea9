import mongomock
import pytest
from fastapi.testclient import TestClient

from auth import Identity, hash_password, issue_token
from database import USERS, create_document, ensure_indexes
from main import create_app
from schemas import Role, User

PASSWORD = "Password123"


@pytest.fixture
def db():
    mongo = mongomock.MongoClient()
    mongo.drop_database("blog_test")
    database = mongo["blog_test"]
    ensure_indexes(database)
    return database


@pytest.fixture
def client(db):
    app = create_app(database=db)
    with TestClient(app) as c:
        yield c


@pytest.fixture
def make_user(db):
    def _make(username, role=Role.USER, active=True):
        user = User(
            username=username,
            email=f"{username}@example.com",
            password=hash_password(PASSWORD),
            role=role,
            isActive=active,
            firstName=username.title(),
        )
        doc = create_document(db, USERS, user)
        return Identity.from_user(doc)
    return _make


@pytest.fixture
def alice(make_user):
    return make_user("alice")


@pytest.fixture
def bob(make_user):
    return make_user("bob")


@pytest.fixture
def admin(make_user):
    return make_user("admin", role=Role.ADMIN)


def bearer(identity):
    return {"Authorization": f"Bearer {issue_token(identity)}"}
