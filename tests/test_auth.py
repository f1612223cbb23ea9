from datetime import timedelta

import jwt
import pytest
from fastapi import Depends, FastAPI
from fastapi.testclient import TestClient

import config
from auth import (
    Capability,
    Identity,
    can_modify,
    extract_token,
    has_capability,
    hash_password,
    is_owner,
    issue_token,
    optional_auth,
    require_auth,
    require_capability,
    require_role,
    validate_password,
    validate_username,
    verify_password,
    verify_token,
)
from database import USERS
from errors import InvalidToken, TokenExpired, install_error_handlers
from schemas import Role
from tests.conftest import bearer

IDENTITY = Identity(id="507f1f77bcf86cd799439011", username="testuser", email="test@example.com", role=Role.USER)


class TestPasswords:
    def test_hash_is_not_plaintext(self):
        hashed = hash_password("Secret123")
        assert hashed != "Secret123"
        assert verify_password("Secret123", hashed)
        assert not verify_password("Wrong123", hashed)

    def test_hashes_are_salted(self):
        assert hash_password("Secret123") != hash_password("Secret123")

    def test_bcrypt_scheme(self):
        hashed = hash_password("Secret123", algo="bcrypt")
        assert verify_password("Secret123", hashed, algo="bcrypt")
        assert not verify_password("nope", hashed, algo="bcrypt")

    def test_malformed_hash_is_false(self):
        assert verify_password("Secret123", "not-a-hash") is False
        assert verify_password("Secret123", None) is False

    def test_password_policy(self):
        assert validate_password("Password123") == []
        errors = validate_password("abc")
        assert "Password must be at least 6 characters long" in errors
        assert "Password must contain at least one uppercase letter" in errors
        assert "Password must contain at least one number" in errors

    def test_username_policy(self):
        assert validate_username("good_name1") == []
        assert validate_username("ab")
        assert validate_username("bad name!")


class TestTokens:
    def test_round_trip(self):
        claims = verify_token(issue_token(IDENTITY))
        assert claims["id"] == IDENTITY.id
        assert claims["username"] == "testuser"
        assert claims["email"] == "test@example.com"
        assert claims["role"] == "user"

    def test_default_expiry_is_thirty_days(self):
        claims = verify_token(issue_token(IDENTITY))
        assert claims["exp"] - claims["iat"] == 30 * 24 * 3600

    def test_expired(self):
        token = issue_token(IDENTITY, expires_in=timedelta(seconds=-10))
        with pytest.raises(TokenExpired):
            verify_token(token)

    def test_malformed(self):
        with pytest.raises(InvalidToken):
            verify_token("not-a-valid-jwt")
        with pytest.raises(InvalidToken):
            verify_token("invalid.token.string")

    def test_wrong_secret(self):
        token = jwt.encode({"id": IDENTITY.id, "role": "user", "exp": 4102444800}, "other-secret", algorithm="HS256")
        with pytest.raises(InvalidToken):
            verify_token(token)

    def test_tampered_role(self):
        token = issue_token(IDENTITY)
        header, payload, signature = token.split(".")
        forged = jwt.encode({"id": IDENTITY.id, "role": "admin", "exp": 4102444800}, "x", algorithm="HS256")
        tampered = ".".join([header, forged.split(".")[1], signature])
        with pytest.raises(InvalidToken):
            verify_token(tampered)

    def test_unknown_role_rejected(self):
        token = jwt.encode({"id": IDENTITY.id, "role": "root", "exp": 4102444800},
                           config.JWT_SECRET, algorithm=config.JWT_ALGORITHM)
        with pytest.raises(InvalidToken):
            verify_token(token)

    @pytest.mark.parametrize("header,expected", [
        ("Bearer abc.def.ghi", "abc.def.ghi"),
        ("bearer abc", "abc"),
        (None, None),
        ("", None),
        ("abc.def.ghi", None),
        ("Basic abc", None),
        ("Bearer", None),
    ])
    def test_extract_token(self, header, expected):
        assert extract_token(header) == expected


class TestCapabilities:
    def test_admin_has_everything(self):
        assert all(has_capability(Role.ADMIN, c) for c in Capability)

    def test_user_has_nothing_extra(self):
        assert not any(has_capability(Role.USER, c) for c in Capability)

    def test_ownership(self):
        other = Identity(id="507f1f77bcf86cd799439012", username="o", email="o@example.com")
        admin = Identity(id="507f1f77bcf86cd799439013", username="a", email="a@example.com", role=Role.ADMIN)
        assert is_owner(IDENTITY, IDENTITY.id)
        assert not is_owner(other, IDENTITY.id)
        assert can_modify(IDENTITY, IDENTITY.id)
        assert not can_modify(other, IDENTITY.id)
        assert can_modify(admin, IDENTITY.id)
        assert not can_modify(None, IDENTITY.id)


@pytest.fixture
def guarded(db):
    app = FastAPI()
    app.state.db = db
    install_error_handlers(app)

    @app.get("/required")
    def required(identity: Identity = Depends(require_auth)):
        return {"id": identity.id}

    @app.get("/optional")
    def optional(identity=Depends(optional_auth)):
        return {"id": identity.id if identity else None}

    @app.get("/admin")
    def admin_only(identity: Identity = Depends(require_role(Role.ADMIN))):
        return {"id": identity.id}

    @app.get("/categories-admin")
    def manage_categories(identity: Identity = Depends(require_capability(Capability.MANAGE_CATEGORIES))):
        return {"id": identity.id}

    return TestClient(app)


class TestGuards:
    def test_missing_token(self, guarded):
        res = guarded.get("/required")
        assert res.status_code == 401
        assert res.json() == {"success": False, "message": "Access token is required"}

    def test_valid_token(self, guarded, alice):
        res = guarded.get("/required", headers=bearer(alice))
        assert res.status_code == 200
        assert res.json()["id"] == alice.id

    def test_expired_token(self, guarded, alice):
        token = issue_token(alice, expires_in=timedelta(seconds=-5))
        res = guarded.get("/required", headers={"Authorization": f"Bearer {token}"})
        assert res.status_code == 401
        assert res.json()["message"] == "Access token has expired"

    def test_invalid_token(self, guarded):
        res = guarded.get("/required", headers={"Authorization": "Bearer garbage"})
        assert res.status_code == 401
        assert res.json()["message"] == "Invalid access token"

    def test_inactive_user(self, guarded, db, alice):
        db[USERS].update_one({"_id": alice.object_id}, {"$set": {"isActive": False}})
        res = guarded.get("/required", headers=bearer(alice))
        assert res.status_code == 401
        assert res.json()["message"] == "User account is deactivated"

    def test_unknown_user(self, guarded):
        res = guarded.get("/required", headers=bearer(IDENTITY))
        assert res.status_code == 401
        assert res.json()["message"] == "User not found"

    def test_optional_without_token(self, guarded):
        assert guarded.get("/optional").json() == {"id": None}

    def test_optional_swallows_bad_token(self, guarded):
        res = guarded.get("/optional", headers={"Authorization": "Bearer garbage"})
        assert res.status_code == 200
        assert res.json() == {"id": None}

    def test_optional_with_token(self, guarded, alice):
        assert guarded.get("/optional", headers=bearer(alice)).json() == {"id": alice.id}

    def test_role_forbidden(self, guarded, alice):
        res = guarded.get("/admin", headers=bearer(alice))
        assert res.status_code == 403
        assert res.json()["message"] == "Insufficient permissions"

    def test_role_allowed(self, guarded, admin):
        assert guarded.get("/admin", headers=bearer(admin)).status_code == 200

    def test_capability_forbidden(self, guarded, alice):
        res = guarded.get("/categories-admin", headers=bearer(alice))
        assert res.status_code == 403
        assert res.json() == {"success": False, "message": "Insufficient permissions"}

    def test_capability_allowed(self, guarded, admin):
        res = guarded.get("/categories-admin", headers=bearer(admin))
        assert res.status_code == 200
        assert res.json() == {"id": admin.id}

    def test_capability_requires_token(self, guarded):
        assert guarded.get("/categories-admin").status_code == 401
