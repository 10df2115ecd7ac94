import threading
from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone

import pytest
from conftest import register
from jose import jwt
from sqlalchemy.exc import OperationalError

from mentorhub.api.routes import auth
from mentorhub.core import database
from mentorhub.core.config import settings
from mentorhub.core.database import DATABASE_UNAVAILABLE_MESSAGE
from mentorhub.core.security import USER_ID_CLAIM, create_access_token, decode_access_token
from mentorhub.models.user import User


def test_register_returns_user_and_token(client):
    response = register(client, email="new@example.com", name="New")

    assert response.status_code == 201
    body = response.json()
    assert body["user"]["email"] == "new@example.com"
    assert body["user"]["name"] == "New"
    assert "password" not in body["user"]
    assert "passwordHash" not in body["user"]

    claims = decode_access_token(body["token"])
    assert claims[USER_ID_CLAIM] == body["user"]["id"]


def test_register_stores_bcrypt_hash(client, engine):
    register(client, email="hash@example.com", password="plaintext1")

    with database.session_scope() as db:
        user = db.query(User).filter(User.email == "hash@example.com").one()
        assert user.password_hash != "plaintext1"
        assert user.password_hash.startswith("$2")


def test_register_duplicate_email(client):
    assert register(client, email="dup@example.com").status_code == 201

    response = register(client, email="dup@example.com")

    assert response.status_code == 400
    assert response.json() == {"error": "User already exists"}


def test_register_lost_race_maps_unique_violation(client, monkeypatch):
    """A competing registration landing between lookup and insert still yields 400"""
    real_hash = auth.get_password_hash

    def hash_after_competitor_commits(password):
        with database.session_scope() as other:
            other.add(User(email="race@example.com", password_hash=real_hash("x" * 8)))
            other.commit()
        return real_hash(password)

    monkeypatch.setattr(auth, "get_password_hash", hash_after_competitor_commits)

    response = register(client, email="race@example.com")

    assert response.status_code == 400
    assert response.json()["error"] == "User already exists"
    with database.session_scope() as db:
        assert db.query(User).filter(User.email == "race@example.com").count() == 1


def test_register_validation_errors(client):
    response = client.post("/api/auth/register", json={"email": "not-an-email", "password": "123"})

    assert response.status_code == 400
    body = response.json()
    assert body["error"] == "Invalid input"
    paths = [detail["path"] for detail in body["details"]]
    assert ["body", "email"] in paths
    assert ["body", "password"] in paths


def test_malformed_json_body(client):
    response = client.post(
        "/api/auth/login",
        content="{not json",
        headers={"Content-Type": "application/json"},
    )

    assert response.status_code == 400
    assert response.json() == {"error": "Invalid JSON in request body"}


def test_login_success(client):
    register(client, email="login@example.com", password="secret123")

    response = client.post("/api/auth/login", json={"email": "login@example.com", "password": "secret123"})

    assert response.status_code == 200
    assert response.json()["user"]["email"] == "login@example.com"


def test_login_failures_share_one_message(client):
    register(client, email="known@example.com", password="secret123")

    wrong_password = client.post("/api/auth/login", json={"email": "known@example.com", "password": "nope-nope"})
    unknown_email = client.post("/api/auth/login", json={"email": "ghost@example.com", "password": "secret123"})

    assert wrong_password.status_code == unknown_email.status_code == 401
    assert wrong_password.json() == unknown_email.json() == {"error": "Invalid credentials"}


def test_token_lifetime_follows_remember_me(client):
    short = register(client, email="short@example.com").json()["token"]
    long = register(client, email="long@example.com", remember_me=True).json()["token"]

    short_claims = decode_access_token(short)
    long_claims = decode_access_token(long)

    assert short_claims["exp"] - short_claims["iat"] == int(timedelta(days=7).total_seconds())
    assert long_claims["exp"] - long_claims["iat"] == int(timedelta(days=30).total_seconds())


def test_verify_returns_user(client, auth_headers):
    response = client.get("/api/auth/verify", headers=auth_headers)

    assert response.status_code == 200
    body = response.json()
    assert body["valid"] is True
    assert body["email"] == "dev@example.com"
    assert body["name"] == "Dev"


def test_verify_without_token(client):
    response = client.get("/api/auth/verify")

    assert response.status_code == 401
    assert response.json() == {"error": "Access token required"}


def test_verify_expired_token(client, auth_headers):
    user_id = client.get("/api/auth/verify", headers=auth_headers).json()["id"]
    token = create_access_token(user_id, issued_at=datetime.now(timezone.utc) - timedelta(days=8))

    response = client.get("/api/auth/verify", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 403
    assert response.json() == {"error": "Token expired"}


def test_verify_remembered_token_outlives_default(client, auth_headers):
    user_id = client.get("/api/auth/verify", headers=auth_headers).json()["id"]
    token = create_access_token(
        user_id,
        remember_me=True,
        issued_at=datetime.now(timezone.utc) - timedelta(days=8),
    )

    response = client.get("/api/auth/verify", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 200


def test_verify_rejects_tampered_and_foreign_tokens(client, auth_headers):
    forged = jwt.encode({USER_ID_CLAIM: 1}, "another-secret", algorithm="HS256")
    non_integer = jwt.encode({USER_ID_CLAIM: "1"}, settings.JWT_SECRET, algorithm="HS256")

    for token in ("garbage", forged, non_integer):
        response = client.get("/api/auth/verify", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 403
        assert response.json() == {"error": "Invalid token"}


def test_verify_unknown_user(client):
    token = create_access_token(999)

    response = client.get("/api/auth/verify", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 404
    assert response.json() == {"error": "User not found"}


def test_auth_requires_database(unconfigured_client):
    # Invalid body on purpose: configuration is checked before validation
    response = unconfigured_client.post("/api/auth/register", json={"email": "bad"})

    assert response.status_code == 503
    assert "DATABASE_URL" in response.json()["error"]


def test_auth_requires_jwt_secret(client, monkeypatch):
    monkeypatch.setattr(settings, "JWT_SECRET", None)

    login = client.post("/api/auth/login", json={"email": "a@example.com", "password": "secret123"})
    verify = client.get("/api/auth/verify", headers={"Authorization": "Bearer whatever"})

    assert login.status_code == 503
    assert "JWT_SECRET" in login.json()["error"]
    assert verify.status_code == 503


def test_unexpected_failure_is_500(client, monkeypatch):
    def broken(payload):
        raise RuntimeError("boom")

    monkeypatch.setattr(auth, "_login_user", broken)

    response = client.post("/api/auth/login", json={"email": "a@example.com", "password": "secret123"})

    assert response.status_code == 500
    assert response.json() == {"error": "Login failed. Please try again later."}


class UnreachableSession:
    def query(self, *args, **kwargs):
        raise OperationalError("SELECT 1", {}, Exception("could not connect to server: Connection timed out"))


@contextmanager
def unreachable_scope():
    yield UnreachableSession()


@pytest.mark.parametrize(
    "path, payload",
    [
        ("/api/auth/login", {"email": "a@example.com", "password": "secret123"}),
        ("/api/auth/register", {"email": "a@example.com", "password": "secret123"}),
    ],
)
def test_store_outage_during_auth_is_503(client, monkeypatch, path, payload):
    monkeypatch.setattr(auth, "session_scope", unreachable_scope)

    response = client.post(path, json=payload)

    assert response.status_code == 503
    assert response.json() == {"error": DATABASE_UNAVAILABLE_MESSAGE, "code": "ETIMEDOUT"}


def test_concurrent_registrations_with_same_email(client, monkeypatch):
    """Both requests pass the existence check before either inserts"""
    both_checked = threading.Barrier(2, timeout=5)
    real_hash = auth.get_password_hash

    def hash_once_both_checked(password):
        both_checked.wait()
        return real_hash(password)

    monkeypatch.setattr(auth, "get_password_hash", hash_once_both_checked)

    with ThreadPoolExecutor(max_workers=2) as pool:
        responses = list(pool.map(lambda _: register(client, email="twin@example.com"), range(2)))

    assert sorted(r.status_code for r in responses) == [201, 400]
    rejected = next(r for r in responses if r.status_code == 400)
    assert rejected.json() == {"error": "User already exists"}
    with database.session_scope() as db:
        assert db.query(User).filter(User.email == "twin@example.com").count() == 1
