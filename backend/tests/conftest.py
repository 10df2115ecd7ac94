import os

# Settings and the password context read these at import time
os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ.pop("DATABASE_URL", None)
os.environ.pop("OPENAI_API_KEY", None)
os.environ.pop("OPENAI_MODEL", None)

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine

from mentorhub.core import database
from mentorhub.core.config import settings
from mentorhub.core.database import Base
from mentorhub.main import app
from mentorhub.services.llm_service import llm_service


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch):
    monkeypatch.setattr(settings, "JWT_SECRET", "test-secret")
    monkeypatch.setattr(settings, "DATABASE_URL", None)
    monkeypatch.setattr(settings, "OPENAI_API_KEY", None)
    monkeypatch.setattr(settings, "OPENAI_MODEL", None)
    monkeypatch.setattr(settings, "DEBUG", False)
    monkeypatch.setattr(database, "_engine", None)
    monkeypatch.setattr(database, "_session_factory", None)
    llm_service.model_cache.clear()
    yield
    llm_service.model_cache.clear()


@pytest.fixture
def engine(tmp_path):
    """File-backed SQLite so worker threads get their own connections"""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'mentorhub.db'}",
        connect_args={"check_same_thread": False},
    )
    database.configure_engine(engine)
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def client(engine):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def unconfigured_client():
    with TestClient(app) as test_client:
        yield test_client


def register(client, email="dev@example.com", password="secret123", name="Dev", remember_me=False):
    return client.post(
        "/api/auth/register",
        json={"email": email, "password": password, "name": name, "rememberMe": remember_me},
    )


@pytest.fixture
def auth_headers(client):
    response = register(client)
    assert response.status_code == 201
    return {"Authorization": f"Bearer {response.json()['token']}"}


@pytest.fixture
def other_auth_headers(client):
    response = register(client, email="other@example.com", name="Other")
    assert response.status_code == 201
    return {"Authorization": f"Bearer {response.json()['token']}"}
