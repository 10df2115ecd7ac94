import json

import pytest
import requests
from requests.adapters import BaseAdapter

from mentorhub.client.api_client import (
    NETWORK_MESSAGE,
    REMEMBER_ME_KEY,
    SERVER_ERROR_MESSAGE,
    SERVER_UNREACHABLE_MESSAGE,
    TIMEOUT_MESSAGE,
    TOKEN_KEY,
    USER_KEY,
    ApiClient,
    ApiError,
    CredentialStore,
    FileCredentialStore,
    Navigator,
    extract_error_message,
)

BASE_URL = "http://mentorhub.test/api"


class StubAdapter(BaseAdapter):
    """Answers every request with a canned response, or raises a transport error"""

    def __init__(self, status_code=200, payload=None, reason="OK", error=None):
        super().__init__()
        self.status_code = status_code
        self.payload = payload if payload is not None else {}
        self.reason = reason
        self.error = error
        self.sent = []

    def send(self, request, **kwargs):
        self.sent.append(request)
        if self.error is not None:
            raise self.error
        response = requests.Response()
        response.status_code = self.status_code
        response.reason = self.reason
        response.url = request.url
        response.request = request
        if isinstance(self.payload, str):
            response._content = self.payload.encode()
            response.headers["Content-Type"] = "text/plain"
        else:
            response._content = json.dumps(self.payload).encode()
            response.headers["Content-Type"] = "application/json"
        return response

    def close(self):
        pass


def make_client(adapter, current_path="/dashboard", store=None):
    session = requests.Session()
    session.mount("http://", adapter)
    return ApiClient(
        BASE_URL,
        store=store or CredentialStore(),
        navigator=Navigator(current_path),
        session=session,
    )


@pytest.mark.parametrize(
    "payload, expected",
    [
        ("Bad gateway", "Bad gateway"),
        ({"error": "User already exists"}, "User already exists"),
        ({"error": {"message": "Nested failure"}}, "Nested failure"),
        ({"message": "Top level"}, "Top level"),
        ({"details": [{"message": "Email is invalid"}]}, "Email is invalid"),
        ({"error": "Invalid input", "details": [{"message": "ignored"}]}, "Invalid input"),
        ({}, None),
        (None, None),
    ],
)
def test_extract_error_message(payload, expected):
    assert extract_error_message(payload) == expected


def test_attaches_stored_token():
    adapter = StubAdapter(payload={"projects": []})
    client = make_client(adapter)
    client.store.set(TOKEN_KEY, "abc123")

    client.projects.list()

    assert adapter.sent[0].headers["Authorization"] == "Bearer abc123"
    assert adapter.sent[0].headers["Content-Type"] == "application/json"


def test_no_token_means_no_authorization_header():
    adapter = StubAdapter(payload={"projects": []})
    make_client(adapter).projects.list()

    assert "Authorization" not in adapter.sent[0].headers


def test_multipart_upload_keeps_boundary():
    adapter = StubAdapter(status_code=201, payload={"resume": {"id": 1}})
    client = make_client(adapter)

    client.resumes.upload("cv.txt", b"hello")

    content_type = adapter.sent[0].headers["Content-Type"]
    assert content_type.startswith("multipart/form-data; boundary=")


def test_unauthorized_clears_session_and_schedules_login():
    adapter = StubAdapter(status_code=401, payload={"error": "Access token required"}, reason="Unauthorized")
    client = make_client(adapter, current_path="/projects")
    client.store.set(TOKEN_KEY, "stale")
    client.store.set(USER_KEY, "{}")

    with pytest.raises(ApiError) as exc_info:
        client.projects.list()

    assert exc_info.value.status_code == 401
    assert exc_info.value.message == "Access token required"
    assert client.store.get(TOKEN_KEY) is None
    assert client.store.get(USER_KEY) is None
    # Navigation is deferred until the caller runs it
    assert client.navigator.current_path == "/projects"
    assert client.navigator.run_pending() == "/login"
    assert client.navigator.current_path == "/login"


@pytest.mark.parametrize("path", ["/", "/login"])
def test_unauthorized_on_public_view_does_not_redirect(path):
    adapter = StubAdapter(status_code=401, payload={"error": "Invalid credentials"})
    client = make_client(adapter, current_path=path)

    with pytest.raises(ApiError):
        client.auth.login("a@example.com", "wrong-password")

    assert client.navigator.pending == []


def test_server_error_without_message():
    client = make_client(StubAdapter(status_code=500, payload={}, reason="Internal Server Error"))

    with pytest.raises(ApiError) as exc_info:
        client.dashboard.stats()

    assert exc_info.value.status_code == 500
    assert exc_info.value.message == SERVER_ERROR_MESSAGE


def test_client_error_falls_back_to_reason():
    client = make_client(StubAdapter(status_code=404, payload={}, reason="Not Found"))

    with pytest.raises(ApiError) as exc_info:
        client.projects.get(7)

    assert exc_info.value.message == "Not Found"


@pytest.mark.parametrize(
    "error, expected",
    [
        (requests.ConnectTimeout("connect timed out"), TIMEOUT_MESSAGE),
        (requests.ReadTimeout("read timed out"), TIMEOUT_MESSAGE),
        (requests.ConnectionError("Failed to resolve 'mentorhub.test'"), NETWORK_MESSAGE),
        (requests.ConnectionError("[Errno 111] Connection refused"), SERVER_UNREACHABLE_MESSAGE),
    ],
)
def test_transport_errors(error, expected):
    client = make_client(StubAdapter(error=error))

    with pytest.raises(ApiError) as exc_info:
        client.skills.list()

    assert exc_info.value.status_code is None
    assert exc_info.value.message == expected


def test_login_remembers_session():
    user = {"id": 1, "email": "dev@example.com", "name": "Dev"}
    client = make_client(StubAdapter(payload={"user": user, "token": "tok"}), current_path="/login")

    client.auth.login("dev@example.com", "secret123", remember_me=True)

    assert client.store.get(TOKEN_KEY) == "tok"
    assert client.store.get(REMEMBER_ME_KEY) == "true"
    assert client.auth.current_user() == user

    client.auth.logout()
    assert client.store.get(TOKEN_KEY) is None
    assert client.auth.current_user() is None


def test_verify_token_reports_failure_as_false():
    client = make_client(StubAdapter(status_code=403, payload={"error": "Token expired"}))

    assert client.auth.verify_token() is False


def test_file_store_persists(tmp_path):
    path = tmp_path / "session.json"
    store = FileCredentialStore(path)
    store.set(TOKEN_KEY, "persisted")

    assert FileCredentialStore(path).get(TOKEN_KEY) == "persisted"

    store.remove(TOKEN_KEY)
    assert FileCredentialStore(path).get(TOKEN_KEY) is None
