"""
HTTP client for the MentorHub API.

Every request goes through ApiClient.request, which attaches the stored
bearer token and turns failures into ApiError with a message a user can
act on. A 401 clears the stored session and schedules a move to the
login view unless the user is already on a public view.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import requests
from requests.auth import AuthBase

logger = logging.getLogger(__name__)

TOKEN_KEY = "token"
USER_KEY = "user"
REMEMBER_ME_KEY = "rememberMe"

LOGIN_PATH = "/login"
# Views that don't require a session; a 401 there must not redirect
PUBLIC_PATHS = ("/", LOGIN_PATH)

DEFAULT_TIMEOUT = 30.0

TIMEOUT_MESSAGE = "Request timed out. The server is taking too long to respond."
NETWORK_MESSAGE = "Network error. Please check your internet connection and try again."
SERVER_UNREACHABLE_MESSAGE = "Unable to connect to the server. Please try again later."
SERVER_ERROR_MESSAGE = "Server error. Please try again later."

# Fragments of connection errors raised before any server was reached
_NETWORK_MARKERS = (
    "name or service not known",
    "nodename nor servname",
    "temporary failure in name resolution",
    "getaddrinfo failed",
    "failed to resolve",
    "network is unreachable",
    "no route to host",
)


class ApiError(Exception):
    """A failed API call. status_code is None when no response arrived."""

    def __init__(self, message: str, status_code: Optional[int] = None, payload: Any = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload


class CredentialStore:
    """In-memory key/value store for the session, shaped like browser local storage"""

    def __init__(self) -> None:
        self._items: Dict[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        return self._items.get(key)

    def set(self, key: str, value: str) -> None:
        self._items[key] = value

    def remove(self, key: str) -> None:
        self._items.pop(key, None)


class FileCredentialStore(CredentialStore):
    """CredentialStore persisted to a JSON file between runs"""

    def __init__(self, path: str | Path) -> None:
        super().__init__()
        self.path = Path(path)
        if self.path.exists():
            self._items = json.loads(self.path.read_text(encoding="utf-8"))

    def _flush(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(self._items), encoding="utf-8")

    def set(self, key: str, value: str) -> None:
        super().set(key, value)
        self._flush()

    def remove(self, key: str) -> None:
        super().remove(key)
        self._flush()


class Navigator:
    """
    Tracks the current view and queues navigations.

    Navigations are scheduled, not performed: the caller applies them with
    run_pending() once it has finished handling the failed request.
    """

    def __init__(self, current_path: str = "/") -> None:
        self.current_path = current_path
        self.pending: List[str] = []

    def schedule(self, path: str) -> None:
        if path not in self.pending:
            self.pending.append(path)

    def run_pending(self) -> Optional[str]:
        if not self.pending:
            return None
        self.current_path = self.pending[-1]
        self.pending.clear()
        return self.current_path


def _error_string(payload: Any) -> Optional[str]:
    if isinstance(payload, dict):
        error = payload.get("error")
        if isinstance(error, str) and error:
            return error
    return None


def _nested_error_message(payload: Any) -> Optional[str]:
    if isinstance(payload, dict) and isinstance(payload.get("error"), dict):
        message = payload["error"].get("message")
        if isinstance(message, str) and message:
            return message
    return None


def _top_level_message(payload: Any) -> Optional[str]:
    if isinstance(payload, dict):
        message = payload.get("message")
        if isinstance(message, str) and message:
            return message
    return None


def _first_detail_message(payload: Any) -> Optional[str]:
    if isinstance(payload, dict):
        details = payload.get("details")
        if isinstance(details, list) and details and isinstance(details[0], dict):
            message = details[0].get("message")
            if isinstance(message, str) and message:
                return message
    return None


def _plain_string(payload: Any) -> Optional[str]:
    if isinstance(payload, str) and payload.strip():
        return payload.strip()
    return None


# Ordered from most to least specific; the first rule that matches wins
ERROR_MESSAGE_RULES = (
    _plain_string,
    _error_string,
    _nested_error_message,
    _top_level_message,
    _first_detail_message,
)


def extract_error_message(payload: Any) -> Optional[str]:
    """Find the most specific human-readable message in an error payload"""
    for rule in ERROR_MESSAGE_RULES:
        message = rule(payload)
        if message:
            return message
    return None


def describe_transport_error(exc: requests.RequestException) -> str:
    """Say whether a request timed out, had no network, or found no server"""
    if isinstance(exc, requests.Timeout):
        return TIMEOUT_MESSAGE
    if isinstance(exc, requests.ConnectionError):
        text = str(exc).lower()
        if any(marker in text for marker in _NETWORK_MARKERS):
            return NETWORK_MESSAGE
    return SERVER_UNREACHABLE_MESSAGE


class BearerAuth(AuthBase):
    """Attach the stored token, if any, to each outgoing request"""

    def __init__(self, store: CredentialStore) -> None:
        self.store = store

    def __call__(self, request: requests.PreparedRequest) -> requests.PreparedRequest:
        token = self.store.get(TOKEN_KEY)
        if token:
            request.headers["Authorization"] = f"Bearer {token}"
        return request


class ApiClient:
    def __init__(
        self,
        base_url: str = "http://localhost:5000/api",
        store: Optional[CredentialStore] = None,
        navigator: Optional[Navigator] = None,
        timeout: float = DEFAULT_TIMEOUT,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.store = store if store is not None else CredentialStore()
        self.navigator = navigator if navigator is not None else Navigator()
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.setdefault("Content-Type", "application/json")

        self.auth = AuthAPI(self)
        self.projects = ProjectsAPI(self)
        self.skills = SkillsAPI(self)
        self.ai = AIAPI(self)
        self.dashboard = DashboardAPI(self)
        self.concepts = ConceptsAPI(self)
        self.resumes = ResumesAPI(self)
        self.practice = PracticeAPI(self)

    def request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        files: Any = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> requests.Response:
        headers = {}
        if files is not None:
            # None drops the session's JSON default so requests writes the multipart boundary
            headers["Content-Type"] = None

        try:
            response = self.session.request(
                method,
                f"{self.base_url}{path}",
                json=json,
                files=files,
                params=params,
                headers=headers,
                auth=BearerAuth(self.store),
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            message = describe_transport_error(exc)
            logger.warning("%s %s failed without a response: %s", method, path, exc)
            raise ApiError(message) from exc

        if response.ok:
            return response

        payload = _response_payload(response)
        if response.status_code == 401:
            self._handle_unauthorized()

        if response.status_code >= 500:
            message = extract_error_message(payload) or SERVER_ERROR_MESSAGE
        else:
            message = extract_error_message(payload) or response.reason or "Request failed"
        raise ApiError(message, status_code=response.status_code, payload=payload)

    def _handle_unauthorized(self) -> None:
        self.store.remove(TOKEN_KEY)
        self.store.remove(USER_KEY)
        if self.navigator.current_path not in PUBLIC_PATHS:
            self.navigator.schedule(LOGIN_PATH)

    def get(self, path: str, **kwargs: Any) -> Any:
        return self.request("GET", path, **kwargs).json()

    def post(self, path: str, **kwargs: Any) -> Any:
        return self.request("POST", path, **kwargs).json()

    def put(self, path: str, **kwargs: Any) -> Any:
        return self.request("PUT", path, **kwargs).json()

    def delete(self, path: str, **kwargs: Any) -> Any:
        return self.request("DELETE", path, **kwargs).json()


def _response_payload(response: requests.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text


class _Resource:
    def __init__(self, client: ApiClient) -> None:
        self.client = client


class AuthAPI(_Resource):
    def _remember(self, data: Dict[str, Any], remember_me: bool) -> None:
        if not data.get("token"):
            return
        store = self.client.store
        store.set(TOKEN_KEY, data["token"])
        store.set(USER_KEY, json.dumps(data.get("user")))
        if remember_me:
            store.set(REMEMBER_ME_KEY, "true")
        else:
            store.remove(REMEMBER_ME_KEY)

    def register(self, email: str, password: str, name: Optional[str] = None, remember_me: bool = False) -> Dict[str, Any]:
        data = self.client.post(
            "/auth/register",
            json={"email": email, "password": password, "name": name, "rememberMe": remember_me},
        )
        self._remember(data, remember_me)
        return data

    def login(self, email: str, password: str, remember_me: bool = False) -> Dict[str, Any]:
        data = self.client.post(
            "/auth/login",
            json={"email": email, "password": password, "rememberMe": remember_me},
        )
        self._remember(data, remember_me)
        return data

    def logout(self) -> None:
        for key in (TOKEN_KEY, USER_KEY, REMEMBER_ME_KEY):
            self.client.store.remove(key)

    def current_user(self) -> Optional[Dict[str, Any]]:
        user = self.client.store.get(USER_KEY)
        return json.loads(user) if user else None

    def verify_token(self) -> bool:
        try:
            self.client.get("/auth/verify")
        except ApiError:
            return False
        return True


class ProjectsAPI(_Resource):
    def list(self) -> List[Dict[str, Any]]:
        return self.client.get("/projects")["projects"]

    def get(self, project_id: int) -> Dict[str, Any]:
        return self.client.get(f"/projects/{project_id}")

    def create(self, data: Dict[str, Any]) -> Dict[str, Any]:
        return self.client.post("/projects", json=data)

    def update(self, project_id: int, data: Dict[str, Any]) -> Dict[str, Any]:
        return self.client.put(f"/projects/{project_id}", json=data)

    def delete(self, project_id: int) -> Dict[str, Any]:
        return self.client.delete(f"/projects/{project_id}")

    def add_milestone(self, project_id: int, data: Dict[str, Any]) -> Dict[str, Any]:
        return self.client.post(f"/projects/{project_id}/milestones", json=data)

    def update_milestone(self, project_id: int, milestone_id: int, data: Dict[str, Any]) -> Dict[str, Any]:
        return self.client.put(f"/projects/{project_id}/milestones/{milestone_id}", json=data)

    def recommendations(self, project_id: int) -> List[Dict[str, Any]]:
        return self.client.get(f"/projects/{project_id}/recommendations")["recommendations"]


class SkillsAPI(_Resource):
    def list(self) -> List[Dict[str, Any]]:
        return self.client.get("/skills")["skills"]

    def create(self, data: Dict[str, Any]) -> Dict[str, Any]:
        return self.client.post("/skills", json=data)

    def update(self, skill_id: int, data: Dict[str, Any]) -> Dict[str, Any]:
        return self.client.put(f"/skills/{skill_id}", json=data)

    def delete(self, skill_id: int) -> Dict[str, Any]:
        return self.client.delete(f"/skills/{skill_id}")


class AIAPI(_Resource):
    def messages(self, limit: int = 50) -> List[Dict[str, Any]]:
        return self.client.get("/ai/messages", params={"limit": limit})["messages"]

    def send(self, message: str) -> Dict[str, Any]:
        return self.client.post("/ai/chat", json={"message": message})

    def model(self) -> Dict[str, Any]:
        return self.client.get("/ai/model")


class DashboardAPI(_Resource):
    def stats(self) -> Dict[str, Any]:
        return self.client.get("/dashboard/stats")

    def recent_projects(self, limit: int = 3) -> List[Dict[str, Any]]:
        return self.client.get("/dashboard/recent-projects", params={"limit": limit})["projects"]

    def notifications(self) -> List[Dict[str, Any]]:
        return self.client.get("/dashboard/notifications")["notifications"]

    def skill_gaps(self) -> List[Dict[str, Any]]:
        return self.client.get("/dashboard/skill-gaps")["skillGaps"]


class ConceptsAPI(_Resource):
    def list(self) -> List[Dict[str, Any]]:
        return self.client.get("/concepts")["concepts"]

    def get(self, concept_id: int) -> Dict[str, Any]:
        return self.client.get(f"/concepts/{concept_id}")["concept"]

    def generate(self, topic: str, category: Optional[str] = None) -> Dict[str, Any]:
        return self.client.post("/concepts/generate", json={"topic": topic, "category": category})["concept"]

    def create(self, data: Dict[str, Any]) -> Dict[str, Any]:
        return self.client.post("/concepts", json=data)["concept"]

    def update(self, concept_id: int, data: Dict[str, Any]) -> Dict[str, Any]:
        return self.client.put(f"/concepts/{concept_id}", json=data)["concept"]

    def delete(self, concept_id: int) -> Dict[str, Any]:
        return self.client.delete(f"/concepts/{concept_id}")


class ResumesAPI(_Resource):
    def get(self) -> Optional[Dict[str, Any]]:
        return self.client.get("/resumes")["resume"]

    def upload(self, filename: str, content: bytes) -> Dict[str, Any]:
        return self.client.post("/resumes/upload", files={"resume": (filename, content)})["resume"]

    def feedback(self, resume_id: Optional[int] = None, content: Optional[str] = None) -> str:
        return self.client.post("/resumes/feedback", json={"resumeId": resume_id, "content": content})["feedback"]

    def update(self, resume_id: int, content: str) -> Dict[str, Any]:
        return self.client.put(f"/resumes/{resume_id}", json={"content": content})["resume"]

    def download(self, resume_id: int) -> bytes:
        return self.client.request("GET", f"/resumes/{resume_id}/download").content


class PracticeAPI(_Resource):
    def analyze_response(self, data: Dict[str, Any]) -> Dict[str, Any]:
        return self.client.post("/practice/analyze-response", json=data)

    def sessions(self) -> List[Dict[str, Any]]:
        return self.client.get("/practice/sessions")["sessions"]
