import pathlib
import sys
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import jwt
import pytest
from fastapi.testclient import TestClient

ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from qaflow.domain import Principal
from qaflow.engine import engine
from qaflow.main import create_app
from qaflow.store import store

JWT_SECRET = "jwt_test_secret"
CRON_API_KEY = "cron_test_key"


def _issue_token(*, secret: str, user_id: str, role: str | None = None) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "sub": user_id,
        "exp": int((now + timedelta(minutes=30)).timestamp()),
        "iat": int(now.timestamp()),
        "iss": "test-issuer",
        "aud": "test-audience",
    }
    if role is not None:
        payload["role"] = role
    return jwt.encode(payload, secret, algorithm="HS256")


class AuthenticatedClient:
    def __init__(self, client: TestClient, *, jwt_secret: str):
        self._client = client
        self._jwt_secret = jwt_secret

    def request(self, method: str, url: str, **kwargs):
        headers = dict(kwargs.pop("headers", {}) or {})
        if url.startswith("/api/v1/") and not url.startswith("/api/v1/internal/"):
            user_id = headers.pop("x-user-id", None) or "user_alice"
            if "Authorization" not in headers and user_id != "anonymous":
                role = headers.pop("x-user-role", None)
                token = _issue_token(secret=self._jwt_secret, user_id=str(user_id), role=role)
                headers["Authorization"] = f"Bearer {token}"
        return self._client.request(method, url, headers=headers, **kwargs)

    def __getattr__(self, name: str):
        return getattr(self._client, name)

    def get(self, url: str, **kwargs):
        return self.request("GET", url, **kwargs)

    def post(self, url: str, **kwargs):
        return self.request("POST", url, **kwargs)

    def put(self, url: str, **kwargs):
        return self.request("PUT", url, **kwargs)

    def patch(self, url: str, **kwargs):
        return self.request("PATCH", url, **kwargs)

    def delete(self, url: str, **kwargs):
        return self.request("DELETE", url, **kwargs)


@pytest.fixture(autouse=True)
def reset_store(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("JWT_SHARED_SECRET", JWT_SECRET)
    monkeypatch.setenv("JWT_ISSUER", "test-issuer")
    monkeypatch.setenv("JWT_AUDIENCE", "test-audience")
    monkeypatch.setenv("JWT_REQUIRED_CLAIMS", "sub,exp")
    monkeypatch.setenv("CRON_API_KEY", CRON_API_KEY)
    store.reset()
    yield


@pytest.fixture
def client() -> AuthenticatedClient:
    app = create_app()
    base = TestClient(app)
    return AuthenticatedClient(base, jwt_secret=JWT_SECRET)


@pytest.fixture
def team() -> SimpleNamespace:
    """A project created by alice with bob and carol as plain members; dave is an outsider."""
    people = {
        "manager": Principal(user_id="user_alice"),
        "assignee": Principal(user_id="user_bob"),
        "member": Principal(user_id="user_carol"),
        "outsider": Principal(user_id="user_dave"),
    }
    for principal in people.values():
        name = principal.user_id.removeprefix("user_").title()
        engine.projects.upsert_user(
            principal=principal,
            user_id=principal.user_id,
            name=name,
            email=f"{name.lower()}@example.com",
        )
    project = engine.projects.create_project(principal=people["manager"], name="Site survey").value
    for key in ("assignee", "member"):
        added = engine.projects.add_member(
            project_id=project["project_id"],
            principal=people["manager"],
            user_id=people[key].user_id,
            role="MEMBER",
        )
        assert added.ok
    return SimpleNamespace(
        project_id=project["project_id"],
        admin=Principal(user_id="user_root", is_admin=True),
        **people,
    )
