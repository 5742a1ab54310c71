from __future__ import annotations

import os
from typing import Any

import pytest

os.environ.setdefault("RS_STORAGE_BACKEND", "memory")
os.environ.setdefault("RS_AUTH_URL", "http://auth.test")
os.environ.setdefault("RS_OTEL_ENABLED", "false")
os.environ.setdefault("RS_CLIENT_OTEL_ENABLED", "false")

from fastapi import FastAPI, HTTPException  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

import listings_api.core.security as security  # noqa: E402
from listings_api.core.config import get_settings  # noqa: E402
from listings_api.main import app  # noqa: E402
from listings_api.services.repository import get_repository  # noqa: E402
from listings_api.services.store import InMemoryRepository  # noqa: E402

ORG_A = "org-a"
ORG_B = "org-b"

USERS: dict[str, dict[str, Any]] = {
    "admin-token": {"id": "admin-1", "role": "super_admin"},
    "university-token": {"id": "university-1", "role": "university", "university_id": ORG_A},
    "other-university-token": {"id": "university-2", "role": "university", "university_id": ORG_B},
    "staff-token": {
        "id": "staff-1",
        "role": "university_staff",
        "university_id": ORG_A,
        "permissions": ["JOB_CONTRIBUTOR", "SCHOLARSHIP_EDITOR"],
    },
    "staff-no-permissions-token": {"id": "staff-2", "role": "university_staff", "university_id": ORG_A},
    "student-token": {"id": "student-1", "role": "student"},
    "student-2-token": {"id": "student-2", "role": "student"},
    "mentor-token": {"id": "mentor-1", "role": "mentor"},
}


@pytest.fixture
def repository() -> InMemoryRepository:
    return InMemoryRepository()


@pytest.fixture
def api_app(monkeypatch: pytest.MonkeyPatch, repository: InMemoryRepository) -> FastAPI:
    get_settings.cache_clear()

    async def _fake_fetch(*, auth_url: str, token: str, timeout_seconds: float) -> dict[str, Any]:
        user = USERS.get(token)
        if user is None:
            raise HTTPException(status_code=401, detail="invalid bearer token")
        return dict(user)

    monkeypatch.setattr(security, "_fetch_user_info", _fake_fetch)
    app.dependency_overrides[get_repository] = lambda: repository
    yield app
    app.dependency_overrides.clear()
    get_settings.cache_clear()


@pytest.fixture
def api_client(api_app: FastAPI) -> TestClient:
    with TestClient(api_app) as client:
        yield client


@pytest.fixture
def users() -> dict[str, dict[str, Any]]:
    return USERS
