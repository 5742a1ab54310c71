from __future__ import annotations

from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from typing import Any

import httpx
import pytest
from fastapi import FastAPI

from listings_client.core.config import Settings
from listings_client.core.session import Session
from listings_client.main import ClientRuntime, create_runtime

BASE_URL = "http://testserver"


def client_settings(**overrides: Any) -> Settings:
    return Settings(api_base_url=BASE_URL, otel_enabled=False, **overrides)


@pytest.fixture
def session_for(users: dict[str, dict[str, Any]]) -> Callable[[str], Session]:
    def _session_for(token: str) -> Session:
        return Session.from_user_info(token, users[token])

    return _session_for


@pytest.fixture
def connect(api_app: FastAPI):
    @asynccontextmanager
    async def _connect(session: Session) -> AsyncIterator[ClientRuntime]:
        transport = httpx.ASGITransport(app=api_app)
        async with httpx.AsyncClient(transport=transport, base_url=BASE_URL) as http_client:
            runtime = create_runtime(session, settings=client_settings(), http_client=http_client)
            try:
                yield runtime
            finally:
                runtime.shutdown()

    return _connect
