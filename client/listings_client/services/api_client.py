from __future__ import annotations

import logging
from typing import Any

import httpx

from listings_client.core.entities import EntityKind
from listings_client.core.session import Session

logger = logging.getLogger(__name__)

NETWORK_ERROR_MESSAGE = "Network error. Please check your internet connection."
FALLBACK_ERROR_MESSAGE = "Something went wrong. Please try again."


class ApiError(Exception):
    def __init__(self, status_code: int | None, messages: list[str], *, network: bool = False) -> None:
        super().__init__("; ".join(messages))
        self.status_code = status_code
        self.messages = messages
        self.network = network


def extract_error_messages(payload: Any, fallback: str = FALLBACK_ERROR_MESSAGE) -> list[str]:
    """Flatten an error body into display messages.

    Understands the FastAPI ``detail`` shape (string or list of ``{"msg": ...}``
    items) as well as the ``message`` shape (string or list of strings).
    """
    if not isinstance(payload, dict):
        return [fallback]

    for key in ("message", "detail", "error"):
        value = payload.get(key)
        if isinstance(value, str) and value.strip():
            return [value]
        if isinstance(value, list):
            messages = [_message_from_item(item) for item in value]
            messages = [message for message in messages if message]
            if messages:
                return messages
    return [fallback]


def _message_from_item(item: Any) -> str | None:
    if isinstance(item, str):
        return item
    if isinstance(item, dict) and isinstance(item.get("msg"), str):
        loc = [str(part) for part in item.get("loc") or [] if part not in {"body", "query", "path"}]
        return f"{'.'.join(loc)}: {item['msg']}" if loc else item["msg"]
    return None


class ListingsAPIClient:
    def __init__(
        self,
        base_url: str,
        session: Session,
        *,
        timeout_seconds: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.session = session
        self.timeout_seconds = timeout_seconds
        self.client = client

    async def create_listing(self, kind: EntityKind, payload: dict[str, Any]) -> dict[str, Any]:
        return await self._request("POST", f"/{kind.path}", json=payload)

    async def list_listings(
        self,
        kind: EntityKind,
        *,
        status: str | None = None,
        q: str | None = None,
        type_value: str | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[dict[str, Any]]:
        params: dict[str, Any] = {"offset": offset}
        if status is not None:
            params["status"] = status
        if q:
            params["q"] = q
        if type_value:
            params["type"] = type_value
        if limit is not None:
            params["limit"] = limit
        return await self._request("GET", f"/{kind.path}", params=params)

    async def get_listing(self, kind: EntityKind, listing_id: str) -> dict[str, Any]:
        return await self._request("GET", f"/{kind.path}/{listing_id}")

    async def update_listing(self, kind: EntityKind, listing_id: str, payload: dict[str, Any]) -> dict[str, Any]:
        return await self._request("PATCH", f"/{kind.path}/{listing_id}", json=payload)

    async def update_listing_status(self, kind: EntityKind, listing_id: str, status: str) -> dict[str, Any]:
        return await self._request("PATCH", f"/{kind.path}/{listing_id}/status", json={"status": status})

    async def delete_listing(self, kind: EntityKind, listing_id: str) -> dict[str, Any]:
        return await self._request("DELETE", f"/{kind.path}/{listing_id}")

    async def submit_answers(self, kind: EntityKind, answers: list[dict[str, str]]) -> dict[str, Any]:
        return await self._request("POST", f"/{kind.path}/answers", json={"answers": answers})

    async def list_applications(self, kind: EntityKind, listing_id: str, *, page: int, limit: int) -> dict[str, Any]:
        return await self._request(
            "GET",
            f"/{kind.path}/{listing_id}/applications",
            params={"page": page, "limit": limit},
        )

    async def create_comment(
        self,
        research_news_id: str,
        text: str,
        parent_comment_id: str | None = None,
    ) -> dict[str, Any]:
        payload = {"research_news_id": research_news_id, "text": text, "parent_comment_id": parent_comment_id}
        return await self._request("POST", "/research-news/comment", json=payload)

    async def list_top_level_comments(self, research_news_id: str) -> list[dict[str, Any]]:
        return await self._request("GET", f"/research-news/comment/top-level/{research_news_id}")

    async def list_comment_replies(self, comment_id: str) -> list[dict[str, Any]]:
        return await self._request("GET", f"/research-news/comment/replies/{comment_id}")

    async def delete_comment(self, comment_id: str) -> None:
        await self._request("DELETE", f"/research-news/comments/{comment_id}")

    async def create_slot(self, *, starts_at: str, ends_at: str) -> dict[str, Any]:
        return await self._request("POST", "/booking/slots", json={"starts_at": starts_at, "ends_at": ends_at})

    async def list_slots(self, *, mentor_id: str | None = None, available_only: bool = True) -> list[dict[str, Any]]:
        params: dict[str, Any] = {"available_only": str(available_only).lower()}
        if mentor_id:
            params["mentor_id"] = mentor_id
        return await self._request("GET", "/booking/slots", params=params)

    async def book_slot(self, slot_id: str) -> dict[str, Any]:
        return await self._request("POST", "/booking", json={"slot_id": slot_id})

    async def get_profile(self) -> dict[str, Any]:
        return await self._request("GET", "/profile")

    async def put_profile(self, payload: dict[str, Any]) -> dict[str, Any]:
        return await self._request("PUT", "/profile", json=payload)

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        if self.client is not None:
            return await self._send(self.client, method, path, **kwargs)
        async with httpx.AsyncClient(timeout=self.timeout_seconds) as temp_client:
            return await self._send(temp_client, method, path, **kwargs)

    async def _send(self, client: httpx.AsyncClient, method: str, path: str, **kwargs: Any) -> Any:
        try:
            response = await client.request(
                method,
                f"{self.base_url}{path}",
                headers=self.session.auth_headers(),
                **kwargs,
            )
        except httpx.TransportError as exc:
            logger.warning("api request failed method=%s path=%s error=%s", method, path, exc)
            raise ApiError(None, [NETWORK_ERROR_MESSAGE], network=True) from exc

        if response.is_error:
            try:
                body = response.json()
            except ValueError:
                body = None
            messages = extract_error_messages(body)
            logger.info(
                "api request rejected method=%s path=%s status=%s messages=%s",
                method,
                path,
                response.status_code,
                messages,
            )
            raise ApiError(response.status_code, messages)

        if response.status_code == httpx.codes.NO_CONTENT or not response.content:
            return None
        return response.json()
