from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from listings_client.core.entities import EntityKind, ListingStatus
from listings_client.core.telemetry import mutation_span
from listings_client.forms.listing_form import validate_listing_payload
from listings_client.services.api_client import ApiError, ListingsAPIClient
from listings_client.services.notifications import Notifier
from listings_client.services.query_cache import QueryCache, QueryKey

SLOT_TAKEN_MESSAGE = "This slot is no longer available"


@dataclass(slots=True)
class MutationResult:
    ok: bool
    data: Any = None
    errors: list[str] = field(default_factory=list)
    field_errors: dict[str, str] = field(default_factory=dict)


class _Resource:
    def __init__(self, api: ListingsAPIClient, cache: QueryCache, notifier: Notifier) -> None:
        self.api = api
        self.cache = cache
        self.notifier = notifier

    def _failed(self, exc: ApiError) -> MutationResult:
        self.notifier.errors(exc.messages)
        return MutationResult(ok=False, errors=list(exc.messages))


class ListingResource(_Resource):
    """Queries and mutations for one listing kind."""

    def __init__(
        self,
        kind: EntityKind,
        api: ListingsAPIClient,
        cache: QueryCache,
        notifier: Notifier,
        *,
        applications_page_size: int = 10,
    ) -> None:
        super().__init__(api, cache, notifier)
        self.kind = kind
        self.applications_page_size = applications_page_size

    def list_key(self, status: ListingStatus | str, *, q: str | None = None, type_value: str | None = None) -> QueryKey:
        key: QueryKey = (self.kind.query_key, self.kind.to_wire(status))
        if q:
            key += (("q", q),)
        if type_value:
            key += (("type", type_value),)
        return key

    def detail_key(self, listing_id: str) -> QueryKey:
        return (self.kind.query_key, listing_id)

    def applications_key(self, listing_id: str, page: int, limit: int) -> QueryKey:
        return (self.kind.applications_key, listing_id, page, limit)

    async def list_by_status(
        self,
        status: ListingStatus | str,
        *,
        q: str | None = None,
        type_value: str | None = None,
    ) -> list[dict[str, Any]]:
        return await self.cache.fetch(
            self.list_key(status, q=q, type_value=type_value),
            self.list_fetcher(status, q=q, type_value=type_value),
        )

    def list_fetcher(self, status: ListingStatus | str, *, q: str | None = None, type_value: str | None = None):
        wire = self.kind.to_wire(status)

        async def fetch() -> list[dict[str, Any]]:
            return await self.api.list_listings(self.kind, status=wire, q=q, type_value=type_value)

        return fetch

    async def get_by_id(self, listing_id: str) -> dict[str, Any]:
        async def fetch() -> dict[str, Any]:
            return await self.api.get_listing(self.kind, listing_id)

        return await self.cache.fetch(self.detail_key(listing_id), fetch)

    async def create(self, payload: dict[str, Any], reset: Callable[[], None] | None = None) -> MutationResult:
        field_errors = validate_listing_payload(self.kind, payload)
        if field_errors:
            return MutationResult(ok=False, field_errors=field_errors)

        target = self.kind.parse_status(payload.get("status") or ListingStatus.DRAFT)
        body = {**payload, "status": self.kind.to_wire(target)}
        try:
            with mutation_span(self.kind.path, "create"):
                created = await self.api.create_listing(self.kind, body)
        except ApiError as exc:
            return self._failed(exc)

        if target is ListingStatus.LIVE:
            self.notifier.success(f"{self.kind.label} published successfully")
        else:
            self.notifier.success(f"{self.kind.label} saved as draft successfully")
        if reset is not None:
            reset()
        await self.cache.invalidate((self.kind.query_key,))
        return MutationResult(ok=True, data=created)

    async def update(self, listing_id: str, payload: dict[str, Any]) -> MutationResult:
        if "status" in payload:
            return MutationResult(ok=False, field_errors={"status": "Use update_status to change the status"})
        field_errors = validate_listing_payload(self.kind, payload, partial=True)
        if field_errors:
            return MutationResult(ok=False, field_errors=field_errors)

        try:
            with mutation_span(self.kind.path, "update", listing_id):
                updated = await self.api.update_listing(self.kind, listing_id, payload)
        except ApiError as exc:
            return self._failed(exc)
        self.notifier.success(f"{self.kind.label} updated successfully")
        await self.cache.invalidate((self.kind.query_key,))
        return MutationResult(ok=True, data=updated)

    async def update_status(self, listing_id: str, new_status: ListingStatus | str) -> MutationResult:
        try:
            target = self.kind.parse_status(new_status)
        except ValueError as exc:
            return MutationResult(ok=False, field_errors={"status": str(exc)})

        try:
            with mutation_span(self.kind.path, "update_status", listing_id) as span:
                span.set_attribute("listing.status", target.value)
                updated = await self.api.update_listing_status(self.kind, listing_id, self.kind.to_wire(target))
        except ApiError as exc:
            return self._failed(exc)
        self.notifier.success(f"{self.kind.label} moved to {target.value} successfully")
        await self.cache.invalidate((self.kind.query_key,))
        return MutationResult(ok=True, data=updated)

    async def delete(self, listing_id: str) -> MutationResult:
        try:
            with mutation_span(self.kind.path, "delete", listing_id):
                deleted = await self.api.delete_listing(self.kind, listing_id)
        except ApiError as exc:
            return self._failed(exc)
        self.notifier.success(f"{self.kind.label} deleted successfully")
        await self.cache.invalidate((self.kind.query_key,))
        return MutationResult(ok=True, data=deleted)

    async def submit_application(self, answers: dict[str, str]) -> MutationResult:
        body = [{"question_id": question_id, "answer": answer} for question_id, answer in answers.items()]
        try:
            with mutation_span(self.kind.path, "submit_application"):
                accepted = await self.api.submit_answers(self.kind, body)
        except ApiError as exc:
            return self._failed(exc)
        self.notifier.success("Application submitted successfully")
        if self.kind.applications_key:
            await self.cache.invalidate((self.kind.applications_key,))
        return MutationResult(ok=True, data=accepted)

    async def list_applications(self, listing_id: str, *, page: int = 1, limit: int | None = None) -> dict[str, Any]:
        limit = limit or self.applications_page_size
        if not self.kind.supports_applications:
            raise ValueError(f"{self.kind.label} listings do not take applications")

        async def fetch() -> dict[str, Any]:
            return await self.api.list_applications(self.kind, listing_id, page=page, limit=limit)

        return await self.cache.fetch(self.applications_key(listing_id, page, limit), fetch)


class CommentResource(_Resource):
    """Research-news discussion threads."""

    query_key = "research-news-comments"

    async def top_level(self, research_news_id: str) -> list[dict[str, Any]]:
        async def fetch() -> list[dict[str, Any]]:
            return await self.api.list_top_level_comments(research_news_id)

        return await self.cache.fetch((self.query_key, research_news_id), fetch)

    async def replies(self, comment_id: str) -> list[dict[str, Any]]:
        async def fetch() -> list[dict[str, Any]]:
            return await self.api.list_comment_replies(comment_id)

        return await self.cache.fetch((self.query_key, "replies", comment_id), fetch)

    async def post(self, research_news_id: str, text: str, parent_comment_id: str | None = None) -> MutationResult:
        if not text.strip():
            return MutationResult(ok=False, field_errors={"text": "Comment cannot be empty"})
        try:
            comment = await self.api.create_comment(research_news_id, text.strip(), parent_comment_id)
        except ApiError as exc:
            return self._failed(exc)
        self.notifier.success("Comment posted successfully")
        await self.cache.invalidate((self.query_key,))
        return MutationResult(ok=True, data=comment)

    async def delete(self, comment_id: str) -> MutationResult:
        try:
            await self.api.delete_comment(comment_id)
        except ApiError as exc:
            return self._failed(exc)
        self.notifier.success("Comment deleted successfully")
        await self.cache.invalidate((self.query_key,))
        return MutationResult(ok=True, data={"id": comment_id})


class BookingResource(_Resource):
    query_key = "booking-slots"

    async def slots(self, mentor_id: str | None = None) -> list[dict[str, Any]]:
        async def fetch() -> list[dict[str, Any]]:
            return await self.api.list_slots(mentor_id=mentor_id)

        return await self.cache.fetch((self.query_key, mentor_id), fetch)

    async def create_slot(self, starts_at: datetime, ends_at: datetime) -> MutationResult:
        if ends_at <= starts_at:
            return MutationResult(ok=False, field_errors={"ends_at": "End time must be after start time"})
        try:
            slot = await self.api.create_slot(starts_at=starts_at.isoformat(), ends_at=ends_at.isoformat())
        except ApiError as exc:
            return self._failed(exc)
        self.notifier.success("Slot created successfully")
        await self.cache.invalidate((self.query_key,))
        return MutationResult(ok=True, data=slot)

    async def book(self, slot_id: str) -> MutationResult:
        try:
            with mutation_span("booking", "book", slot_id):
                slot = await self.api.book_slot(slot_id)
        except ApiError as exc:
            if exc.status_code == 409:
                self.notifier.error(SLOT_TAKEN_MESSAGE)
                await self.cache.invalidate((self.query_key,))
                return MutationResult(ok=False, errors=[SLOT_TAKEN_MESSAGE])
            return self._failed(exc)
        self.notifier.success("Slot booked successfully")
        await self.cache.invalidate((self.query_key,))
        return MutationResult(ok=True, data=slot)


class ProfileResource(_Resource):
    query_key = "organization-profile"

    async def load(self) -> dict[str, Any] | None:
        async def fetch() -> dict[str, Any] | None:
            try:
                return await self.api.get_profile()
            except ApiError as exc:
                if exc.status_code == 404:
                    return None
                raise

        return await self.cache.fetch((self.query_key,), fetch)

    async def save(self, fields: dict[str, Any]) -> MutationResult:
        if not str(fields.get("name") or "").strip():
            return MutationResult(ok=False, field_errors={"name": "Name is required"})
        try:
            profile = await self.api.put_profile(fields)
        except ApiError as exc:
            return self._failed(exc)
        self.notifier.success("Profile saved successfully")
        await self.cache.invalidate((self.query_key,))
        return MutationResult(ok=True, data=profile)
