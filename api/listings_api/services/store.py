from __future__ import annotations

import copy
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from listings_api.services.listing_kinds import RESEARCH_NEWS, ListingKind, ListingStatus
from listings_api.services.repository import (
    RepositoryConflictError,
    RepositoryForbiddenError,
    RepositoryNotFoundError,
    RepositoryValidationError,
    build_search_text,
    check_answer_batch,
    ensure_questions_mutable,
    normalize_questions,
    validate_status_transition,
)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class InMemoryRepository:
    """Process-local repository for tests and RS_STORAGE_BACKEND=memory."""

    def __init__(self) -> None:
        self.listings: dict[str, dict[str, Any]] = {}
        self.answers: list[dict[str, Any]] = []
        self.comments: dict[str, dict[str, Any]] = {}
        self.slots: dict[str, dict[str, Any]] = {}
        self.profiles: dict[str, dict[str, Any]] = {}

    async def close(self) -> None:
        return None

    async def create_listing(
        self,
        *,
        kind: ListingKind,
        organization_id: str | None,
        author_id: str,
        fields: dict[str, Any],
        status: ListingStatus,
        has_application_form: bool,
        questions: list[dict[str, Any]],
    ) -> dict[str, Any]:
        listing_id = str(uuid4())
        now = _now()
        self.listings[listing_id] = {
            **fields,
            "id": listing_id,
            "kind": kind.key,
            "status": status.value,
            "organization_id": organization_id,
            "author_id": author_id,
            "has_application_form": has_application_form,
            "view_count": 0,
            "application_count": 0,
            "questions": self._with_ids(normalize_questions(questions if has_application_form else [])),
            "search_text": build_search_text(kind, fields),
            "created_at": now,
            "updated_at": now,
        }
        return self._public(self.listings[listing_id])

    async def list_listings(
        self,
        *,
        kind: ListingKind,
        status: ListingStatus | None,
        q: str | None,
        type_value: str | None,
        organization_id: str | None,
        limit: int,
        offset: int,
    ) -> list[dict[str, Any]]:
        needle = (q or "").strip().lower()
        wanted_type = (type_value or "").strip()
        rows = []
        for row in self.listings.values():
            if row["kind"] != kind.key:
                continue
            if status is not None and row["status"] != status.value:
                continue
            if organization_id is not None and row["organization_id"] != organization_id:
                continue
            if needle and needle not in str(row[kind.title_field]).lower() and needle not in row["search_text"]:
                continue
            if wanted_type and kind.type_field and row.get(kind.type_field) != wanted_type:
                continue
            rows.append(row)
        rows.sort(key=lambda row: (row["created_at"], row["id"]), reverse=True)
        return [self._public(row) for row in rows[offset : offset + limit]]

    async def get_listing(
        self,
        *,
        kind: ListingKind,
        listing_id: str,
        organization_id: str | None = None,
        live_only: bool = False,
    ) -> dict[str, Any]:
        return self._public(self._require(kind, listing_id, organization_id=organization_id, live_only=live_only))

    async def update_listing(
        self,
        *,
        kind: ListingKind,
        listing_id: str,
        organization_id: str | None,
        fields: dict[str, Any],
        has_application_form: bool | None,
        questions: list[dict[str, Any]] | None,
    ) -> dict[str, Any]:
        row = self._require(kind, listing_id, organization_id=organization_id)
        form_enabled = row["has_application_form"] if has_application_form is None else has_application_form
        replace_questions = questions is not None or not form_enabled
        if replace_questions:
            ensure_questions_mutable(application_count=row["application_count"])

        row.update(fields)
        row["has_application_form"] = form_enabled
        if replace_questions:
            row["questions"] = self._with_ids(normalize_questions(questions if form_enabled else []))
        row["search_text"] = build_search_text(kind, row)
        row["updated_at"] = _now()
        return self._public(row)

    async def update_listing_status(
        self,
        *,
        kind: ListingKind,
        listing_id: str,
        organization_id: str | None,
        status: ListingStatus,
    ) -> dict[str, Any]:
        row = self._require(kind, listing_id, organization_id=organization_id)
        validate_status_transition(from_status=row["status"], to_status=status.value)
        if row["status"] != status.value:
            row["status"] = status.value
            row["updated_at"] = _now()
        return self._public(row)

    async def delete_listing(self, *, kind: ListingKind, listing_id: str, organization_id: str | None) -> None:
        self._require(kind, listing_id, organization_id=organization_id)
        del self.listings[listing_id]
        self.answers = [answer for answer in self.answers if answer["listing_id"] != listing_id]
        if kind.key == RESEARCH_NEWS.key:
            self.comments = {
                comment_id: comment
                for comment_id, comment in self.comments.items()
                if comment["research_news_id"] != listing_id
            }

    async def submit_answers(
        self,
        *,
        kind: ListingKind,
        student_id: str,
        answers: list[dict[str, Any]],
    ) -> dict[str, Any]:
        listings = {row["id"]: row for row in self.listings.values() if row["kind"] == kind.key}
        questions = {
            question["id"]: {**question, "listing_id": listing_id}
            for listing_id, row in listings.items()
            for question in row["questions"]
        }
        grouped = check_answer_batch(answers=answers, questions=questions, listings=listings)

        for listing_id in grouped:
            if any(a["listing_id"] == listing_id and a["student_id"] == student_id for a in self.answers):
                raise RepositoryConflictError("application already submitted")

        submitted = 0
        now = _now()
        for listing_id, rows in grouped.items():
            for item in rows:
                self.answers.append(
                    {
                        "id": str(uuid4()),
                        "listing_id": listing_id,
                        "question_id": item["question_id"],
                        "student_id": student_id,
                        "answer": item["answer"],
                        "created_at": now,
                    }
                )
                submitted += 1
            listings[listing_id]["application_count"] += 1
        return {"submitted": submitted, "listing_ids": sorted(grouped)}

    async def list_applications(
        self,
        *,
        kind: ListingKind,
        listing_id: str,
        organization_id: str | None,
        page: int,
        limit: int,
    ) -> dict[str, Any]:
        row = self._require(kind, listing_id, organization_id=organization_id)
        questions = {question["id"]: question for question in row["questions"]}
        matching = [answer for answer in self.answers if answer["listing_id"] == listing_id]
        matching.sort(key=lambda answer: (answer["created_at"], -questions[answer["question_id"]]["position"]), reverse=True)
        start = (page - 1) * limit
        return {
            "total": len(matching),
            "page": page,
            "limit": limit,
            "data": [
                {
                    "id": answer["id"],
                    "answer": answer["answer"],
                    "student_id": answer["student_id"],
                    "created_at": answer["created_at"],
                    "question": copy.deepcopy(questions[answer["question_id"]]),
                }
                for answer in matching[start : start + limit]
            ],
        }

    async def create_comment(
        self,
        *,
        research_news_id: str,
        parent_comment_id: str | None,
        text: str,
        student_id: str,
    ) -> dict[str, Any]:
        self._require(RESEARCH_NEWS, research_news_id, live_only=True)
        if parent_comment_id:
            parent = self.comments.get(parent_comment_id)
            if parent is None or parent["research_news_id"] != research_news_id:
                raise RepositoryNotFoundError("parent comment not found")
            if parent["parent_comment_id"] is not None:
                raise RepositoryValidationError("replies cannot be nested more than one level")

        comment_id = str(uuid4())
        self.comments[comment_id] = {
            "id": comment_id,
            "research_news_id": research_news_id,
            "parent_comment_id": parent_comment_id or None,
            "text": text,
            "student_id": student_id,
            "created_at": _now(),
        }
        return self._comment_out(self.comments[comment_id])

    async def list_top_level_comments(self, *, research_news_id: str) -> list[dict[str, Any]]:
        self._require(RESEARCH_NEWS, research_news_id, live_only=True)
        rows = [
            comment
            for comment in self.comments.values()
            if comment["research_news_id"] == research_news_id and comment["parent_comment_id"] is None
        ]
        rows.sort(key=lambda comment: comment["created_at"], reverse=True)
        return [self._comment_out(comment) for comment in rows]

    async def list_comment_replies(self, *, comment_id: str) -> list[dict[str, Any]]:
        rows = [comment for comment in self.comments.values() if comment["parent_comment_id"] == comment_id]
        rows.sort(key=lambda comment: comment["created_at"])
        return [self._comment_out(comment) for comment in rows]

    async def delete_comment(self, *, comment_id: str, student_id: str) -> None:
        comment = self.comments.get(comment_id)
        if comment is None:
            raise RepositoryNotFoundError("comment not found")
        if comment["student_id"] != student_id:
            raise RepositoryForbiddenError("only the author can delete this comment")
        del self.comments[comment_id]
        for reply_id in [key for key, value in self.comments.items() if value["parent_comment_id"] == comment_id]:
            del self.comments[reply_id]

    async def create_slot(self, *, mentor_id: str, starts_at: datetime, ends_at: datetime) -> dict[str, Any]:
        slot_id = str(uuid4())
        self.slots[slot_id] = {
            "id": slot_id,
            "mentor_id": mentor_id,
            "starts_at": starts_at,
            "ends_at": ends_at,
            "booked_by": None,
        }
        return dict(self.slots[slot_id])

    async def list_slots(self, *, mentor_id: str | None, available_only: bool) -> list[dict[str, Any]]:
        rows = [
            slot
            for slot in self.slots.values()
            if (not mentor_id or slot["mentor_id"] == mentor_id) and not (available_only and slot["booked_by"])
        ]
        rows.sort(key=lambda slot: slot["starts_at"])
        return [dict(slot) for slot in rows]

    async def book_slot(self, *, slot_id: str, student_id: str) -> dict[str, Any]:
        slot = self.slots.get(slot_id)
        if slot is None:
            raise RepositoryNotFoundError("slot not found")
        if slot["booked_by"] is not None:
            raise RepositoryConflictError("slot no longer available")
        slot["booked_by"] = student_id
        return dict(slot)

    async def get_profile(self, *, organization_id: str) -> dict[str, Any]:
        profile = self.profiles.get(organization_id)
        if profile is None:
            raise RepositoryNotFoundError("profile not found")
        return dict(profile)

    async def upsert_profile(self, *, organization_id: str, fields: dict[str, Any]) -> dict[str, Any]:
        self.profiles[organization_id] = {**fields, "organization_id": organization_id, "updated_at": _now()}
        return dict(self.profiles[organization_id])

    def _require(
        self,
        kind: ListingKind,
        listing_id: str,
        *,
        organization_id: str | None = None,
        live_only: bool = False,
    ) -> dict[str, Any]:
        row = self.listings.get(listing_id)
        if (
            row is None
            or row["kind"] != kind.key
            or (organization_id is not None and row["organization_id"] != organization_id)
            or (live_only and row["status"] != ListingStatus.LIVE.value)
        ):
            raise RepositoryNotFoundError(f"{kind.label} not found")
        return row

    def _comment_out(self, comment: dict[str, Any]) -> dict[str, Any]:
        replies = sum(1 for other in self.comments.values() if other["parent_comment_id"] == comment["id"])
        return {**comment, "replies_count": replies if comment["parent_comment_id"] is None else 0}

    @staticmethod
    def _with_ids(questions: list[dict[str, Any]]) -> list[dict[str, Any]]:
        return [{**question, "id": str(uuid4())} for question in questions]

    @staticmethod
    def _public(row: dict[str, Any]) -> dict[str, Any]:
        public = copy.deepcopy(row)
        public.pop("search_text", None)
        return public
