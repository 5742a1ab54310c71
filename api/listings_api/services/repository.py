from __future__ import annotations

import json
import logging
from datetime import datetime
from functools import lru_cache
from typing import Any, Protocol

import asyncpg  # type: ignore[import-untyped]
from asyncpg import exceptions as pg_exc

from listings_api.core.config import get_settings
from listings_api.services.listing_kinds import (
    ALLOWED_STATUS_TRANSITIONS,
    LISTING_KINDS,
    RESEARCH_NEWS,
    ListingKind,
    ListingStatus,
)

logger = logging.getLogger(__name__)

CHOICE_QUESTION_TYPES = {"Radio Buttons", "Dropdown"}
MULTI_CHOICE_QUESTION_TYPES = {"Checkboxes"}


class RepositoryError(Exception):
    """Base repository error."""


class RepositoryUnavailableError(RepositoryError):
    """Raised when the database is unavailable or not configured."""


class RepositoryNotFoundError(RepositoryError):
    """Raised when the requested entity does not exist."""


class RepositoryConflictError(RepositoryError):
    """Raised when an operation violates state transition rules."""


class RepositoryForbiddenError(RepositoryError):
    """Raised when an operation is not permitted for the actor."""


class RepositoryValidationError(RepositoryError):
    """Raised when payload validation fails before persistence."""


class ListingRepository(Protocol):
    async def close(self) -> None: ...

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
    ) -> dict[str, Any]: ...

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
    ) -> list[dict[str, Any]]: ...

    async def get_listing(
        self,
        *,
        kind: ListingKind,
        listing_id: str,
        organization_id: str | None = None,
        live_only: bool = False,
    ) -> dict[str, Any]: ...

    async def update_listing(
        self,
        *,
        kind: ListingKind,
        listing_id: str,
        organization_id: str | None,
        fields: dict[str, Any],
        has_application_form: bool | None,
        questions: list[dict[str, Any]] | None,
    ) -> dict[str, Any]: ...

    async def update_listing_status(
        self,
        *,
        kind: ListingKind,
        listing_id: str,
        organization_id: str | None,
        status: ListingStatus,
    ) -> dict[str, Any]: ...

    async def delete_listing(self, *, kind: ListingKind, listing_id: str, organization_id: str | None) -> None: ...

    async def submit_answers(
        self,
        *,
        kind: ListingKind,
        student_id: str,
        answers: list[dict[str, Any]],
    ) -> dict[str, Any]: ...

    async def list_applications(
        self,
        *,
        kind: ListingKind,
        listing_id: str,
        organization_id: str | None,
        page: int,
        limit: int,
    ) -> dict[str, Any]: ...

    async def create_comment(
        self,
        *,
        research_news_id: str,
        parent_comment_id: str | None,
        text: str,
        student_id: str,
    ) -> dict[str, Any]: ...

    async def list_top_level_comments(self, *, research_news_id: str) -> list[dict[str, Any]]: ...

    async def list_comment_replies(self, *, comment_id: str) -> list[dict[str, Any]]: ...

    async def delete_comment(self, *, comment_id: str, student_id: str) -> None: ...

    async def create_slot(self, *, mentor_id: str, starts_at: datetime, ends_at: datetime) -> dict[str, Any]: ...

    async def list_slots(self, *, mentor_id: str | None, available_only: bool) -> list[dict[str, Any]]: ...

    async def book_slot(self, *, slot_id: str, student_id: str) -> dict[str, Any]: ...

    async def get_profile(self, *, organization_id: str) -> dict[str, Any]: ...

    async def upsert_profile(self, *, organization_id: str, fields: dict[str, Any]) -> dict[str, Any]: ...


def validate_status_transition(*, from_status: str, to_status: str) -> None:
    if to_status == from_status:
        return
    allowed = ALLOWED_STATUS_TRANSITIONS.get(ListingStatus(from_status), set())
    if ListingStatus(to_status) not in allowed:
        raise RepositoryConflictError(f"invalid status transition: {from_status} -> {to_status}")


def normalize_questions(questions: list[dict[str, Any]] | None) -> list[dict[str, Any]]:
    normalized: list[dict[str, Any]] = []
    for position, question in enumerate(questions or []):
        normalized.append(
            {
                "label": str(question["label"]).strip(),
                "type": question["type"],
                "required": bool(question.get("required", False)),
                "options": [str(option).strip() for option in question.get("options") or []],
                "position": position,
            }
        )
    return normalized


def build_search_text(kind: ListingKind, fields: dict[str, Any]) -> str:
    chunks = [str(fields.get(name) or "") for name in kind.search_fields]
    return " ".join(chunk for chunk in chunks if chunk).lower()


def ensure_questions_mutable(*, application_count: int) -> None:
    if application_count > 0:
        raise RepositoryConflictError("questions cannot change after applications were received")


def check_answer_batch(
    *,
    answers: list[dict[str, Any]],
    questions: dict[str, dict[str, Any]],
    listings: dict[str, dict[str, Any]],
) -> dict[str, list[dict[str, Any]]]:
    """Validate a batch of answers and group the non-empty ones by listing id.

    ``questions`` maps question id to the question row (carrying ``listing_id``);
    ``listings`` maps listing id to the listing row including its ``questions``.
    """
    seen: set[str] = set()
    grouped: dict[str, list[dict[str, Any]]] = {}
    for item in answers:
        question_id = item["question_id"]
        question = questions.get(question_id)
        if question is None:
            raise RepositoryValidationError(f"question not found: {question_id}")
        if question_id in seen:
            raise RepositoryValidationError(f"duplicate answer for question: {question['label']}")
        seen.add(question_id)

        listing = listings[question["listing_id"]]
        if listing["status"] != ListingStatus.LIVE.value or not listing["has_application_form"]:
            raise RepositoryConflictError("listing is not accepting applications")

        answer = str(item.get("answer") or "").strip()
        if not answer:
            continue
        _check_choice_answer(question, answer)
        grouped.setdefault(listing["id"], []).append({"question_id": question_id, "answer": answer})

    for listing_id in {question["listing_id"] for question in questions.values() if question["id"] in seen}:
        answered = {row["question_id"] for row in grouped.get(listing_id, [])}
        missing = [
            question["label"]
            for question in listings[listing_id]["questions"]
            if question["required"] and question["id"] not in answered
        ]
        if missing:
            raise RepositoryValidationError(f"missing required answers: {', '.join(missing)}")
    return grouped


def _check_choice_answer(question: dict[str, Any], answer: str) -> None:
    options = set(question.get("options") or [])
    if question["type"] in CHOICE_QUESTION_TYPES and answer not in options:
        raise RepositoryValidationError(f"invalid option for {question['label']}: {answer}")
    if question["type"] in MULTI_CHOICE_QUESTION_TYPES:
        chosen = [value.strip() for value in answer.split(",") if value.strip()]
        unknown = [value for value in chosen if value not in options]
        if unknown:
            raise RepositoryValidationError(f"invalid option for {question['label']}: {', '.join(unknown)}")


class PostgresRepository:
    def __init__(self, database_url: str | None, min_pool_size: int, max_pool_size: int) -> None:
        self.database_url = database_url
        self.min_pool_size = min_pool_size
        self.max_pool_size = max_pool_size
        self._pool: asyncpg.Pool | None = None

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None

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
        pool = await self._get_pool()
        normalized_questions = normalize_questions(questions if has_application_form else [])

        async with pool.acquire() as conn:
            async with conn.transaction():
                listing_id = await conn.fetchval(
                    """
                    insert into listings (
                      kind,
                      status,
                      organization_id,
                      author_id,
                      title,
                      type_value,
                      search_text,
                      fields,
                      has_application_form
                    )
                    values ($1, $2::listing_status, $3, $4, $5, $6, $7, $8::jsonb, $9)
                    returning id::text
                    """,
                    kind.key,
                    status.value,
                    organization_id,
                    author_id,
                    fields[kind.title_field],
                    fields.get(kind.type_field) if kind.type_field else None,
                    build_search_text(kind, fields),
                    json.dumps(fields),
                    has_application_form,
                )
                await self._insert_questions(conn=conn, listing_id=listing_id, questions=normalized_questions)
                row = await self._fetch_listing(conn=conn, kind=kind, listing_id=listing_id)

        if row is None:  # pragma: no cover - inserted in the same transaction
            raise RepositoryNotFoundError(f"{kind.label} not found")
        logger.info("listing created kind=%s id=%s status=%s", kind.key, listing_id, status.value)
        return row

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
        pool = await self._get_pool()
        conditions: list[str] = []
        params: list[Any] = []

        def bind(value: Any) -> str:
            params.append(value)
            return f"${len(params)}"

        conditions.append(f"l.kind = {bind(kind.key)}")
        if status is not None:
            conditions.append(f"l.status = {bind(status.value)}::listing_status")
        normalized_q = _coerce_text(q)
        if normalized_q:
            token = bind(f"%{normalized_q.lower()}%")
            conditions.append(f"(lower(l.title) like {token} or l.search_text like {token})")
        normalized_type = _coerce_text(type_value)
        if normalized_type and kind.type_field:
            conditions.append(f"l.type_value = {bind(normalized_type)}")
        if organization_id is not None:
            conditions.append(f"l.organization_id = {bind(organization_id)}")

        where_sql = " and ".join(conditions)
        limit_token = bind(limit)
        offset_token = bind(offset)

        rows = await pool.fetch(
            f"""
            select {_LISTING_COLUMNS}
            from listings l
            where {where_sql}
            order by l.created_at desc, l.id asc
            limit {limit_token}
            offset {offset_token}
            """,
            *params,
        )
        questions_by_listing = await self._fetch_questions(conn=pool, listing_ids=[row["id"] for row in rows])
        return [self._listing_row_to_dict(row, questions_by_listing.get(row["id"], [])) for row in rows]

    async def get_listing(
        self,
        *,
        kind: ListingKind,
        listing_id: str,
        organization_id: str | None = None,
        live_only: bool = False,
    ) -> dict[str, Any]:
        pool = await self._get_pool()
        try:
            row = await self._fetch_listing(conn=pool, kind=kind, listing_id=listing_id)
        except (pg_exc.InvalidTextRepresentationError, asyncpg.DataError) as exc:
            raise RepositoryNotFoundError(f"{kind.label} not found") from exc
        if not row or not _visible(row, organization_id=organization_id, live_only=live_only):
            raise RepositoryNotFoundError(f"{kind.label} not found")
        return row

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
        pool = await self._get_pool()
        try:
            async with pool.acquire() as conn:
                async with conn.transaction():
                    current = await self._lock_listing(conn=conn, kind=kind, listing_id=listing_id)
                    if not current or not _visible(current, organization_id=organization_id):
                        raise RepositoryNotFoundError(f"{kind.label} not found")

                    merged = {**_coerce_json_dict(current["fields"]), **fields}
                    form_enabled = (
                        bool(current["has_application_form"]) if has_application_form is None else has_application_form
                    )
                    replace_questions = questions is not None or not form_enabled
                    if replace_questions:
                        ensure_questions_mutable(application_count=int(current["application_count"]))

                    await conn.execute(
                        """
                        update listings
                        set
                          title = $2,
                          type_value = $3,
                          search_text = $4,
                          fields = $5::jsonb,
                          has_application_form = $6,
                          updated_at = now()
                        where id = $1::uuid
                        """,
                        listing_id,
                        merged[kind.title_field],
                        merged.get(kind.type_field) if kind.type_field else None,
                        build_search_text(kind, merged),
                        json.dumps(merged),
                        form_enabled,
                    )
                    if replace_questions:
                        await conn.execute("delete from listing_questions where listing_id = $1::uuid", listing_id)
                        await self._insert_questions(
                            conn=conn,
                            listing_id=listing_id,
                            questions=normalize_questions(questions if form_enabled else []),
                        )
                    row = await self._fetch_listing(conn=conn, kind=kind, listing_id=listing_id)
        except (pg_exc.InvalidTextRepresentationError, asyncpg.DataError) as exc:
            raise RepositoryNotFoundError(f"{kind.label} not found") from exc

        if row is None:  # pragma: no cover - locked in the same transaction
            raise RepositoryNotFoundError(f"{kind.label} not found")
        return row

    async def update_listing_status(
        self,
        *,
        kind: ListingKind,
        listing_id: str,
        organization_id: str | None,
        status: ListingStatus,
    ) -> dict[str, Any]:
        pool = await self._get_pool()
        try:
            async with pool.acquire() as conn:
                async with conn.transaction():
                    current = await self._lock_listing(conn=conn, kind=kind, listing_id=listing_id)
                    if not current or not _visible(current, organization_id=organization_id):
                        raise RepositoryNotFoundError(f"{kind.label} not found")

                    from_status = str(current["status"])
                    validate_status_transition(from_status=from_status, to_status=status.value)
                    await conn.execute(
                        """
                        update listings
                        set status = $2::listing_status, updated_at = now()
                        where id = $1::uuid
                        """,
                        listing_id,
                        status.value,
                    )
                    row = await self._fetch_listing(conn=conn, kind=kind, listing_id=listing_id)
        except (pg_exc.InvalidTextRepresentationError, asyncpg.DataError) as exc:
            raise RepositoryNotFoundError(f"{kind.label} not found") from exc

        if row is None:  # pragma: no cover - locked in the same transaction
            raise RepositoryNotFoundError(f"{kind.label} not found")
        logger.info(
            "listing status changed kind=%s id=%s from=%s to=%s",
            kind.key,
            listing_id,
            from_status,
            status.value,
        )
        return row

    async def delete_listing(self, *, kind: ListingKind, listing_id: str, organization_id: str | None) -> None:
        pool = await self._get_pool()
        params: list[Any] = [listing_id, kind.key]
        scope_sql = ""
        if organization_id is not None:
            params.append(organization_id)
            scope_sql = "and organization_id = $3"
        try:
            deleted = await pool.fetchval(
                f"""
                delete from listings
                where id = $1::uuid and kind = $2 {scope_sql}
                returning id::text
                """,
                *params,
            )
        except (pg_exc.InvalidTextRepresentationError, asyncpg.DataError) as exc:
            raise RepositoryNotFoundError(f"{kind.label} not found") from exc
        if not deleted:
            raise RepositoryNotFoundError(f"{kind.label} not found")
        logger.info("listing deleted kind=%s id=%s", kind.key, listing_id)

    async def submit_answers(
        self,
        *,
        kind: ListingKind,
        student_id: str,
        answers: list[dict[str, Any]],
    ) -> dict[str, Any]:
        pool = await self._get_pool()
        question_ids = [item["question_id"] for item in answers]
        try:
            async with pool.acquire() as conn:
                async with conn.transaction():
                    listing_ids = await conn.fetch(
                        """
                        select distinct q.listing_id::text as listing_id
                        from listing_questions q
                        join listings l on l.id = q.listing_id
                        where q.id = any($1::uuid[]) and l.kind = $2
                        """,
                        question_ids,
                        kind.key,
                    )
                    listings: dict[str, dict[str, Any]] = {}
                    for record in listing_ids:
                        listing = await self._lock_listing(conn=conn, kind=kind, listing_id=record["listing_id"])
                        if listing is None:  # pragma: no cover - joined above
                            continue
                        questions = await self._fetch_questions(conn=conn, listing_ids=[listing["id"]])
                        listings[listing["id"]] = self._listing_row_to_dict(listing, questions.get(listing["id"], []))

                    questions_by_id = {
                        question["id"]: {**question, "listing_id": listing_id}
                        for listing_id, listing in listings.items()
                        for question in listing["questions"]
                    }
                    grouped = check_answer_batch(answers=answers, questions=questions_by_id, listings=listings)

                    submitted = 0
                    for listing_id, rows in grouped.items():
                        already_applied = await conn.fetchval(
                            """
                            select exists (
                              select 1 from listing_answers
                              where listing_id = $1::uuid and student_id = $2
                            )
                            """,
                            listing_id,
                            student_id,
                        )
                        if already_applied:
                            raise RepositoryConflictError("application already submitted")
                        await conn.executemany(
                            """
                            insert into listing_answers (listing_id, question_id, student_id, answer)
                            values ($1::uuid, $2::uuid, $3, $4)
                            """,
                            [(listing_id, row["question_id"], student_id, row["answer"]) for row in rows],
                        )
                        await conn.execute(
                            """
                            update listings
                            set application_count = application_count + 1
                            where id = $1::uuid
                            """,
                            listing_id,
                        )
                        submitted += len(rows)
        except (pg_exc.InvalidTextRepresentationError, asyncpg.DataError) as exc:
            raise RepositoryValidationError("invalid question id") from exc

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
        await self.get_listing(kind=kind, listing_id=listing_id, organization_id=organization_id)
        pool = await self._get_pool()
        total = await pool.fetchval(
            "select count(*) from listing_answers where listing_id = $1::uuid",
            listing_id,
        )
        rows = await pool.fetch(
            """
            select
              a.id::text as id,
              a.answer,
              a.student_id,
              a.created_at,
              q.id::text as question_id,
              q.label,
              q.type,
              q.required,
              q.options,
              q.position
            from listing_answers a
            join listing_questions q on q.id = a.question_id
            where a.listing_id = $1::uuid
            order by a.created_at desc, q.position asc
            limit $2
            offset $3
            """,
            listing_id,
            limit,
            (page - 1) * limit,
        )
        return {
            "total": int(total or 0),
            "page": page,
            "limit": limit,
            "data": [
                {
                    "id": row["id"],
                    "answer": row["answer"],
                    "student_id": row["student_id"],
                    "created_at": row["created_at"],
                    "question": {
                        "id": row["question_id"],
                        "label": row["label"],
                        "type": row["type"],
                        "required": bool(row["required"]),
                        "options": list(row["options"] or []),
                        "position": int(row["position"]),
                    },
                }
                for row in rows
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
        await self.get_listing(kind=RESEARCH_NEWS, listing_id=research_news_id, live_only=True)
        pool = await self._get_pool()
        try:
            if parent_comment_id:
                parent = await pool.fetchrow(
                    """
                    select research_news_id::text as research_news_id, parent_comment_id
                    from research_news_comments
                    where id = $1::uuid
                    """,
                    parent_comment_id,
                )
                if not parent or parent["research_news_id"] != research_news_id:
                    raise RepositoryNotFoundError("parent comment not found")
                if parent["parent_comment_id"] is not None:
                    raise RepositoryValidationError("replies cannot be nested more than one level")

            row = await pool.fetchrow(
                f"""
                insert into research_news_comments (research_news_id, parent_comment_id, text, student_id)
                values ($1::uuid, $2::uuid, $3, $4)
                returning {_COMMENT_COLUMNS}, 0 as replies_count
                """,
                research_news_id,
                parent_comment_id,
                text,
                student_id,
            )
        except (pg_exc.InvalidTextRepresentationError, asyncpg.DataError) as exc:
            raise RepositoryNotFoundError("parent comment not found") from exc
        return dict(row)

    async def list_top_level_comments(self, *, research_news_id: str) -> list[dict[str, Any]]:
        await self.get_listing(kind=RESEARCH_NEWS, listing_id=research_news_id, live_only=True)
        pool = await self._get_pool()
        rows = await pool.fetch(
            f"""
            select
              {_COMMENT_COLUMNS},
              (select count(*) from research_news_comments r where r.parent_comment_id = c.id) as replies_count
            from research_news_comments c
            where c.research_news_id = $1::uuid and c.parent_comment_id is null
            order by c.created_at desc
            """,
            research_news_id,
        )
        return [dict(row) for row in rows]

    async def list_comment_replies(self, *, comment_id: str) -> list[dict[str, Any]]:
        pool = await self._get_pool()
        try:
            rows = await pool.fetch(
                f"""
                select {_COMMENT_COLUMNS}, 0 as replies_count
                from research_news_comments c
                where c.parent_comment_id = $1::uuid
                order by c.created_at asc
                """,
                comment_id,
            )
        except (pg_exc.InvalidTextRepresentationError, asyncpg.DataError) as exc:
            raise RepositoryNotFoundError("comment not found") from exc
        return [dict(row) for row in rows]

    async def delete_comment(self, *, comment_id: str, student_id: str) -> None:
        pool = await self._get_pool()
        try:
            owner = await pool.fetchval(
                "select student_id from research_news_comments where id = $1::uuid",
                comment_id,
            )
        except (pg_exc.InvalidTextRepresentationError, asyncpg.DataError) as exc:
            raise RepositoryNotFoundError("comment not found") from exc
        if owner is None:
            raise RepositoryNotFoundError("comment not found")
        if owner != student_id:
            raise RepositoryForbiddenError("only the author can delete this comment")
        await pool.execute("delete from research_news_comments where id = $1::uuid", comment_id)

    async def create_slot(self, *, mentor_id: str, starts_at: datetime, ends_at: datetime) -> dict[str, Any]:
        pool = await self._get_pool()
        row = await pool.fetchrow(
            f"""
            insert into booking_slots (mentor_id, starts_at, ends_at)
            values ($1, $2, $3)
            returning {_SLOT_COLUMNS}
            """,
            mentor_id,
            starts_at,
            ends_at,
        )
        return dict(row)

    async def list_slots(self, *, mentor_id: str | None, available_only: bool) -> list[dict[str, Any]]:
        pool = await self._get_pool()
        conditions = ["true"]
        params: list[Any] = []
        if mentor_id:
            params.append(mentor_id)
            conditions.append(f"mentor_id = ${len(params)}")
        if available_only:
            conditions.append("booked_by is null")
        rows = await pool.fetch(
            f"""
            select {_SLOT_COLUMNS}
            from booking_slots
            where {' and '.join(conditions)}
            order by starts_at asc
            """,
            *params,
        )
        return [dict(row) for row in rows]

    async def book_slot(self, *, slot_id: str, student_id: str) -> dict[str, Any]:
        pool = await self._get_pool()
        try:
            row = await pool.fetchrow(
                f"""
                update booking_slots
                set booked_by = $2, booked_at = now()
                where id = $1::uuid and booked_by is null
                returning {_SLOT_COLUMNS}
                """,
                slot_id,
                student_id,
            )
            if row is not None:
                return dict(row)
            exists = await pool.fetchval("select exists (select 1 from booking_slots where id = $1::uuid)", slot_id)
        except (pg_exc.InvalidTextRepresentationError, asyncpg.DataError) as exc:
            raise RepositoryNotFoundError("slot not found") from exc
        if not exists:
            raise RepositoryNotFoundError("slot not found")
        raise RepositoryConflictError("slot no longer available")

    async def get_profile(self, *, organization_id: str) -> dict[str, Any]:
        pool = await self._get_pool()
        row = await pool.fetchrow(
            f"select {_PROFILE_COLUMNS} from organization_profiles where organization_id = $1",
            organization_id,
        )
        if not row:
            raise RepositoryNotFoundError("profile not found")
        return dict(row)

    async def upsert_profile(self, *, organization_id: str, fields: dict[str, Any]) -> dict[str, Any]:
        pool = await self._get_pool()
        row = await pool.fetchrow(
            f"""
            insert into organization_profiles (
              organization_id, name, description, website, email, country, city, founded_year
            )
            values ($1, $2, $3, $4, $5, $6, $7, $8)
            on conflict (organization_id) do update
            set
              name = excluded.name,
              description = excluded.description,
              website = excluded.website,
              email = excluded.email,
              country = excluded.country,
              city = excluded.city,
              founded_year = excluded.founded_year,
              updated_at = now()
            returning {_PROFILE_COLUMNS}
            """,
            organization_id,
            fields["name"],
            fields.get("description"),
            fields.get("website"),
            fields.get("email"),
            fields.get("country"),
            fields.get("city"),
            fields.get("founded_year"),
        )
        return dict(row)

    async def _insert_questions(
        self,
        *,
        conn: asyncpg.Connection,
        listing_id: str,
        questions: list[dict[str, Any]],
    ) -> None:
        if not questions:
            return
        await conn.executemany(
            """
            insert into listing_questions (listing_id, position, label, type, required, options)
            values ($1::uuid, $2, $3, $4, $5, $6::text[])
            """,
            [
                (
                    listing_id,
                    question["position"],
                    question["label"],
                    question["type"],
                    question["required"],
                    question["options"],
                )
                for question in questions
            ],
        )

    async def _lock_listing(
        self,
        *,
        conn: asyncpg.Connection,
        kind: ListingKind,
        listing_id: str,
    ) -> asyncpg.Record | None:
        return await conn.fetchrow(
            f"""
            select {_LISTING_COLUMNS}
            from listings l
            where l.id = $1::uuid and l.kind = $2
            for update
            """,
            listing_id,
            kind.key,
        )

    async def _fetch_listing(
        self,
        *,
        conn: asyncpg.Connection | asyncpg.Pool,
        kind: ListingKind,
        listing_id: str,
    ) -> dict[str, Any] | None:
        row = await conn.fetchrow(
            f"""
            select {_LISTING_COLUMNS}
            from listings l
            where l.id = $1::uuid and l.kind = $2
            """,
            listing_id,
            kind.key,
        )
        if not row:
            return None
        questions = await self._fetch_questions(conn=conn, listing_ids=[row["id"]])
        return self._listing_row_to_dict(row, questions.get(row["id"], []))

    async def _fetch_questions(
        self,
        *,
        conn: asyncpg.Connection | asyncpg.Pool,
        listing_ids: list[str],
    ) -> dict[str, list[dict[str, Any]]]:
        if not listing_ids:
            return {}
        rows = await conn.fetch(
            """
            select
              id::text as id,
              listing_id::text as listing_id,
              label,
              type,
              required,
              options,
              position
            from listing_questions
            where listing_id = any($1::uuid[])
            order by listing_id, position asc
            """,
            listing_ids,
        )
        grouped: dict[str, list[dict[str, Any]]] = {}
        for row in rows:
            grouped.setdefault(row["listing_id"], []).append(
                {
                    "id": row["id"],
                    "label": row["label"],
                    "type": row["type"],
                    "required": bool(row["required"]),
                    "options": list(row["options"] or []),
                    "position": int(row["position"]),
                }
            )
        return grouped

    @staticmethod
    def _listing_row_to_dict(row: asyncpg.Record | dict[str, Any], questions: list[dict[str, Any]]) -> dict[str, Any]:
        return {
            **_coerce_json_dict(row["fields"]),
            "id": row["id"],
            "kind": row["kind"],
            "status": row["status"],
            "organization_id": row["organization_id"],
            "author_id": row["author_id"],
            "has_application_form": bool(row["has_application_form"]),
            "view_count": int(row["view_count"]),
            "application_count": int(row["application_count"]),
            "questions": questions,
            "created_at": row["created_at"],
            "updated_at": row["updated_at"],
        }

    async def _get_pool(self) -> asyncpg.Pool:
        if not self.database_url:
            raise RepositoryUnavailableError("RS_DATABASE_URL is required")

        if self._pool is not None:
            return self._pool

        try:
            self._pool = await asyncpg.create_pool(
                dsn=self.database_url,
                min_size=self.min_pool_size,
                max_size=self.max_pool_size,
                command_timeout=15,
            )
            return self._pool
        except Exception as exc:  # pragma: no cover - depends on environment
            raise RepositoryUnavailableError("database unavailable") from exc


_LISTING_COLUMNS = """
  l.id::text as id,
  l.kind,
  l.status::text as status,
  l.organization_id,
  l.author_id,
  l.fields,
  l.has_application_form,
  l.view_count,
  l.application_count,
  l.created_at,
  l.updated_at
"""

_COMMENT_COLUMNS = """
  id::text as id,
  research_news_id::text as research_news_id,
  parent_comment_id::text as parent_comment_id,
  text,
  student_id,
  created_at
"""

_SLOT_COLUMNS = "id::text as id, mentor_id, starts_at, ends_at, booked_by"

_PROFILE_COLUMNS = (
    "organization_id, name, description, website, email, country, city, founded_year, updated_at"
)


def _visible(row: dict[str, Any] | asyncpg.Record, *, organization_id: str | None, live_only: bool = False) -> bool:
    if live_only and row["status"] != ListingStatus.LIVE.value:
        return False
    if organization_id is not None and row["organization_id"] != organization_id:
        return False
    return True


def _coerce_text(value: Any) -> str | None:
    if isinstance(value, str):
        stripped = value.strip()
        return stripped or None
    return None


def _coerce_json_dict(value: Any) -> dict[str, Any]:
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except json.JSONDecodeError:
            return {}
    return value if isinstance(value, dict) else {}


@lru_cache
def get_repository() -> ListingRepository:
    settings = get_settings()
    if settings.storage_backend == "memory":
        from listings_api.services.store import InMemoryRepository

        return InMemoryRepository()
    return PostgresRepository(
        database_url=settings.database_url,
        min_pool_size=settings.database_pool_min_size,
        max_pool_size=settings.database_pool_max_size,
    )


__all__ = [
    "LISTING_KINDS",
    "ListingRepository",
    "PostgresRepository",
    "RepositoryConflictError",
    "RepositoryError",
    "RepositoryForbiddenError",
    "RepositoryNotFoundError",
    "RepositoryUnavailableError",
    "RepositoryValidationError",
    "get_repository",
]
