import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import ValidationError

from listings_api.api.errors import to_http_exception
from listings_api.core.auth import Principal, Role
from listings_api.core.config import Settings, get_settings
from listings_api.core.security import get_human_principal, get_optional_principal, require_author, require_role
from listings_api.schemas.applications import AnswerBatchAccepted, AnswerBatchRequest, ApplicationPageOut
from listings_api.schemas.listings import DeletedOut, ListingStatusPatchRequest
from listings_api.services.listing_kinds import ListingKind, ListingStatus
from listings_api.services.repository import RepositoryError, get_repository

logger = logging.getLogger(__name__)

CREATE_STATUSES = {ListingStatus.DRAFT, ListingStatus.LIVE}


def build_listing_router(kind: ListingKind) -> APIRouter:
    """Build the CRUD + lifecycle router for one listing kind."""
    router = APIRouter()
    create_model = kind.create_model
    update_model = kind.update_model
    out_model = kind.out_model

    @router.post("", response_model=out_model, status_code=status.HTTP_201_CREATED)
    async def create_listing(
        payload: create_model,
        principal: Principal = Depends(get_human_principal),
        repository=Depends(get_repository),
    ):
        require_author(principal, kind)
        data = payload.model_dump(mode="json")
        listing_status = _parse_status(kind, data.get("status") or ListingStatus.DRAFT.value)
        if listing_status not in CREATE_STATUSES:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail=f"new {kind.label.lower()} listings must be {kind.to_wire('Draft')} or {kind.to_wire('Live')}",
            )
        fields, questions, has_form = kind.split_payload(data)
        try:
            row = await repository.create_listing(
                kind=kind,
                organization_id=principal.organization_id or principal.subject,
                author_id=principal.subject,
                fields=fields,
                status=listing_status,
                has_application_form=bool(has_form),
                questions=questions or [],
            )
        except RepositoryError as exc:
            raise to_http_exception(exc) from exc
        return kind.build_out(row)

    @router.get("", response_model=list[out_model])
    async def list_listings(
        principal: Principal | None = Depends(get_optional_principal),
        repository=Depends(get_repository),
        settings: Settings = Depends(get_settings),
        status_filter: str | None = Query(default=None, alias="status"),
        q: str | None = Query(default=None, max_length=200),
        type_value: str | None = Query(default=None, alias="type"),
        limit: int | None = Query(default=None, ge=1, le=200),
        offset: int = Query(default=0, ge=0),
    ):
        requested = _parse_status(kind, status_filter) if status_filter else None
        is_author = principal is not None and principal.is_author
        if not is_author:
            if requested not in {None, ListingStatus.LIVE}:
                raise HTTPException(
                    status_code=status.HTTP_403_FORBIDDEN,
                    detail=f"only {kind.to_wire('Live')} listings are public",
                )
            requested = ListingStatus.LIVE

        try:
            rows = await repository.list_listings(
                kind=kind,
                status=requested,
                q=q,
                type_value=type_value,
                organization_id=principal.organization_scope if is_author else None,
                limit=limit or settings.default_list_limit,
                offset=offset,
            )
        except RepositoryError as exc:
            raise to_http_exception(exc) from exc
        return [kind.build_out(row) for row in rows]

    @router.get("/{listing_id}", response_model=out_model)
    async def get_listing(
        listing_id: str,
        principal: Principal | None = Depends(get_optional_principal),
        repository=Depends(get_repository),
    ):
        try:
            row = await repository.get_listing(kind=kind, listing_id=listing_id)
        except RepositoryError as exc:
            raise to_http_exception(exc) from exc
        if not _can_read(principal, row):
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"{kind.label} not found")
        return kind.build_out(row)

    @router.patch("/{listing_id}", response_model=out_model)
    async def update_listing(
        listing_id: str,
        payload: update_model,
        principal: Principal = Depends(get_human_principal),
        repository=Depends(get_repository),
    ):
        require_author(principal, kind)
        data = payload.model_dump(mode="json", exclude_unset=True)
        try:
            current = await repository.get_listing(
                kind=kind,
                listing_id=listing_id,
                organization_id=principal.organization_scope,
            )
        except RepositoryError as exc:
            raise to_http_exception(exc) from exc
        _validate_merged(kind, current, data)

        fields, questions, has_form = kind.split_payload(data)
        try:
            row = await repository.update_listing(
                kind=kind,
                listing_id=listing_id,
                organization_id=principal.organization_scope,
                fields=fields,
                has_application_form=has_form,
                questions=questions,
            )
        except RepositoryError as exc:
            raise to_http_exception(exc) from exc
        return kind.build_out(row)

    @router.patch("/{listing_id}/status", response_model=out_model)
    async def update_listing_status(
        listing_id: str,
        payload: ListingStatusPatchRequest,
        principal: Principal = Depends(get_human_principal),
        repository=Depends(get_repository),
    ):
        require_author(principal, kind)
        target = _parse_status(kind, payload.status)
        try:
            row = await repository.update_listing_status(
                kind=kind,
                listing_id=listing_id,
                organization_id=principal.organization_scope,
                status=target,
            )
        except RepositoryError as exc:
            raise to_http_exception(exc) from exc
        return kind.build_out(row)

    @router.delete("/{listing_id}", response_model=DeletedOut)
    async def delete_listing(
        listing_id: str,
        principal: Principal = Depends(get_human_principal),
        repository=Depends(get_repository),
    ) -> DeletedOut:
        require_author(principal, kind)
        try:
            await repository.delete_listing(
                kind=kind,
                listing_id=listing_id,
                organization_id=principal.organization_scope,
            )
        except RepositoryError as exc:
            raise to_http_exception(exc) from exc
        return DeletedOut(id=listing_id, message=f"{kind.label} deleted successfully")

    if not kind.supports_questions:
        return router

    @router.post("/answers", response_model=AnswerBatchAccepted, status_code=status.HTTP_201_CREATED)
    async def submit_answers(
        payload: AnswerBatchRequest,
        principal: Principal = Depends(get_human_principal),
        repository=Depends(get_repository),
    ) -> AnswerBatchAccepted:
        require_role(principal, Role.STUDENT)
        try:
            result = await repository.submit_answers(
                kind=kind,
                student_id=principal.subject,
                answers=[item.model_dump() for item in payload.answers],
            )
        except RepositoryError as exc:
            raise to_http_exception(exc) from exc
        logger.info(
            "application submitted kind=%s listings=%s answers=%s",
            kind.key,
            ",".join(result["listing_ids"]),
            result["submitted"],
        )
        return AnswerBatchAccepted(**result)

    @router.get("/{listing_id}/applications", response_model=ApplicationPageOut)
    async def list_applications(
        listing_id: str,
        principal: Principal = Depends(get_human_principal),
        repository=Depends(get_repository),
        page: int = Query(default=1, ge=1),
        limit: int = Query(default=10, ge=1, le=100),
    ) -> ApplicationPageOut:
        require_author(principal, kind)
        try:
            result = await repository.list_applications(
                kind=kind,
                listing_id=listing_id,
                organization_id=principal.organization_scope,
                page=page,
                limit=limit,
            )
        except RepositoryError as exc:
            raise to_http_exception(exc) from exc
        return ApplicationPageOut(**result)

    return router


def _parse_status(kind: ListingKind, raw: str) -> ListingStatus:
    try:
        return kind.parse_status(raw)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc


def _can_read(principal: Principal | None, row: dict[str, Any]) -> bool:
    if row["status"] == ListingStatus.LIVE.value:
        return True
    if principal is None or not principal.is_author:
        return False
    scope = principal.organization_scope
    return scope is None or row["organization_id"] == scope


def _validate_merged(kind: ListingKind, current: dict[str, Any], changes: dict[str, Any]) -> None:
    """Re-check cross-field rules against the record as it will be stored."""
    for name, value in changes.items():
        field_info = kind.create_model.model_fields.get(name)
        if value is None and field_info is not None and field_info.is_required():
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail=f"{name} cannot be null",
            )
    merged = {key: value for key, value in {**current, **changes}.items() if key != "status"}
    if not merged.get("has_application_form"):
        merged["questions"] = []
    try:
        kind.create_model.model_validate(merged)
    except ValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=[{"loc": list(error["loc"]), "msg": error["msg"]} for error in exc.errors()],
        ) from exc
