import logging

from fastapi import APIRouter, Depends, Query, status

from listings_api.api.errors import to_http_exception
from listings_api.core.auth import Principal, Role
from listings_api.core.security import get_human_principal, require_role
from listings_api.schemas.community import BookingRequest, SlotCreateRequest, SlotOut
from listings_api.services.repository import RepositoryError, get_repository

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/slots", response_model=SlotOut, status_code=status.HTTP_201_CREATED)
async def create_slot(
    payload: SlotCreateRequest,
    principal: Principal = Depends(get_human_principal),
    repository=Depends(get_repository),
) -> SlotOut:
    require_role(principal, Role.MENTOR)
    try:
        row = await repository.create_slot(
            mentor_id=principal.subject,
            starts_at=payload.starts_at,
            ends_at=payload.ends_at,
        )
    except RepositoryError as exc:
        raise to_http_exception(exc) from exc
    return SlotOut(**row)


@router.get("/slots", response_model=list[SlotOut])
async def list_slots(
    repository=Depends(get_repository),
    mentor_id: str | None = Query(default=None),
    available_only: bool = Query(default=True),
) -> list[SlotOut]:
    try:
        rows = await repository.list_slots(mentor_id=mentor_id, available_only=available_only)
    except RepositoryError as exc:
        raise to_http_exception(exc) from exc
    return [SlotOut(**row) for row in rows]


@router.post("", response_model=SlotOut)
async def book_slot(
    payload: BookingRequest,
    principal: Principal = Depends(get_human_principal),
    repository=Depends(get_repository),
) -> SlotOut:
    require_role(principal, Role.STUDENT)
    try:
        row = await repository.book_slot(slot_id=payload.slot_id, student_id=principal.subject)
    except RepositoryError as exc:
        logger.info("slot booking rejected slot_id=%s reason=%s", payload.slot_id, exc)
        raise to_http_exception(exc) from exc
    return SlotOut(**row)
