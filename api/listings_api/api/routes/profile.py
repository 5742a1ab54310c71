from fastapi import APIRouter, Depends

from listings_api.api.errors import to_http_exception
from listings_api.core.auth import AUTHOR_ROLES, OWNER_ROLES, Principal, Role
from listings_api.core.security import get_human_principal, require_role
from listings_api.schemas.community import ProfileFields, ProfileOut
from listings_api.services.repository import RepositoryError, get_repository

router = APIRouter()


@router.get("", response_model=ProfileOut)
async def get_profile(
    principal: Principal = Depends(get_human_principal),
    repository=Depends(get_repository),
) -> ProfileOut:
    require_role(principal, *(Role(role) for role in AUTHOR_ROLES))
    try:
        row = await repository.get_profile(organization_id=_profile_key(principal))
    except RepositoryError as exc:
        raise to_http_exception(exc) from exc
    return ProfileOut(**row)


@router.put("", response_model=ProfileOut)
async def put_profile(
    payload: ProfileFields,
    principal: Principal = Depends(get_human_principal),
    repository=Depends(get_repository),
) -> ProfileOut:
    require_role(principal, *(Role(role) for role in OWNER_ROLES))
    try:
        row = await repository.upsert_profile(
            organization_id=_profile_key(principal),
            fields=payload.model_dump(),
        )
    except RepositoryError as exc:
        raise to_http_exception(exc) from exc
    return ProfileOut(**row)


def _profile_key(principal: Principal) -> str:
    return principal.organization_id or principal.subject
