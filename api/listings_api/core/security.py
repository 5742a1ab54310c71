from typing import Any

import httpx
from fastapi import Depends, Header, HTTPException, status

from listings_api.core.auth import AUTHOR_ROLES, Principal, Role, parse_permissions
from listings_api.core.config import Settings, get_settings
from listings_api.services.listing_kinds import ListingKind


async def get_optional_principal(
    settings: Settings = Depends(get_settings),
    authorization: str | None = Header(default=None, alias="Authorization"),
) -> Principal | None:
    if authorization is None:
        return None
    return await _resolve_principal(settings=settings, authorization=authorization)


async def get_human_principal(
    settings: Settings = Depends(get_settings),
    authorization: str | None = Header(default=None, alias="Authorization"),
) -> Principal:
    if authorization is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="authentication requires bearer token",
        )
    return await _resolve_principal(settings=settings, authorization=authorization)


def require_author(principal: Principal, kind: ListingKind) -> None:
    try:
        principal.require_role(AUTHOR_ROLES)
        principal.require_any_permission(kind.permissions)
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc


def require_role(principal: Principal, *roles: Role) -> None:
    try:
        principal.require_role({role.value for role in roles})
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc


async def _resolve_principal(*, settings: Settings, authorization: str) -> Principal:
    if not authorization.lower().startswith("bearer "):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="authentication requires bearer token",
        )

    token = authorization.split(" ", maxsplit=1)[1].strip()
    if not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="empty bearer token")

    if not settings.auth_url:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="auth service is not configured",
        )

    user = await _fetch_user_info(
        auth_url=settings.auth_url,
        token=token,
        timeout_seconds=settings.auth_timeout_seconds,
    )
    user_id = user.get("id")
    if not isinstance(user_id, str) or not user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid bearer token")

    return Principal(
        subject=user_id,
        role=_resolve_role(user),
        permissions=parse_permissions(user.get("permissions")),
        organization_id=_resolve_organization_id(user),
    )


async def _fetch_user_info(*, auth_url: str, token: str, timeout_seconds: float) -> dict[str, Any]:
    url = f"{auth_url.rstrip('/')}/auth/user-info"

    try:
        async with httpx.AsyncClient(timeout=timeout_seconds) as client:
            response = await client.get(url, headers={"Authorization": f"Bearer {token}"})
    except httpx.HTTPError as exc:  # pragma: no cover - network dependent
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="auth verification unavailable",
        ) from exc

    if response.status_code in {401, 403}:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid bearer token")
    if response.status_code != 200:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="auth verification failed",
        )

    return response.json()


def _resolve_role(user: dict[str, Any]) -> str:
    role = user.get("role")
    if isinstance(role, str) and role:
        return role
    return Role.STUDENT.value


def _resolve_organization_id(user: dict[str, Any]) -> str | None:
    for key in ("university_id", "institution_id", "organization_id"):
        value = user.get(key)
        if isinstance(value, str) and value:
            return value
    return None
