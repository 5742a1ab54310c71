from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable


class Role(str, Enum):
    SUPER_ADMIN = "super_admin"
    UNIVERSITY = "university"
    UNIVERSITY_STAFF = "university_staff"
    DEPARTMENT_STAFF = "department_staff"
    INSTITUTION = "institution"
    INSTITUTION_STAFF = "institution_staff"
    DIVISION_STAFF = "division_staff"
    MENTOR = "mentor"
    STUDENT_AMBASSADOR = "student_ambassador"
    STUDENT = "student"


OWNER_ROLES: frozenset[str] = frozenset({Role.SUPER_ADMIN.value, Role.UNIVERSITY.value, Role.INSTITUTION.value})
AUTHOR_ROLES: frozenset[str] = OWNER_ROLES | {
    Role.UNIVERSITY_STAFF.value,
    Role.DEPARTMENT_STAFF.value,
    Role.INSTITUTION_STAFF.value,
    Role.DIVISION_STAFF.value,
}


@dataclass(slots=True)
class Session:
    """Authenticated actor passed explicitly to resources, gates and forms."""

    token: str | None = None
    user_id: str | None = None
    role: str | None = None
    permissions: frozenset[str] = field(default_factory=frozenset)
    organization_id: str | None = None

    @property
    def is_auth(self) -> bool:
        return bool(self.token)

    def login(
        self,
        *,
        token: str,
        user_id: str,
        role: str,
        permissions: Iterable[str] = (),
        organization_id: str | None = None,
    ) -> None:
        self.token = token
        self.user_id = user_id
        self.role = role
        self.permissions = frozenset(permissions)
        self.organization_id = organization_id

    def logout(self) -> None:
        self.token = None
        self.user_id = None
        self.role = None
        self.permissions = frozenset()
        self.organization_id = None

    def auth_headers(self) -> dict[str, str]:
        if not self.token:
            return {}
        return {"Authorization": f"Bearer {self.token}"}

    @classmethod
    def from_user_info(cls, token: str, payload: dict[str, Any]) -> Session:
        raw_permissions = payload.get("permissions") or []
        if isinstance(raw_permissions, str):
            raw_permissions = [chunk.strip() for chunk in raw_permissions.split(",")]
        organization_id = next(
            (
                payload[key]
                for key in ("university_id", "institution_id", "organization_id")
                if isinstance(payload.get(key), str) and payload[key]
            ),
            None,
        )
        session = cls()
        session.login(
            token=token,
            user_id=str(payload["id"]),
            role=str(payload.get("role") or Role.STUDENT.value),
            permissions=[item for item in raw_permissions if item],
            organization_id=organization_id,
        )
        return session
