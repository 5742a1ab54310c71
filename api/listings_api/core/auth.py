from dataclasses import dataclass, field
from enum import Enum


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
class Principal:
    subject: str
    role: str
    permissions: set[str] = field(default_factory=set)
    organization_id: str | None = None

    @property
    def is_author(self) -> bool:
        return self.role in AUTHOR_ROLES

    @property
    def is_super_admin(self) -> bool:
        return self.role == Role.SUPER_ADMIN.value

    @property
    def organization_scope(self) -> str | None:
        """Organization filter for repository calls; ``None`` means unscoped."""
        if self.is_super_admin:
            return None
        return self.organization_id or self.subject

    def require_role(self, allowed: set[str] | frozenset[str]) -> None:
        if self.role not in allowed:
            raise PermissionError(f"role {self.role!r} is not allowed")

    def require_any_permission(self, required: set[str] | frozenset[str]) -> None:
        if self.role in OWNER_ROLES:
            return
        if not required & self.permissions:
            raise PermissionError(f"missing one of required permissions: {sorted(required)}")


def parse_permissions(raw: object) -> set[str]:
    if isinstance(raw, str):
        return {chunk.strip() for chunk in raw.split(",") if chunk.strip()}
    if isinstance(raw, (list, tuple, set)):
        return {str(item).strip() for item in raw if isinstance(item, str) and item.strip()}
    return set()
