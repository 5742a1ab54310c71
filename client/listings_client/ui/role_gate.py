from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import TypeVar

from listings_client.core.session import Session

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class ActionButton:
    action: str
    label: str
    record_id: str | None
    disabled: bool = False


class RoleGate:
    """Shows children only to sessions holding an allowed role and, when
    permissions are listed, at least one of them."""

    def __init__(self, required_roles: Iterable[str], required_permissions: Iterable[str] = ()) -> None:
        self.required_roles = frozenset(required_roles)
        self.required_permissions = frozenset(required_permissions)

    def allows(self, session: Session) -> bool:
        if session.role not in self.required_roles:
            return False
        if not self.required_permissions:
            return True
        return bool(self.required_permissions & session.permissions)

    def render(self, session: Session, children: Callable[[], T]) -> T | None:
        if not self.allows(session):
            return None
        return children()


def edit_button(record_id: str | None, *, label: str = "Edit") -> ActionButton:
    return ActionButton(action="edit", label=label, record_id=record_id, disabled=not record_id)
