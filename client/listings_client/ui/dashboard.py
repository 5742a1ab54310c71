from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from listings_client.core.entities import ListingStatus
from listings_client.core.session import AUTHOR_ROLES, OWNER_ROLES, Session
from listings_client.services.query_cache import QueryKey
from listings_client.services.resources import ListingResource, MutationResult
from listings_client.ui.role_gate import ActionButton, RoleGate, edit_button

logger = logging.getLogger(__name__)

ACTIONS_BY_STATUS: dict[ListingStatus, tuple[str, ...]] = {
    ListingStatus.DRAFT: ("edit", "delete", "publish"),
    ListingStatus.LIVE: ("archive", "edit", "view_applications"),
    ListingStatus.ARCHIVE: ("restore", "view_applications"),
}

ACTION_LABELS = {
    "edit": "Edit",
    "delete": "Delete",
    "publish": "Publish",
    "archive": "Archive",
    "restore": "Restore",
    "view_applications": "View applications",
}

STATUS_ACTIONS = {
    "publish": ListingStatus.LIVE,
    "archive": ListingStatus.ARCHIVE,
    "restore": ListingStatus.LIVE,
}


@dataclass(slots=True)
class RowView:
    record_id: str | None
    title: str
    status: ListingStatus
    actions: list[ActionButton] = field(default_factory=list)


@dataclass(slots=True)
class TabView:
    status: ListingStatus
    rows: list[RowView] = field(default_factory=list)
    render_count: int = 0


class ListingDashboard:
    """Draft/Live/Archive tabs over one listing kind."""

    def __init__(self, resource: ListingResource, session: Session) -> None:
        self.resource = resource
        self.session = session
        # Owners are covered by the role check; staff need one of the kind's permissions.
        self.owner_gate = RoleGate(OWNER_ROLES)
        self.staff_gate = RoleGate(AUTHOR_ROLES - OWNER_ROLES, resource.kind.permissions)
        self.tabs: dict[ListingStatus, TabView] = {}
        self._unsubscribers: dict[ListingStatus, Callable[[], None]] = {}

    @property
    def can_manage(self) -> bool:
        return self.owner_gate.allows(self.session) or self.staff_gate.allows(self.session)

    async def open_tab(self, status: ListingStatus | str) -> TabView:
        tab_status = self.resource.kind.parse_status(status)
        if tab_status not in self._unsubscribers:
            key = self.resource.list_key(tab_status)
            self._unsubscribers[tab_status] = self.resource.cache.subscribe(
                key,
                self.resource.list_fetcher(tab_status),
                self._on_refresh,
            )
        rows = await self.resource.list_by_status(tab_status)
        return self._render(tab_status, rows)

    async def dispatch(self, action: str, record_id: str, payload: dict[str, Any] | None = None) -> Any:
        if not self.can_manage:
            raise PermissionError(f"role {self.session.role!r} cannot manage {self.resource.kind.label} listings")
        if action in STATUS_ACTIONS:
            return await self.resource.update_status(record_id, STATUS_ACTIONS[action])
        if action == "delete":
            return await self.resource.delete(record_id)
        if action == "edit":
            if payload is None:
                return MutationResult(ok=False, field_errors={"payload": "Nothing to update"})
            return await self.resource.update(record_id, payload)
        if action == "view_applications":
            return await self.resource.list_applications(record_id)
        raise ValueError(f"unknown action: {action}")

    def close(self) -> None:
        for unsubscribe in self._unsubscribers.values():
            unsubscribe()
        self._unsubscribers.clear()

    def _on_refresh(self, key: QueryKey, rows: list[dict[str, Any]]) -> None:
        tab_status = self.resource.kind.from_wire(key[1])
        logger.debug("dashboard tab refreshed kind=%s status=%s rows=%s", self.resource.kind.path, tab_status.value, len(rows))
        self._render(tab_status, rows)

    def _render(self, status: ListingStatus, rows: list[dict[str, Any]]) -> TabView:
        tab = self.tabs.setdefault(status, TabView(status=status))
        tab.rows = [self._row(status, row) for row in rows]
        tab.render_count += 1
        return tab

    def _row(self, status: ListingStatus, row: dict[str, Any]) -> RowView:
        record_id = row.get("id")
        actions: list[ActionButton] = []
        if self.can_manage:
            for action in ACTIONS_BY_STATUS[status]:
                if action == "view_applications" and not self.resource.kind.supports_applications:
                    continue
                if action == "edit":
                    actions.append(edit_button(record_id))
                else:
                    actions.append(
                        ActionButton(action=action, label=ACTION_LABELS[action], record_id=record_id, disabled=not record_id)
                    )
        return RowView(
            record_id=record_id,
            title=str(row.get(self.resource.kind.title_field) or ""),
            status=status,
            actions=actions,
        )
