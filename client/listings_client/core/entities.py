from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class ListingStatus(str, Enum):
    DRAFT = "Draft"
    LIVE = "Live"
    ARCHIVE = "Archive"


DEFAULT_WIRE_STATUSES: dict[ListingStatus, str] = {status: status.value for status in ListingStatus}


@dataclass(frozen=True, slots=True)
class EntityKind:
    """Client-side description of one listing kind and how it maps onto the API."""

    path: str
    label: str
    query_key: str
    title_field: str
    required_fields: tuple[str, ...]
    permissions: frozenset[str]
    numeric_fields: tuple[str, ...] = ()
    date_fields: tuple[str, ...] = ()
    applications_key: str | None = None
    wire_statuses: dict[ListingStatus, str] = field(default_factory=lambda: dict(DEFAULT_WIRE_STATUSES))

    @property
    def supports_applications(self) -> bool:
        return self.applications_key is not None

    def parse_status(self, raw: ListingStatus | str) -> ListingStatus:
        if isinstance(raw, ListingStatus):
            return raw
        for status, wire in self.wire_statuses.items():
            if raw in {status.value, wire}:
                return status
        allowed = ", ".join(status.value for status in ListingStatus)
        raise ValueError(f"status must be one of: {allowed}")

    def to_wire(self, status: ListingStatus | str) -> str:
        return self.wire_statuses[self.parse_status(status)]

    def from_wire(self, raw: str) -> ListingStatus:
        return self.parse_status(raw)


def _permissions(prefix: str) -> frozenset[str]:
    return frozenset({f"{prefix}_CONTRIBUTOR", f"{prefix}_REVIEWER", f"{prefix}_EDITOR"})


JOBS = EntityKind(
    path="jobs",
    label="Job",
    query_key="jobs",
    title_field="title",
    required_fields=("title", "description", "location", "employment_type", "experience_level", "mode_of_work"),
    permissions=_permissions("JOB"),
    applications_key="job-applications",
)

SCHOLARSHIPS = EntityKind(
    path="scholarships",
    label="Scholarship",
    query_key="scholarship",
    title_field="name",
    required_fields=("name", "description"),
    permissions=_permissions("SCHOLARSHIP"),
    numeric_fields=("amount",),
    date_fields=("deadline",),
    applications_key="scholarship-applications",
)

RESEARCH_NEWS = EntityKind(
    path="research-news",
    label="Research news",
    query_key="research-news",
    title_field="title",
    required_fields=("title", "abstract", "article", "category"),
    permissions=_permissions("RESEARCH_NEWS"),
    wire_statuses={
        ListingStatus.DRAFT: "draft",
        ListingStatus.LIVE: "published",
        ListingStatus.ARCHIVE: "archived",
    },
)

OPPORTUNITIES = EntityKind(
    path="opportunities",
    label="Opportunity",
    query_key="opportunities",
    title_field="title",
    required_fields=("title", "type", "description", "location", "start_date_time", "end_date_time"),
    permissions=_permissions("OPPORTUNITY"),
    date_fields=("start_date_time", "end_date_time"),
    applications_key="opportunity-applications",
)

ENTITY_KINDS: dict[str, EntityKind] = {kind.path: kind for kind in (JOBS, SCHOLARSHIPS, RESEARCH_NEWS, OPPORTUNITIES)}
