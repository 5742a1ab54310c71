from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from pydantic import BaseModel

from listings_api.schemas.listings import (
    JobCreateRequest,
    JobOut,
    JobUpdateRequest,
    OpportunityCreateRequest,
    OpportunityOut,
    OpportunityUpdateRequest,
    ResearchNewsCreateRequest,
    ResearchNewsOut,
    ResearchNewsUpdateRequest,
    ScholarshipCreateRequest,
    ScholarshipOut,
    ScholarshipUpdateRequest,
)


class ListingStatus(str, Enum):
    DRAFT = "Draft"
    LIVE = "Live"
    ARCHIVE = "Archive"


ALLOWED_STATUS_TRANSITIONS: dict[ListingStatus, set[ListingStatus]] = {
    ListingStatus.DRAFT: {ListingStatus.LIVE},
    ListingStatus.LIVE: {ListingStatus.ARCHIVE},
    ListingStatus.ARCHIVE: {ListingStatus.LIVE},
}

DEFAULT_WIRE_STATUSES: dict[ListingStatus, str] = {status: status.value for status in ListingStatus}


@dataclass(frozen=True, slots=True)
class ListingKind:
    key: str
    label: str
    title_field: str
    search_fields: tuple[str, ...]
    type_field: str | None
    permissions: frozenset[str]
    create_model: type[BaseModel]
    update_model: type[BaseModel]
    out_model: type[BaseModel]
    supports_questions: bool = True
    wire_statuses: dict[ListingStatus, str] = field(default_factory=lambda: dict(DEFAULT_WIRE_STATUSES))

    def to_wire(self, status: ListingStatus | str) -> str:
        return self.wire_statuses[ListingStatus(status)]

    def parse_status(self, raw: str) -> ListingStatus:
        """Accept either the kind's wire value or the canonical value."""
        for status, wire in self.wire_statuses.items():
            if raw == wire or raw == status.value:
                return status
        allowed = ", ".join(self.wire_statuses[status] for status in ListingStatus)
        raise ValueError(f"status must be one of: {allowed}")

    def build_out(self, row: dict) -> BaseModel:
        return self.out_model(**{**row, "status": self.to_wire(row["status"])})

    def split_payload(self, payload: dict) -> tuple[dict, list[dict] | None, bool | None]:
        """Separate column fields from the question set and application-form flag."""
        fields = {key: value for key, value in payload.items() if key not in {"questions", "has_application_form", "status"}}
        questions = payload.get("questions") if self.supports_questions else None
        has_form = payload.get("has_application_form") if self.supports_questions else None
        return fields, questions, has_form


def _permissions(prefix: str) -> frozenset[str]:
    return frozenset({f"{prefix}_CONTRIBUTOR", f"{prefix}_REVIEWER", f"{prefix}_EDITOR"})


JOBS = ListingKind(
    key="jobs",
    label="Job",
    title_field="title",
    search_fields=("title", "description", "location"),
    type_field="employment_type",
    permissions=_permissions("JOB"),
    create_model=JobCreateRequest,
    update_model=JobUpdateRequest,
    out_model=JobOut,
)

SCHOLARSHIPS = ListingKind(
    key="scholarships",
    label="Scholarship",
    title_field="name",
    search_fields=("name", "description", "eligibility_criteria"),
    type_field=None,
    permissions=_permissions("SCHOLARSHIP"),
    create_model=ScholarshipCreateRequest,
    update_model=ScholarshipUpdateRequest,
    out_model=ScholarshipOut,
)

RESEARCH_NEWS = ListingKind(
    key="research-news",
    label="Research news",
    title_field="title",
    search_fields=("title", "abstract", "article"),
    type_field="category",
    permissions=_permissions("RESEARCH_NEWS"),
    create_model=ResearchNewsCreateRequest,
    update_model=ResearchNewsUpdateRequest,
    out_model=ResearchNewsOut,
    supports_questions=False,
    wire_statuses={
        ListingStatus.DRAFT: "draft",
        ListingStatus.LIVE: "published",
        ListingStatus.ARCHIVE: "archived",
    },
)

OPPORTUNITIES = ListingKind(
    key="opportunities",
    label="Opportunity",
    title_field="title",
    search_fields=("title", "description", "venue"),
    type_field="type",
    permissions=_permissions("OPPORTUNITY"),
    create_model=OpportunityCreateRequest,
    update_model=OpportunityUpdateRequest,
    out_model=OpportunityOut,
)

LISTING_KINDS: dict[str, ListingKind] = {kind.key: kind for kind in (JOBS, SCHOLARSHIPS, RESEARCH_NEWS, OPPORTUNITIES)}
