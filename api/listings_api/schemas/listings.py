from datetime import date, datetime
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, StringConstraints, model_validator

NonEmptyStr = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]

QuestionType = Literal[
    "Text Input",
    "Textarea",
    "Email",
    "Number",
    "Phone",
    "Date",
    "Time",
    "URL",
    "Radio Buttons",
    "Checkboxes",
    "Dropdown",
    "File Upload",
]
CHOICE_QUESTION_TYPES = {"Radio Buttons", "Checkboxes", "Dropdown"}

EmploymentType = Literal["Full-time", "Part-time", "Internship", "Contract", "Temporary"]
ExperienceLevel = Literal["Entry Level", "Mid Level", "Senior Level", "Executive"]
ModeOfWork = Literal["Onsite", "Online", "Hybrid"]
ResearchCategory = Literal["ai", "aerospace", "health", "sustainability", "quantum", "other"]
OpportunityType = Literal[
    "Bootcamp",
    "Research",
    "Symposium",
    "Startup",
    "Incubation",
    "Competition",
    "Hackathon",
    "Other",
]
OpportunityLocation = Literal["Virtual", "In-person", "Hybrid"]


class QuestionIn(BaseModel):
    label: NonEmptyStr
    type: QuestionType
    required: bool = False
    options: list[NonEmptyStr] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_options(self) -> "QuestionIn":
        if self.type in CHOICE_QUESTION_TYPES and not self.options:
            raise ValueError(f"options are required for {self.type} questions")
        if any("," in option for option in self.options):
            raise ValueError("options must not contain commas")
        return self


class QuestionOut(BaseModel):
    id: str
    label: str
    type: QuestionType
    required: bool = False
    options: list[str] = Field(default_factory=list)
    position: int = 0


class ListingMeta(BaseModel):
    id: str
    status: str
    organization_id: str | None = None
    author_id: str | None = None
    view_count: int = 0
    application_count: int = 0
    created_at: datetime
    updated_at: datetime


class ListingStatusPatchRequest(BaseModel):
    status: NonEmptyStr


class DeletedOut(BaseModel):
    id: str
    message: str


# --- Jobs ---


class JobFields(BaseModel):
    title: NonEmptyStr
    description: NonEmptyStr
    location: NonEmptyStr
    employment_type: EmploymentType
    experience_level: ExperienceLevel
    mode_of_work: ModeOfWork


class JobCreateRequest(JobFields):
    has_application_form: bool = False
    questions: list[QuestionIn] = Field(default_factory=list)
    status: str | None = None


class JobUpdateRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    title: NonEmptyStr | None = None
    description: NonEmptyStr | None = None
    location: NonEmptyStr | None = None
    employment_type: EmploymentType | None = None
    experience_level: ExperienceLevel | None = None
    mode_of_work: ModeOfWork | None = None
    has_application_form: bool | None = None
    questions: list[QuestionIn] | None = None


class JobOut(JobFields, ListingMeta):
    has_application_form: bool = False
    questions: list[QuestionOut] = Field(default_factory=list)


# --- Scholarships ---


class ScholarshipFields(BaseModel):
    name: NonEmptyStr
    description: NonEmptyStr
    amount: float | None = Field(default=None, ge=0)
    deadline: date | None = None
    eligibility_criteria: str | None = None
    website: str | None = None


class ScholarshipCreateRequest(ScholarshipFields):
    has_application_form: bool = False
    questions: list[QuestionIn] = Field(default_factory=list)
    status: str | None = None


class ScholarshipUpdateRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: NonEmptyStr | None = None
    description: NonEmptyStr | None = None
    amount: float | None = Field(default=None, ge=0)
    deadline: date | None = None
    eligibility_criteria: str | None = None
    website: str | None = None
    has_application_form: bool | None = None
    questions: list[QuestionIn] | None = None


class ScholarshipOut(ScholarshipFields, ListingMeta):
    has_application_form: bool = False
    questions: list[QuestionOut] = Field(default_factory=list)


# --- Research news ---


class ResearchNewsFields(BaseModel):
    title: NonEmptyStr
    abstract: NonEmptyStr
    article: NonEmptyStr
    category: ResearchCategory
    tags: list[NonEmptyStr] = Field(default_factory=list)
    youtube_url: str | None = None
    paper_link: str | None = None


class ResearchNewsCreateRequest(ResearchNewsFields):
    status: str | None = None


class ResearchNewsUpdateRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    title: NonEmptyStr | None = None
    abstract: NonEmptyStr | None = None
    article: NonEmptyStr | None = None
    category: ResearchCategory | None = None
    tags: list[NonEmptyStr] | None = None
    youtube_url: str | None = None
    paper_link: str | None = None


class ResearchNewsOut(ResearchNewsFields, ListingMeta):
    pass


# --- Opportunities ---


class OpportunityFields(BaseModel):
    title: NonEmptyStr
    type: OpportunityType
    description: NonEmptyStr
    location: OpportunityLocation
    educational_level: str | None = None
    venue: str | None = None
    start_date_time: datetime
    end_date_time: datetime
    application_link: str | None = None


class OpportunityCreateRequest(OpportunityFields):
    has_application_form: bool = False
    questions: list[QuestionIn] = Field(default_factory=list)
    status: str | None = None

    @model_validator(mode="after")
    def _check_window(self) -> "OpportunityCreateRequest":
        if self.end_date_time < self.start_date_time:
            raise ValueError("end_date_time must not be before start_date_time")
        return self


class OpportunityUpdateRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    title: NonEmptyStr | None = None
    type: OpportunityType | None = None
    description: NonEmptyStr | None = None
    location: OpportunityLocation | None = None
    educational_level: str | None = None
    venue: str | None = None
    start_date_time: datetime | None = None
    end_date_time: datetime | None = None
    application_link: str | None = None
    has_application_form: bool | None = None
    questions: list[QuestionIn] | None = None

    @model_validator(mode="after")
    def _check_window(self) -> "OpportunityUpdateRequest":
        if self.start_date_time and self.end_date_time and self.end_date_time < self.start_date_time:
            raise ValueError("end_date_time must not be before start_date_time")
        return self


class OpportunityOut(OpportunityFields, ListingMeta):
    has_application_form: bool = False
    questions: list[QuestionOut] = Field(default_factory=list)
