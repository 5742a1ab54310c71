from datetime import datetime

from pydantic import BaseModel, Field, model_validator

from listings_api.schemas.listings import NonEmptyStr


class CommentCreateRequest(BaseModel):
    research_news_id: NonEmptyStr
    text: NonEmptyStr
    parent_comment_id: str | None = None


class CommentOut(BaseModel):
    id: str
    research_news_id: str
    parent_comment_id: str | None = None
    text: str
    student_id: str
    replies_count: int = 0
    created_at: datetime


class SlotCreateRequest(BaseModel):
    starts_at: datetime
    ends_at: datetime

    @model_validator(mode="after")
    def _check_window(self) -> "SlotCreateRequest":
        if self.ends_at <= self.starts_at:
            raise ValueError("ends_at must be after starts_at")
        return self


class SlotOut(BaseModel):
    id: str
    mentor_id: str
    starts_at: datetime
    ends_at: datetime
    booked_by: str | None = None


class BookingRequest(BaseModel):
    slot_id: NonEmptyStr


class ProfileFields(BaseModel):
    name: NonEmptyStr
    description: str | None = None
    website: str | None = None
    email: str | None = None
    country: str | None = None
    city: str | None = None
    founded_year: int | None = Field(default=None, ge=1000, le=9999)


class ProfileOut(ProfileFields):
    organization_id: str
    updated_at: datetime
