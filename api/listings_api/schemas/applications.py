from datetime import datetime

from pydantic import BaseModel, Field

from listings_api.schemas.listings import NonEmptyStr, QuestionOut


class AnswerIn(BaseModel):
    question_id: NonEmptyStr
    answer: str


class AnswerBatchRequest(BaseModel):
    answers: list[AnswerIn] = Field(min_length=1)


class AnswerBatchAccepted(BaseModel):
    submitted: int
    listing_ids: list[str] = Field(default_factory=list)


class ApplicationAnswerOut(BaseModel):
    id: str
    answer: str
    student_id: str
    created_at: datetime
    question: QuestionOut


class ApplicationPageOut(BaseModel):
    total: int
    page: int
    limit: int
    data: list[ApplicationAnswerOut] = Field(default_factory=list)
