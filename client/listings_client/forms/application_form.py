from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import PurePath
from typing import Any

from listings_client.core.session import Role, Session
from listings_client.services.resources import ListingResource, MutationResult

LOGIN_REQUIRED_MESSAGE = "Please log in to submit an application"
STUDENTS_ONLY_MESSAGE = "Only students can submit applications"
EMPTY_APPLICATION_MESSAGE = "Please answer at least one question before submitting"

CONTROL_BY_QUESTION_TYPE: dict[str, str] = {
    "Text Input": "text",
    "Textarea": "textarea",
    "Email": "email",
    "Number": "number",
    "Phone": "tel",
    "Date": "date",
    "Time": "time",
    "URL": "url",
    "Radio Buttons": "radio",
    "Checkboxes": "checkbox",
    "Dropdown": "select",
    "File Upload": "file",
}


@dataclass(frozen=True, slots=True)
class Control:
    question_id: str
    label: str
    control: str
    required: bool
    options: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class FormView:
    """Either the controls to show or the message shown in their place."""

    controls: tuple[Control, ...] = ()
    message: str | None = None

    @property
    def blocked(self) -> bool:
        return self.message is not None


def encode_checkbox_selection(selected: Iterable[str]) -> str:
    return ",".join(selected)


def decode_checkbox_selection(raw: str | None) -> list[str]:
    if not raw:
        return []
    return [value for value in raw.split(",") if value]


def file_answer(filename: str) -> str:
    # Only the file name is recorded; the upload itself is handled elsewhere.
    return PurePath(filename).name


def access_message(session: Session) -> str | None:
    if not session.is_auth:
        return LOGIN_REQUIRED_MESSAGE
    if session.role != Role.STUDENT.value:
        return STUDENTS_ONLY_MESSAGE
    return None


class ApplicationForm:
    def __init__(self, questions: list[dict[str, Any]]) -> None:
        self.questions = sorted(questions, key=lambda question: question.get("position", 0))
        self._by_id = {question["id"]: question for question in self.questions}
        self.answers: dict[str, str] = {}

    def render(self, session: Session) -> FormView:
        blocked = access_message(session)
        if blocked is not None:
            return FormView(message=blocked)
        return FormView(controls=self._controls())

    def _controls(self) -> tuple[Control, ...]:
        return tuple(
            Control(
                question_id=question["id"],
                label=question["label"],
                control=CONTROL_BY_QUESTION_TYPE.get(question["type"], "text"),
                required=bool(question.get("required")),
                options=tuple(question.get("options") or ()),
            )
            for question in self.questions
        )

    def set_answer(self, question_id: str, value: str) -> None:
        self._question(question_id)
        self.answers[question_id] = value

    def toggle_option(self, question_id: str, option: str) -> list[str]:
        question = self._question(question_id)
        if question["type"] != "Checkboxes":
            raise ValueError(f"{question['label']} is not a checkbox question")
        selected = decode_checkbox_selection(self.answers.get(question_id))
        if option in selected:
            selected.remove(option)
        else:
            selected.append(option)
        self.answers[question_id] = encode_checkbox_selection(selected)
        return selected

    def selected_options(self, question_id: str) -> list[str]:
        return decode_checkbox_selection(self.answers.get(question_id))

    def attach_file(self, question_id: str, filename: str) -> None:
        question = self._question(question_id)
        if question["type"] != "File Upload":
            raise ValueError(f"{question['label']} is not a file question")
        self.answers[question_id] = file_answer(filename)

    def missing_required(self) -> list[str]:
        return [
            question["label"]
            for question in self.questions
            if question.get("required") and not self.answers.get(question["id"], "").strip()
        ]

    def build_payload(self) -> dict[str, str]:
        return {
            question["id"]: self.answers.get(question["id"], "").strip()
            for question in self.questions
            if self.answers.get(question["id"], "").strip()
        }

    async def submit(self, resource: ListingResource, session: Session) -> MutationResult:
        blocked = access_message(session)
        if blocked is not None:
            resource.notifier.error(blocked)
            return MutationResult(ok=False, errors=[blocked])

        missing = self.missing_required()
        if missing:
            message = f"Please fill in required fields: {', '.join(missing)}"
            resource.notifier.error(message)
            return MutationResult(ok=False, errors=[message], field_errors={label: "Required" for label in missing})

        payload = self.build_payload()
        if not payload:
            resource.notifier.error(EMPTY_APPLICATION_MESSAGE)
            return MutationResult(ok=False, errors=[EMPTY_APPLICATION_MESSAGE])

        result = await resource.submit_application(payload)
        if result.ok:
            self.answers.clear()
        return result

    def _question(self, question_id: str) -> dict[str, Any]:
        try:
            return self._by_id[question_id]
        except KeyError:
            raise KeyError(f"unknown question: {question_id}") from None
