from __future__ import annotations

import asyncio
from typing import Any

import pytest

from listings_client.core.session import Session
from listings_client.forms.application_form import (
    EMPTY_APPLICATION_MESSAGE,
    LOGIN_REQUIRED_MESSAGE,
    STUDENTS_ONLY_MESSAGE,
    ApplicationForm,
    access_message,
    decode_checkbox_selection,
    encode_checkbox_selection,
    file_answer,
)

QUESTIONS: list[dict[str, Any]] = [
    {"id": "q-shifts", "label": "Shifts", "type": "Checkboxes", "required": False, "options": ["A", "B", "C"], "position": 1},
    {"id": "q-essay", "label": "Essay", "type": "Textarea", "required": True, "options": [], "position": 0},
    {"id": "q-cv", "label": "CV", "type": "File Upload", "required": False, "options": [], "position": 2},
]

JOB_WITH_FORM = {
    "title": "Lab Assistant",
    "description": "Help run experiments",
    "location": "Munich",
    "employment_type": "Internship",
    "experience_level": "Entry Level",
    "mode_of_work": "Onsite",
    "status": "Live",
    "has_application_form": True,
    "questions": [
        {"label": "Essay", "type": "Textarea", "required": True},
        {"label": "Shifts", "type": "Checkboxes", "options": ["A", "B", "C"]},
    ],
}


def test_checkbox_selection_encodes_as_comma_joined_text() -> None:
    assert encode_checkbox_selection(["A", "C"]) == "A,C"
    assert decode_checkbox_selection("A,C") == ["A", "C"]
    assert decode_checkbox_selection("") == []
    assert decode_checkbox_selection(None) == []


def test_controls_follow_question_position_and_type() -> None:
    form = ApplicationForm(QUESTIONS)

    view = form.render(Session(token="t", user_id="u", role="student"))
    controls = view.controls

    assert not view.blocked

    assert [control.label for control in controls] == ["Essay", "Shifts", "CV"]
    assert [control.control for control in controls] == ["textarea", "checkbox", "file"]
    assert controls[1].options == ("A", "B", "C")


def test_toggle_option_adds_and_removes() -> None:
    form = ApplicationForm(QUESTIONS)

    form.toggle_option("q-shifts", "A")
    form.toggle_option("q-shifts", "B")
    form.toggle_option("q-shifts", "C")
    form.toggle_option("q-shifts", "B")

    assert form.answers["q-shifts"] == "A,C"
    assert form.selected_options("q-shifts") == ["A", "C"]
    with pytest.raises(ValueError):
        form.toggle_option("q-essay", "A")


def test_file_answer_keeps_only_the_name() -> None:
    form = ApplicationForm(QUESTIONS)

    form.attach_file("q-cv", "/home/student/docs/cv-2026.pdf")

    assert form.answers["q-cv"] == "cv-2026.pdf"
    assert file_answer("cv.pdf") == "cv.pdf"
    with pytest.raises(KeyError):
        form.set_answer("q-unknown", "x")


def test_access_messages() -> None:
    assert access_message(Session()) == LOGIN_REQUIRED_MESSAGE
    assert access_message(Session(token="t", user_id="u", role="university")) == STUDENTS_ONLY_MESSAGE
    assert access_message(Session(token="t", user_id="u", role="student")) is None


def test_missing_required_answer_blocks_submission_without_request(connect, session_for) -> None:
    async def run() -> tuple[Any, list[str]]:
        async with connect(session_for("student-token")) as runtime:
            form = ApplicationForm(QUESTIONS)
            form.toggle_option("q-shifts", "A")
            result = await form.submit(runtime.listings["scholarships"], runtime.session)
            return result, runtime.notifier.messages("error")

    result, errors = asyncio.run(run())
    assert not result.ok
    assert errors == ["Please fill in required fields: Essay"]
    assert result.field_errors == {"Essay": "Required"}


def test_non_student_is_told_before_submitting(connect, session_for) -> None:
    async def run() -> tuple[Any, list[str]]:
        async with connect(session_for("university-token")) as runtime:
            form = ApplicationForm(QUESTIONS)
            form.set_answer("q-essay", "hello")
            result = await form.submit(runtime.listings["jobs"], runtime.session)
            return result, runtime.notifier.messages("error")

    result, errors = asyncio.run(run())
    assert not result.ok
    assert errors == [STUDENTS_ONLY_MESSAGE]


def test_student_submits_application_end_to_end(connect, session_for) -> None:
    async def run() -> tuple[Any, dict[str, Any], list[str]]:
        async with connect(session_for("university-token")) as owner:
            created = await owner.listings["jobs"].create(dict(JOB_WITH_FORM))
            assert created.ok, created
            job = created.data

        async with connect(session_for("student-token")) as student:
            form = ApplicationForm(job["questions"])
            essay_id = next(q["id"] for q in job["questions"] if q["label"] == "Essay")
            shifts_id = next(q["id"] for q in job["questions"] if q["label"] == "Shifts")
            form.set_answer(essay_id, "I enjoy careful lab work")
            form.toggle_option(shifts_id, "A")
            form.toggle_option(shifts_id, "C")
            result = await form.submit(student.listings["jobs"], student.session)
            assert form.answers == {}
            student_messages = student.notifier.messages()

        async with connect(session_for("university-token")) as owner:
            page = await owner.listings["jobs"].list_applications(job["id"])

        return result, page, student_messages

    result, page, messages = asyncio.run(run())
    assert result.ok
    assert messages == ["Application submitted successfully"]
    assert page["total"] == 2
    assert {item["answer"] for item in page["data"]} == {"I enjoy careful lab work", "A,C"}


def test_form_shows_blocking_message_instead_of_controls() -> None:
    form = ApplicationForm(QUESTIONS)

    anonymous = form.render(Session())
    mentor = form.render(Session(token="t", user_id="u", role="mentor"))

    assert anonymous.blocked
    assert anonymous.controls == ()
    assert anonymous.message == LOGIN_REQUIRED_MESSAGE
    assert mentor.controls == ()
    assert mentor.message == STUDENTS_ONLY_MESSAGE


def test_blank_optional_form_is_rejected_without_request(connect, session_for) -> None:
    optional_only = [question for question in QUESTIONS if not question["required"]]

    async def run() -> tuple[Any, list[str]]:
        async with connect(session_for("student-token")) as runtime:
            form = ApplicationForm(optional_only)
            form.set_answer("q-shifts", "   ")
            result = await form.submit(runtime.listings["jobs"], runtime.session)
            return result, runtime.notifier.messages("error")

    result, errors = asyncio.run(run())
    assert not result.ok
    assert result.errors == [EMPTY_APPLICATION_MESSAGE]
    assert errors == [EMPTY_APPLICATION_MESSAGE]
