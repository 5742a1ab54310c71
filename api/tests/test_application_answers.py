from __future__ import annotations

from typing import Any

from fastapi.testclient import TestClient


def _auth(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def _create_scholarship(client: TestClient, *, status: str = "Live") -> dict[str, Any]:
    response = client.post(
        "/scholarships",
        json={
            "name": "Women in STEM Fellowship",
            "description": "Full tuition for two years",
            "amount": 12000,
            "deadline": "2026-12-31",
            "has_application_form": True,
            "status": status,
            "questions": [
                {"label": "Essay", "type": "Textarea", "required": True},
                {"label": "Interests", "type": "Checkboxes", "options": ["A", "B", "C"]},
                {"label": "Transcript", "type": "File Upload"},
            ],
        },
        headers=_auth("university-token"),
    )
    assert response.status_code == 201, response.text
    return response.json()


def _question_ids(listing: dict[str, Any]) -> dict[str, str]:
    return {question["label"]: question["id"] for question in listing["questions"]}


def test_questions_keep_their_order(api_client: TestClient) -> None:
    scholarship = _create_scholarship(api_client)
    assert [question["label"] for question in scholarship["questions"]] == ["Essay", "Interests", "Transcript"]
    assert [question["position"] for question in scholarship["questions"]] == [0, 1, 2]


def test_student_submits_application_and_author_lists_it(api_client: TestClient) -> None:
    scholarship = _create_scholarship(api_client)
    ids = _question_ids(scholarship)

    response = api_client.post(
        "/scholarships/answers",
        json={
            "answers": [
                {"question_id": ids["Essay"], "answer": "I want to study protein design."},
                {"question_id": ids["Interests"], "answer": "A,C"},
                {"question_id": ids["Transcript"], "answer": "transcript.pdf"},
            ]
        },
        headers=_auth("student-token"),
    )
    assert response.status_code == 201, response.text
    assert response.json() == {"submitted": 3, "listing_ids": [scholarship["id"]]}

    listing = api_client.get(f"/scholarships/{scholarship['id']}").json()
    assert listing["application_count"] == 1

    response = api_client.get(
        f"/scholarships/{scholarship['id']}/applications",
        params={"page": 1, "limit": 2},
        headers=_auth("university-token"),
    )
    assert response.status_code == 200
    page = response.json()
    assert page["total"] == 3
    assert page["page"] == 1
    assert page["limit"] == 2
    assert len(page["data"]) == 2
    assert page["data"][0]["student_id"] == "student-1"
    assert page["data"][0]["question"]["label"] == "Essay"


def test_missing_required_answer_names_the_question(api_client: TestClient) -> None:
    scholarship = _create_scholarship(api_client)
    ids = _question_ids(scholarship)

    response = api_client.post(
        "/scholarships/answers",
        json={"answers": [{"question_id": ids["Interests"], "answer": "B"}, {"question_id": ids["Essay"], "answer": " "}]},
        headers=_auth("student-token"),
    )
    assert response.status_code == 422
    assert "Essay" in response.json()["detail"]


def test_second_application_from_same_student_conflicts(api_client: TestClient) -> None:
    scholarship = _create_scholarship(api_client)
    answers = {"answers": [{"question_id": _question_ids(scholarship)["Essay"], "answer": "Essay text"}]}

    assert api_client.post("/scholarships/answers", json=answers, headers=_auth("student-token")).status_code == 201
    assert api_client.post("/scholarships/answers", json=answers, headers=_auth("student-token")).status_code == 409
    assert api_client.post("/scholarships/answers", json=answers, headers=_auth("student-2-token")).status_code == 201


def test_draft_listing_does_not_accept_applications(api_client: TestClient) -> None:
    scholarship = _create_scholarship(api_client, status="Draft")
    answers = {"answers": [{"question_id": _question_ids(scholarship)["Essay"], "answer": "Essay text"}]}

    response = api_client.post("/scholarships/answers", json=answers, headers=_auth("student-token"))
    assert response.status_code == 409


def test_only_students_submit_answers(api_client: TestClient) -> None:
    scholarship = _create_scholarship(api_client)
    answers = {"answers": [{"question_id": _question_ids(scholarship)["Essay"], "answer": "Essay text"}]}

    assert api_client.post("/scholarships/answers", json=answers).status_code == 401
    assert api_client.post("/scholarships/answers", json=answers, headers=_auth("mentor-token")).status_code == 403


def test_checkbox_answer_must_use_known_options(api_client: TestClient) -> None:
    scholarship = _create_scholarship(api_client)
    ids = _question_ids(scholarship)

    response = api_client.post(
        "/scholarships/answers",
        json={
            "answers": [
                {"question_id": ids["Essay"], "answer": "Essay text"},
                {"question_id": ids["Interests"], "answer": "A,Z"},
            ]
        },
        headers=_auth("student-token"),
    )
    assert response.status_code == 422
    assert "Z" in response.json()["detail"]


def test_unknown_question_is_rejected(api_client: TestClient) -> None:
    _create_scholarship(api_client)
    response = api_client.post(
        "/scholarships/answers",
        json={"answers": [{"question_id": "missing-question", "answer": "x"}]},
        headers=_auth("student-token"),
    )
    assert response.status_code == 422


def test_questions_are_frozen_once_applications_exist(api_client: TestClient) -> None:
    scholarship = _create_scholarship(api_client)
    answers = {"answers": [{"question_id": _question_ids(scholarship)["Essay"], "answer": "Essay text"}]}
    assert api_client.post("/scholarships/answers", json=answers, headers=_auth("student-token")).status_code == 201

    response = api_client.patch(
        f"/scholarships/{scholarship['id']}",
        json={"questions": [{"label": "Motivation", "type": "Textarea", "required": True}]},
        headers=_auth("university-token"),
    )
    assert response.status_code == 409

    response = api_client.patch(
        f"/scholarships/{scholarship['id']}",
        json={"amount": 15000},
        headers=_auth("university-token"),
    )
    assert response.status_code == 200
    assert response.json()["amount"] == 15000


def test_deleting_listing_drops_its_applications(api_client: TestClient, repository: Any) -> None:
    scholarship = _create_scholarship(api_client)
    answers = {"answers": [{"question_id": _question_ids(scholarship)["Essay"], "answer": "Essay text"}]}
    api_client.post("/scholarships/answers", json=answers, headers=_auth("student-token"))
    assert repository.answers

    response = api_client.delete(f"/scholarships/{scholarship['id']}", headers=_auth("university-token"))
    assert response.status_code == 200
    assert repository.answers == []
