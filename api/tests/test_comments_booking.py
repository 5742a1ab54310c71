from __future__ import annotations

from typing import Any

from fastapi.testclient import TestClient


def _auth(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def _published_news(client: TestClient) -> dict[str, Any]:
    response = client.post(
        "/research-news",
        json={
            "title": "Wind tunnel results",
            "abstract": "Reduced drag on blended wings",
            "article": "Details inside",
            "category": "aerospace",
            "status": "published",
        },
        headers=_auth("university-token"),
    )
    assert response.status_code == 201, response.text
    return response.json()


def test_comment_thread_with_replies(api_client: TestClient) -> None:
    news = _published_news(api_client)

    response = api_client.post(
        "/research-news/comment",
        json={"research_news_id": news["id"], "text": "Great result"},
        headers=_auth("student-token"),
    )
    assert response.status_code == 201
    top = response.json()
    assert top["parent_comment_id"] is None

    response = api_client.post(
        "/research-news/comment",
        json={"research_news_id": news["id"], "text": "Agreed", "parent_comment_id": top["id"]},
        headers=_auth("student-2-token"),
    )
    assert response.status_code == 201
    reply = response.json()

    threads = api_client.get(f"/research-news/comment/top-level/{news['id']}").json()
    assert [(item["id"], item["replies_count"]) for item in threads] == [(top["id"], 1)]

    replies = api_client.get(f"/research-news/comment/replies/{top['id']}").json()
    assert [item["text"] for item in replies] == ["Agreed"]

    response = api_client.post(
        "/research-news/comment",
        json={"research_news_id": news["id"], "text": "Too deep", "parent_comment_id": reply["id"]},
        headers=_auth("student-token"),
    )
    assert response.status_code == 422


def test_only_comment_author_can_delete(api_client: TestClient) -> None:
    news = _published_news(api_client)
    comment = api_client.post(
        "/research-news/comment",
        json={"research_news_id": news["id"], "text": "Mine"},
        headers=_auth("student-token"),
    ).json()

    assert api_client.delete(f"/research-news/comments/{comment['id']}", headers=_auth("student-2-token")).status_code == 403
    assert api_client.delete(f"/research-news/comments/{comment['id']}", headers=_auth("student-token")).status_code == 204
    assert api_client.get(f"/research-news/comment/top-level/{news['id']}").json() == []


def test_comments_require_published_news(api_client: TestClient) -> None:
    response = api_client.post(
        "/research-news",
        json={"title": "Embargoed", "abstract": "Soon", "article": "Later", "category": "health"},
        headers=_auth("university-token"),
    )
    draft = response.json()

    response = api_client.post(
        "/research-news/comment",
        json={"research_news_id": draft["id"], "text": "Early"},
        headers=_auth("student-token"),
    )
    assert response.status_code == 404


def test_booking_taken_slot_conflicts(api_client: TestClient) -> None:
    response = api_client.post(
        "/booking/slots",
        json={"starts_at": "2026-11-02T10:00:00+00:00", "ends_at": "2026-11-02T10:30:00+00:00"},
        headers=_auth("mentor-token"),
    )
    assert response.status_code == 201
    slot = response.json()
    assert slot["booked_by"] is None

    assert [item["id"] for item in api_client.get("/booking/slots").json()] == [slot["id"]]

    response = api_client.post("/booking", json={"slot_id": slot["id"]}, headers=_auth("student-token"))
    assert response.status_code == 200
    assert response.json()["booked_by"] == "student-1"

    response = api_client.post("/booking", json={"slot_id": slot["id"]}, headers=_auth("student-2-token"))
    assert response.status_code == 409
    assert response.json()["detail"] == "slot no longer available"

    assert api_client.get("/booking/slots").json() == []
    assert len(api_client.get("/booking/slots", params={"available_only": "false"}).json()) == 1


def test_booking_roles(api_client: TestClient) -> None:
    window = {"starts_at": "2026-11-02T10:00:00+00:00", "ends_at": "2026-11-02T10:30:00+00:00"}
    assert api_client.post("/booking/slots", json=window, headers=_auth("student-token")).status_code == 403

    inverted = {"starts_at": window["ends_at"], "ends_at": window["starts_at"]}
    assert api_client.post("/booking/slots", json=inverted, headers=_auth("mentor-token")).status_code == 422

    assert api_client.post("/booking", json={"slot_id": "missing"}, headers=_auth("student-token")).status_code == 404
    assert api_client.post("/booking", json={"slot_id": "missing"}, headers=_auth("mentor-token")).status_code == 403
