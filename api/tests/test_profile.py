from fastapi.testclient import TestClient


def _auth(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def test_profile_is_missing_until_saved(api_client: TestClient) -> None:
    assert api_client.get("/profile", headers=_auth("university-token")).status_code == 404


def test_owner_saves_profile_and_staff_reads_it(api_client: TestClient) -> None:
    payload = {
        "name": "Example University",
        "website": "https://example.edu",
        "country": "DE",
        "city": "Berlin",
        "founded_year": 1810,
    }
    response = api_client.put("/profile", json=payload, headers=_auth("university-token"))
    assert response.status_code == 200
    body = response.json()
    assert body["organization_id"] == "org-a"
    assert body["founded_year"] == 1810

    response = api_client.get("/profile", headers=_auth("staff-token"))
    assert response.status_code == 200
    assert response.json()["name"] == "Example University"

    assert api_client.get("/profile", headers=_auth("other-university-token")).status_code == 404


def test_profile_write_rules(api_client: TestClient) -> None:
    assert api_client.put("/profile", json={"name": "Lab"}, headers=_auth("staff-token")).status_code == 403
    assert api_client.get("/profile", headers=_auth("student-token")).status_code == 403
    assert api_client.put("/profile", json={"name": "  "}, headers=_auth("university-token")).status_code == 422
    response = api_client.put("/profile", json={"name": "Lab", "founded_year": 99}, headers=_auth("university-token"))
    assert response.status_code == 422
