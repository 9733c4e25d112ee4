"""End-to-end API tests through FastAPI's TestClient."""

from datetime import date

import pytest

ADMIN = {
    "email": "warden@example.edu",
    "password": "s3cret!",
    "name": "Ravi",
    "role": "mess_admin",
    "facility_name": "SJ Hall",
    "facility_type": "college",
    "mess_name": "SJ Mess",
}


def bearer(token):
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def admin_session(client):
    response = client.post("/api/auth/register", json=ADMIN)
    assert response.status_code == 201
    body = response.json()
    return body["user"], bearer(body["access_token"])


def register_student(client, user, email="asha@example.edu"):
    response = client.post("/api/auth/register", json={
        "email": email,
        "password": "s3cret!",
        "name": "Asha",
        "role": "student",
        "facility_id": user["facility_id"],
        "mess_id": user["mess_id"],
    })
    assert response.status_code == 201
    return bearer(response.json()["access_token"])


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_register_login_and_me(client, admin_session):
    user, _ = admin_session
    assert user["mess_type"] == "college_mess"

    response = client.post("/api/auth/login", json={"email": ADMIN["email"], "password": ADMIN["password"]})
    assert response.status_code == 200
    token = response.json()["access_token"]

    me = client.get("/api/auth/me", headers=bearer(token))
    assert me.status_code == 200
    assert me.json()["data"]["facility_name"] == "SJ Hall"

    bad = client.post("/api/auth/login", json={"email": ADMIN["email"], "password": "nope"})
    assert bad.status_code == 401


def test_duplicate_registration(client, admin_session):
    response = client.post("/api/auth/register", json=dict(ADMIN, mess_name="Other Mess"))
    assert response.status_code == 409
    assert response.json()["error"]["message"] == "User already exists with this email"


def test_facility_endpoints(client, admin_session):
    user, headers = admin_session
    facility_id = user["facility_id"]

    listing = client.get("/api/facilities").json()
    assert listing["count"] == 1
    assert listing["data"][0]["active_messes_count"] == 1

    added = client.post(f"/api/facilities/{facility_id}/messes", json={"name": "North Mess"}, headers=headers)
    assert added.status_code == 201
    north_id = added.json()["data"]["mess_id"]

    clash = client.post(f"/api/facilities/{facility_id}/messes", json={"name": "north mess"}, headers=headers)
    assert clash.status_code == 409

    unique = client.get(f"/api/facilities/{facility_id}/messes/unique", params={"name": "North Mess"})
    assert unique.json() == {"unique": False}

    for _ in range(2):
        response = client.delete(f"/api/facilities/{facility_id}/messes/{north_id}", headers=headers)
        assert response.status_code == 200
        assert response.json()["data"]["is_active"] is False

    messes = client.get("/api/facilities/messes", params={"facility": "SJ Hall"}).json()["data"]
    assert [m["name"] for m in messes] == ["SJ Mess"]

    check = client.get("/api/facilities/check-name", params={"name": "SJ Hall"}).json()
    assert check["available"] is False

    by_mess = client.get("/api/facilities/by-mess", params={"messName": "SJ Mess"}).json()
    assert by_mess["facility"]["id"] == facility_id


def test_student_cannot_manage_messes(client, admin_session):
    user, _ = admin_session
    student_headers = register_student(client, user)
    response = client.post(
        f"/api/facilities/{user['facility_id']}/messes", json={"name": "Rogue Mess"}, headers=student_headers,
    )
    assert response.status_code == 403

    response = client.post(
        "/api/facilities", json={"name": "Rogue Hall", "type": "hostel", "mess_name": "Rogue Mess"},
        headers=student_headers,
    )
    assert response.status_code == 403


def test_menu_and_rating_flow(client, admin_session, monkeypatch):
    monkeypatch.setattr("services.feedback.ensure_within_meal_window", lambda meal_type, now=None: None)
    user, admin_headers = admin_session
    today = date.today().isoformat()

    item = client.post(
        "/api/menu/items",
        json={"name": "Veg Biryani", "category": "rice", "meal_type": "lunch"},
        headers=admin_headers,
    )
    assert item.status_code == 201
    item_id = item.json()["id"]

    menu = client.post("/api/menu/daily", json={
        "date": today,
        "meal_type": "lunch",
        "menu_items": [{"item_id": item_id}],
        "serving_time": {"start": f"{today}T12:00:00", "end": f"{today}T15:00:00"},
        "expected_students": 10,
    }, headers=admin_headers)
    assert menu.status_code == 201
    menu_id = menu.json()["id"]
    assert menu.json()["status"] == "draft"

    hidden = client.get("/api/menu/today", params={"facilityId": user["facility_id"], "messType": "college_mess"})
    assert hidden.json() == []

    published = client.put(f"/api/menu/daily/{menu_id}/publish", headers=admin_headers)
    assert published.status_code == 200
    assert published.json()["status"] == "published"
    again = client.put(f"/api/menu/daily/{menu_id}/publish", headers=admin_headers)
    assert again.status_code == 409

    visible = client.get("/api/menu/today", params={"facilityId": user["facility_id"], "messType": "college_mess"})
    assert [m["id"] for m in visible.json()] == [menu_id]

    student_headers = register_student(client, user)
    payload = {
        "menu_item_id": item_id,
        "daily_menu_id": menu_id,
        "category_ratings": {"taste": 4, "quantity": 5, "freshness": 3, "value": 4},
        "meal_type": "lunch",
        "meal_date": today,
    }
    rating = client.post("/api/ratings", json=payload, headers=student_headers)
    assert rating.status_code == 201
    assert rating.json()["overall_rating"] == 4

    duplicate = client.post("/api/ratings", json=payload, headers=student_headers)
    assert duplicate.status_code == 409

    refreshed = client.get(f"/api/menu/items/{item_id}", headers=admin_headers).json()
    assert refreshed["average_rating"] == 4
    assert refreshed["total_ratings"] == 1

    listing = client.get(f"/api/ratings/item/{item_id}", headers=admin_headers).json()
    assert listing["pagination"]["total"] == 1
    assert listing["summary"]["average_overall"] == 4

    history = client.get("/api/ratings/my-history", headers=student_headers).json()
    assert history["count"] == 1
    assert history["stats"]["total_ratings"] == 1

    self_vote = client.post(f"/api/ratings/{rating.json()['id']}/vote", json={"vote_type": "up"}, headers=student_headers)
    assert self_vote.status_code == 403
    vote = client.post(f"/api/ratings/{rating.json()['id']}/vote", json={"vote_type": "up"}, headers=admin_headers)
    assert vote.json() == {"upvotes": 1, "downvotes": 0, "helpfulness_score": 100.0}

    dashboard = client.get("/api/analytics/dashboard", headers=admin_headers)
    assert dashboard.status_code == 200
    assert dashboard.json()["data"]["overview"]["total_ratings"] == 1
    assert client.get("/api/analytics/dashboard", headers=student_headers).status_code == 403

    bad_export = client.get("/api/analytics/export", params={"type": "everything"}, headers=admin_headers)
    assert bad_export.status_code == 400


def test_publish_empty_menu_is_rejected(client, admin_session):
    _, headers = admin_session
    today = date.today().isoformat()
    menu = client.post("/api/menu/daily", json={
        "date": today,
        "meal_type": "dinner",
        "serving_time": {"start": f"{today}T19:00:00", "end": f"{today}T22:00:00"},
    }, headers=headers)
    response = client.put(f"/api/menu/daily/{menu.json()['id']}/publish", headers=headers)
    assert response.status_code == 400
    assert response.json()["error"]["message"] == "Cannot publish menu without items"
