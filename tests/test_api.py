import pytest
from sqlmodel import Session, select

from turnos.models import NotificationOutbox
from turnos.routers.admin_routes import ensure_admin

PASSWORD = "password123"


@pytest.fixture
def accounts(make_user):
    return {
        "barber": make_user("barber", name="Tomás", email="tomas@example.com", password=PASSWORD),
        "client": make_user("client", name="Ana", email="ana@example.com", password=PASSWORD),
        "admin": make_user("admin", email="admin@example.com", password=PASSWORD),
    }


@pytest.fixture
def headers(accounts, login):
    return {role: login(user.email, PASSWORD) for role, user in accounts.items()}


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_register_and_login(client):
    resp = client.post("/users", json={"email": "new@example.com", "name": "New", "password": PASSWORD})
    assert resp.status_code == 201
    assert resp.json()["role"] == "client"

    assert client.post("/users", json={"email": "new@example.com", "password": PASSWORD}).status_code == 409

    bad = client.post("/auth/login", data={"username": "new@example.com", "password": "wrong-password"})
    assert bad.status_code == 401

    token = client.post("/auth/login", data={"username": "new@example.com", "password": PASSWORD}).json()
    me = client.get("/me", headers={"Authorization": f"Bearer {token['access_token']}"})
    assert me.json()["email"] == "new@example.com"


def test_admins_cannot_self_register(client):
    resp = client.post("/users", json={"email": "boss@example.com", "password": PASSWORD, "role": "admin"})
    assert resp.status_code == 403


def test_requests_without_token_are_rejected(client):
    assert client.get("/appointments").status_code == 401


def test_book_and_cancel(client, engine, accounts, headers):
    resp = client.post(
        "/appointments",
        json={"barber_id": accounts["barber"].id, "starts_at": "2026-11-03T11:00:00"},
        headers=headers["client"],
    )
    assert resp.status_code == 201, resp.text
    body = resp.json()
    assert body["state"] == 1
    assert body["state_label"] == "Pending"
    assert body["ends_at"] == "2026-11-03T12:00:00"

    resp = client.post(f"/appointments/{body['id']}/cancel", headers=headers["client"])
    assert resp.status_code == 200
    assert resp.json()["state_label"] == "Cancelled"

    # the outbox is drained after the response
    with Session(engine) as session:
        rows = session.exec(select(NotificationOutbox)).all()
    assert len(rows) == 1
    assert rows[0].sent_at is not None


def test_scheduling_errors_are_rendered_with_a_code(client, accounts, headers):
    payload = {"barber_id": accounts["barber"].id, "starts_at": "2026-11-03T11:00:00"}
    assert client.post("/appointments", json=payload, headers=headers["client"]).status_code == 201

    resp = client.post(
        "/appointments", json={**payload, "client_id": accounts["client"].id}, headers=headers["admin"]
    )
    assert resp.status_code == 409
    assert resp.json()["code"] == "SLOT_CONFLICT"
    assert resp.json()["retryable"] is False

    resp = client.post(
        "/appointments",
        json={"barber_id": accounts["barber"].id, "starts_at": "2026-11-03T12:30:00"},
        headers=headers["client"],
    )
    assert resp.status_code == 422
    assert resp.json()["code"] == "OUTSIDE_BUSINESS_HOURS"

    resp = client.get("/appointments/999", headers=headers["admin"])
    assert resp.status_code == 404
    assert resp.json()["code"] == "APPOINTMENT_NOT_FOUND"


def test_barber_confirms_and_lists(client, accounts, headers):
    created = client.post(
        "/appointments",
        json={"barber_id": accounts["barber"].id, "starts_at": "2026-11-03T17:00:00"},
        headers=headers["client"],
    ).json()

    resp = client.post(f"/appointments/{created['id']}/state", json={"state": 2}, headers=headers["barber"])
    assert resp.status_code == 200
    assert resp.json()["state_label"] == "Confirmed"

    resp = client.post(f"/appointments/{created['id']}/state", json={"state": 2}, headers=headers["client"])
    assert resp.status_code == 403
    assert resp.json()["code"] == "ROLE_NOT_PERMITTED"

    listed = client.get("/appointments", headers=headers["barber"]).json()
    assert [a["id"] for a in listed] == [created["id"]]


def test_slots_endpoint(client, accounts):
    sunday = client.get(f"/barbers/{accounts['barber'].id}/slots", params={"date": "2026-11-08"})
    assert sunday.status_code == 200
    assert sunday.json()["slots"] == []

    tuesday = client.get(f"/barbers/{accounts['barber'].id}/slots", params={"date": "2026-11-03"}).json()
    assert [s["label"] for s in tuesday["slots"]] == ["10:00", "11:00", "12:00", "17:00", "18:00", "19:00", "20:00"]

    missing = client.get("/barbers/999/slots", params={"date": "2026-11-03"})
    assert missing.status_code == 404
    assert missing.json()["code"] == "BARBER_NOT_FOUND"


def test_barber_schedule_endpoints(client, accounts, headers):
    barber_id = accounts["barber"].id
    resp = client.put(
        "/barbers/me/availability",
        json={"windows": [{"weekday": 1, "start_time": "17:00", "end_time": "21:00"}]},
        headers=headers["barber"],
    )
    assert resp.status_code == 200
    assert client.get(f"/barbers/{barber_id}/availability").json()["windows"][0]["weekday"] == 1

    block = client.post(
        "/barbers/me/blocks",
        json={"starts_at": "2026-11-03T18:00:00", "ends_at": "2026-11-03T19:00:00", "reason": "errand"},
        headers=headers["barber"],
    )
    assert block.status_code == 201
    upcoming = client.get("/barbers/me/blocks", headers=headers["barber"]).json()
    assert [b["id"] for b in upcoming] == [block.json()["id"]]

    labels = [
        s["label"] for s in client.get(f"/barbers/{barber_id}/slots", params={"date": "2026-11-03"}).json()["slots"]
    ]
    assert labels == ["17:00", "19:00", "20:00"]

    assert client.put("/barbers/me/availability", json={"windows": []}, headers=headers["client"]).status_code == 403
    resp = client.delete(f"/barbers/me/blocks/{block.json()['id']}", headers=headers["barber"])
    assert resp.status_code == 204


def test_occupied_ranges_endpoint(client, accounts, headers):
    client.post(
        "/appointments",
        json={"barber_id": accounts["barber"].id, "starts_at": "2026-11-03T11:00:00"},
        headers=headers["client"],
    )

    resp = client.get(
        f"/barbers/{accounts['barber'].id}/occupied",
        params={"start": "2026-11-03T00:00:00", "end": "2026-11-04T00:00:00"},
    )
    assert resp.status_code == 200
    assert [(r["start"], r["end"]) for r in resp.json()] == [("2026-11-03T11:00:00", "2026-11-03T12:00:00")]


def test_admin_settings_drive_the_rules(client, accounts, headers):
    resp = client.put(
        "/admin/settings/max_active_appointments_per_client", json={"value": "1"}, headers=headers["admin"]
    )
    assert resp.status_code == 200
    assert resp.json()["key"] == "MAX_ACTIVE_APPOINTMENTS_PER_CLIENT"

    effective = client.get("/admin/settings/effective", headers=headers["admin"]).json()
    assert effective["max_active_per_client"] == 1
    assert effective["windows"][0] == {"name": "morning", "start": "10:00", "end": "13:00", "last_start": "12:00"}

    barber_id = accounts["barber"].id
    first = client.post(
        "/appointments", json={"barber_id": barber_id, "starts_at": "2026-11-03T11:00:00"}, headers=headers["client"]
    )
    assert first.status_code == 201
    second = client.post(
        "/appointments", json={"barber_id": barber_id, "starts_at": "2026-11-03T17:00:00"}, headers=headers["client"]
    )
    assert second.json()["code"] == "QUOTA_EXCEEDED"

    assert client.put("/admin/settings/NOT_A_KEY", json={"value": "1"}, headers=headers["admin"]).status_code == 422
    assert client.get("/admin/settings", headers=headers["client"]).status_code == 403
    assert (
        client.delete("/admin/settings/MAX_ACTIVE_APPOINTMENTS_PER_CLIENT", headers=headers["admin"]).status_code
        == 204
    )


def test_admin_creates_staff_and_sweeps(client, headers):
    resp = client.post(
        "/admin/users",
        json={"email": "boss2@example.com", "password": PASSWORD, "role": "admin"},
        headers=headers["admin"],
    )
    assert resp.status_code == 201
    assert resp.json()["role"] == "admin"

    assert client.post("/appointments/sweep", headers=headers["client"]).status_code == 403
    assert client.post("/appointments/sweep", headers=headers["admin"]).json() == {"expired": 0, "attended": 0}


def test_startup_admin_bootstrap(session):
    assert ensure_admin(session, None, None) is None

    admin = ensure_admin(session, "root@example.com", PASSWORD)
    assert admin.role == "admin"
    assert ensure_admin(session, "root@example.com", PASSWORD).id == admin.id
