from urllib.parse import parse_qs, urlparse

from onkur.domain.roles import Role
from tests.conftest import PASSWORD


def test_health_and_root(client):
    assert client.get("/").json()["service"] == "Onkur"
    body = client.get("/health").json()
    assert body["database"] == "healthy"


def test_routes_resolve_the_shared_session_dependency(client, db):
    from onkur.db.database import get_db
    from onkur.main import app

    opened = []

    def tracked():
        opened.append(db)
        yield db

    app.dependency_overrides[get_db] = tracked
    try:
        assert client.get("/events").status_code == 200
        assert client.get("/health").json()["database"] == "healthy"
    finally:
        app.dependency_overrides.clear()
    assert len(opened) == 2


def _link_token(message):
    return parse_qs(urlparse(message.cta.url).query)["token"][0]


def test_signup_verify_login_me_logout(client, outbox):
    response = client.post("/auth/signup", json={
        "name": "Vera Volunteer",
        "email": "Vera@Example.org",
        "password": PASSWORD,
        "roles": ["volunteer", "admin"],
    })
    assert response.status_code == 201
    body = response.json()
    assert body["user"]["email"] == "vera@example.org"
    assert body["requires_email_verification"] is True
    assert "access_token" not in body
    # Admin cannot be self-assigned
    assert body["user"]["roles"] == ["VOLUNTEER"]
    assert outbox.subjects() == ["Verify your email for Onkur"]

    duplicate = client.post("/auth/signup", json={
        "name": "Vera Again", "email": "VERA@example.org", "password": PASSWORD,
    })
    assert duplicate.status_code == 409
    assert duplicate.json() == {"error": "Email is already registered"}

    bad_login = client.post("/auth/login", json={"email": "vera@example.org", "password": "wrong-pass"})
    assert bad_login.status_code == 401
    assert bad_login.json() == {"error": "Invalid email or password"}

    unverified = client.post("/auth/login", json={"email": "vera@example.org", "password": PASSWORD})
    assert unverified.status_code == 403
    assert unverified.json() == {"error": "Please verify your email before logging in"}

    token = _link_token(outbox.sent[0])
    verified = client.post("/auth/verify-email", json={"token": token})
    assert verified.status_code == 200
    assert verified.json()["user"]["email_verified"] is True
    assert outbox.subjects()[-1] == "Welcome to Onkur"

    reused = client.post("/auth/verify-email", json={"token": token})
    assert reused.status_code == 400
    assert reused.json() == {"error": "This verification link has already been used"}

    token = client.post("/auth/login", json={"email": "VERA@example.org", "password": PASSWORD}).json()["access_token"]
    headers = {"Authorization": f"Bearer {token}"}
    assert client.get("/auth/me", headers=headers).json()["user"]["role"] == "VOLUNTEER"

    assert client.post("/auth/logout", headers=headers).status_code == 204
    revoked = client.get("/auth/me", headers=headers)
    assert revoked.status_code == 401
    assert revoked.json() == {"error": "Token has been revoked"}


def test_validation_errors_use_error_shape(client):
    response = client.post("/auth/signup", json={"name": "No Email", "password": PASSWORD})
    assert response.status_code == 400
    assert set(response.json()) == {"error"}

    short = client.post("/auth/signup", json={"name": "Pat", "email": "pat@example.org", "password": "short"})
    assert short.status_code == 400
    assert short.json() == {"error": "Password must be at least 8 characters"}


def test_authentication_and_role_checks(client, make_user, make_event, auth_header):
    event = make_event()
    assert client.post(f"/events/{event.id}/signup").status_code == 401

    sponsor = make_user(Role.SPONSOR)
    forbidden = client.post(f"/events/{event.id}/signup", headers=auth_header(sponsor))
    assert forbidden.status_code == 403
    assert "error" in forbidden.json()


def test_event_signup_flow(client, make_user, make_event, auth_header, outbox):
    event = make_event(capacity=1)
    first, second = make_user(), make_user()

    joined = client.post(f"/events/{event.id}/signup", headers=auth_header(first))
    assert joined.status_code == 201
    assert joined.json()["event"]["available_slots"] == 0

    again = client.post(f"/events/{event.id}/signup", headers=auth_header(first))
    assert again.status_code == 409
    assert again.json() == {"error": "You are already registered for this event"}

    full = client.post(f"/events/{event.id}/signup", headers=auth_header(second))
    assert full.status_code == 409
    assert full.json() == {"error": "Event capacity has been reached"}

    left = client.delete(f"/events/{event.id}/signup", headers=auth_header(first))
    assert left.status_code == 200
    assert left.json()["removed_minutes"] == 0

    assert client.get("/events/999").status_code == 404


def test_manager_creates_and_admin_approves(client, manager, admin, auth_header, outbox):
    payload = {
        "title": "Beach clean-up",
        "description": "Collecting litter along the shore.",
        "category": "Environment",
        "date_start": "2030-04-01T09:00:00Z",
        "date_end": "2030-04-01T12:00:00Z",
        "capacity": 20,
        "location": "North Beach",
    }
    created = client.post("/events", json=payload, headers=auth_header(manager))
    assert created.status_code == 201
    event_id = created.json()["event"]["id"]

    published = client.post(f"/events/{event_id}/publish", headers=auth_header(manager)).json()
    assert published["event"]["awaiting_approval"]
    assert client.get(f"/events/{event_id}").status_code == 404

    approved = client.post(
        f"/admin/moderation/event/{event_id}/approve", json={"note": "Good to go"}, headers=auth_header(admin)
    )
    assert approved.status_code == 200
    assert client.get(f"/events/{event_id}").json()["event"]["status"] == "PUBLISHED"

    logs = client.get("/admin/audit-logs", params={"entity_type": "event"}, headers=auth_header(admin)).json()
    actions = [log["action"] for log in logs["logs"]]
    assert actions == ["admin.event.approve"]


def test_invalid_event_payload(client, manager, auth_header):
    response = client.post("/events", headers=auth_header(manager), json={
        "title": "Beach clean-up",
        "description": "Collecting litter along the shore.",
        "category": "Environment",
        "date_start": "2030-04-01T12:00:00Z",
        "date_end": "2030-04-01T09:00:00Z",
        "capacity": 20,
        "location": "North Beach",
    })
    assert response.status_code == 400
    assert response.json() == {"error": "End date must be after the start date"}


def test_sponsor_apply_then_pledge(client, make_user, make_event, admin, auth_header, outbox):
    user = make_user()
    event = make_event()
    headers = auth_header(user)

    applied = client.post("/sponsors/apply", json={"org_name": "Green Co"}, headers=headers)
    assert applied.status_code == 201
    assert applied.json()["profile"]["status"] == "PENDING"

    pledge = client.post(
        "/sponsors/sponsorships", json={"event_id": event.id, "type": "FUNDS", "amount": 150}, headers=headers
    )
    assert pledge.status_code == 201
    sponsorship_id = pledge.json()["sponsorship"]["id"]

    blocked = client.post(
        f"/admin/sponsorships/{sponsorship_id}/status", json={"status": "APPROVED"}, headers=auth_header(admin)
    )
    assert blocked.status_code == 400

    client.post(f"/admin/moderation/sponsor/{user.id}/approve", headers=auth_header(admin))
    approved = client.post(
        f"/admin/sponsorships/{sponsorship_id}/status", json={"status": "APPROVED"}, headers=auth_header(admin)
    )
    assert approved.status_code == 200
    again = client.post(
        f"/admin/sponsorships/{sponsorship_id}/status", json={"status": "DECLINED"}, headers=auth_header(admin)
    )
    assert again.status_code == 409
    sponsors = client.get(f"/events/{event.id}").json()["sponsors"]
    assert [s["org_name"] for s in sponsors] == ["Green Co"]


def test_volunteer_logs_hours(client, make_user, make_event, register, auth_header):
    volunteer = make_user()
    event = make_event()
    register(event, volunteer)
    headers = auth_header(volunteer)

    invalid = client.post("/volunteer/hours", json={"event_id": event.id, "minutes": 0}, headers=headers)
    assert invalid.status_code == 400
    assert invalid.json() == {"error": "Minutes must be greater than zero"}

    logged = client.post("/volunteer/hours", json={"event_id": event.id, "minutes": 600}, headers=headers)
    assert logged.status_code == 201

    hours = client.get("/volunteer/hours", headers=headers).json()
    assert hours["total_minutes"] == 600
    assert hours["badges"][0]["earned"]
