from datetime import timedelta

import pytest

from onkur.db.models import EventCategory, ProfileOption
from onkur.domain.profile_options import normalize_availability, normalize_state, normalize_tags
from onkur.domain.roles import Role
from onkur.errors import ValidationError
from onkur.services.attendance_service import attendance_service
from onkur.services.event_service import category_slug, event_service
from onkur.services.volunteer_service import volunteer_service


def test_profile_field_normalisation():
    assert normalize_tags(" First Aid, teaching,first aid ,,") == ["first aid", "teaching"]
    assert normalize_tags(None) == []
    assert normalize_availability(["Weekends", "weekends", "remote"]) == ["weekends", "remote"]
    assert normalize_state("tamil nadu") == "Tamil Nadu"
    with pytest.raises(ValidationError):
        normalize_availability("sometimes")
    with pytest.raises(ValidationError):
        normalize_state("Atlantis")


def test_category_slug():
    assert category_slug("Tree Planting!") == "tree-planting"
    assert category_slug("  Beach & River Clean-up ") == "beach-river-clean-up"
    assert category_slug("***") == ""


def test_empty_profile_has_defaults(db, make_user):
    user = make_user()
    profile = volunteer_service.get_profile(db, user.id)
    assert profile["user_id"] == user.id
    assert profile["skills"] == [] and profile["location"] == ""


def test_update_profile_normalises_and_grows_catalogs(db, make_user, as_actor):
    user = make_user()
    profile = volunteer_service.update_profile(db, as_actor(user), {
        "skills": "Bird Watching, first aid",
        "interests": ["Climate Advocacy"],
        "availability": ["Weekday evenings"],
        "location": "  new delhi ",
        "state": "delhi",
        "bio": "  Weekend birder.  ",
    })

    assert profile["skills"] == ["bird watching", "first aid"]
    assert profile["interests"] == ["climate advocacy"]
    assert profile["availability"] == ["weekday-evenings"]
    assert profile["location"] == "New Delhi"
    assert profile["state"] == "Delhi"
    assert profile["bio"] == "Weekend birder."

    catalogs = volunteer_service.get_profile_catalogs(db)
    skills = [option["value"] for option in catalogs["skills"]]
    assert "bird watching" in skills and "tree planting" in skills
    assert {"value": "New Delhi", "label": "New Delhi"} in catalogs["locations"]
    assert db.query(ProfileOption).filter(ProfileOption.value == "first aid").count() == 1


def test_invalid_profile_input_leaves_profile_untouched(db, make_user, as_actor):
    user = make_user()
    volunteer_service.update_profile(db, as_actor(user), {"skills": ["teaching"]})

    with pytest.raises(ValidationError):
        volunteer_service.update_profile(db, as_actor(user), {"skills": ["cooking"], "availability": "never"})
    assert volunteer_service.get_profile(db, user.id)["skills"] == ["teaching"]


def test_dashboard_splits_upcoming_and_past(db, make_user, make_event, register, as_actor):
    volunteer = make_user()
    upcoming = make_event(title="Mangrove walk")
    past = make_event(title="Park sweep", status="COMPLETED", starts_in=timedelta(days=-5))
    register(upcoming, volunteer)
    register(past, volunteer)
    attendance_service.record_volunteer_hours(db, as_actor(volunteer), past.id, 90, "Sorting litter")

    dashboard = volunteer_service.get_dashboard(db, as_actor(volunteer))

    assert [e["title"] for e in dashboard["upcoming_events"]] == ["Mangrove walk"]
    assert [e["title"] for e in dashboard["past_events"]] == ["Park sweep"]
    assert dashboard["stats"] == {
        "total_minutes": 90, "total_hours": 1.5, "upcoming_count": 1, "past_count": 1,
    }
    assert [badge["earned"] for badge in dashboard["achievements"]] == [False, False, False]
    assert len(dashboard["recent_hours"]) == 1
    assert dashboard["profile_catalogs"]["availability"][0]["value"] == "weekday-mornings"


def test_events_register_their_category(db, manager, as_actor):
    payload = {
        "title": "Seed ball workshop",
        "description": "Rolling seed balls for the monsoon.",
        "category": "Tree Planting",
        "date_start": "2030-06-01T09:00:00Z",
        "date_end": "2030-06-01T12:00:00Z",
        "capacity": 15,
        "location": "Community hall",
    }
    event_service.create_event(db, as_actor(manager), payload)
    second = event_service.create_event(db, as_actor(manager), {**payload, "category": "tree planting"}).value

    assert second["category"] == "Tree Planting"
    assert event_service.list_categories(db) == [{"value": "tree-planting", "label": "Tree Planting"}]


def test_save_category_creates_and_relabels(db):
    assert event_service.save_category(db, "Beach Clean-up") == {"value": "beach-clean-up", "label": "Beach Clean-up"}
    assert event_service.save_category(db, "Beach & Shore", "beach-clean-up") == {
        "value": "beach-clean-up", "label": "Beach & Shore",
    }
    assert event_service.save_category(db, None, "beach-clean-up")["label"] == "Beach & Shore"
    assert db.query(EventCategory).count() == 1

    with pytest.raises(ValidationError) as exc:
        event_service.save_category(db, None, "unknown-key")
    assert exc.value.message == "Selected category is no longer available"
    with pytest.raises(ValidationError):
        event_service.save_category(db, "  ")


def test_lookups_combine_categories_and_profile_vocabulary(db, make_user, as_actor):
    event_service.save_category(db, "Wildlife")
    volunteer_service.update_profile(db, as_actor(make_user()), {"skills": ["bird ringing"]})

    lookups = event_service.get_event_lookups(db)

    assert lookups["categories"] == [{"value": "wildlife", "label": "Wildlife"}]
    skills = [option["value"] for option in lookups["skills"]]
    assert "bird ringing" in skills and "first aid" in skills
    assert len(skills) == len(set(skills))
    assert {"value": "Kerala", "label": "Kerala"} in lookups["states"]


def test_profile_and_lookup_routes(client, make_user, manager, auth_header):
    volunteer = make_user()
    headers = auth_header(volunteer)

    saved = client.put("/volunteer/me/profile", json={"skills": ["Teaching"], "location": "pune"}, headers=headers)
    assert saved.status_code == 200
    assert saved.json()["profile"]["location"] == "Pune"
    assert client.get("/volunteer/me/profile", headers=headers).json()["profile"]["skills"] == ["teaching"]

    bad = client.put("/volunteer/me/profile", json={"availability": ["whenever"]}, headers=headers)
    assert bad.status_code == 400
    assert bad.json() == {"error": "Unsupported availability option: whenever"}

    dashboard = client.get("/volunteer/me/dashboard", headers=headers)
    assert dashboard.status_code == 200
    assert dashboard.json()["stats"]["upcoming_count"] == 0

    assert client.post("/events/categories", json={"label": "Wildlife"}, headers=headers).status_code == 403
    created = client.post("/events/categories", json={"label": "Wildlife"}, headers=auth_header(manager))
    assert created.status_code == 201
    assert created.json() == {"category": {"value": "wildlife", "label": "Wildlife"}}
    assert client.get("/events/lookups").json()["categories"] == [{"value": "wildlife", "label": "Wildlife"}]


def test_dashboard_is_for_volunteers(client, make_user, auth_header):
    sponsor = make_user(Role.SPONSOR)
    response = client.get("/volunteer/me/dashboard", headers=auth_header(sponsor))
    assert response.status_code == 403
