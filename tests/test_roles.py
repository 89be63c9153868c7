from onkur.domain.roles import (
    Role, determine_primary_role, has_any_role, normalize_role, sort_roles_by_priority,
)


def test_normalize_role_accepts_case_and_whitespace():
    assert normalize_role(" event_manager ") == Role.EVENT_MANAGER
    assert normalize_role(Role.SPONSOR) == Role.SPONSOR
    assert normalize_role("superuser") is None
    assert normalize_role(None) is None


def test_sort_roles_dedupes_and_orders_by_priority():
    roles = sort_roles_by_priority(["sponsor", "VOLUNTEER", "admin", "bogus", "Sponsor"])
    assert roles == [Role.ADMIN, Role.VOLUNTEER, Role.SPONSOR]


def test_primary_role_is_highest_priority():
    assert determine_primary_role(["VOLUNTEER", "EVENT_MANAGER"]) == Role.EVENT_MANAGER
    assert determine_primary_role(["SPONSOR", "ADMIN"]) == Role.ADMIN


def test_primary_role_falls_back():
    assert determine_primary_role([]) == Role.VOLUNTEER
    assert determine_primary_role(["nope"], fallback="sponsor") == Role.SPONSOR
    assert determine_primary_role(None, fallback="nope") == Role.VOLUNTEER


def test_has_any_role():
    assert has_any_role(["volunteer", "sponsor"], [Role.SPONSOR])
    assert not has_any_role(["volunteer"], [Role.ADMIN, Role.EVENT_MANAGER])
    assert not has_any_role([], [Role.VOLUNTEER])
