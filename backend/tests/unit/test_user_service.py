import pytest
from fastapi import HTTPException

from app.models.user import ProfileUpdate, RoleUpdateRequest
from app.services.user_service import UserService, profile_response

ADMIN = "admin-1"
USER = "user-1"


@pytest.fixture
def service(db, notifications) -> UserService:
    db.seed(
        "user_profiles",
        {"id": ADMIN, "roles": ["admin", "author"], "active_role": "admin"},
        {"id": USER, "roles": ["editor", "author"], "active_role": "editor"},
    )
    return UserService(client=db, notifications=notifications)


def test_profile_response_lists_actions():
    out = profile_response({"id": USER, "role": "editor", "roles": ["author"]})
    assert out["roles"] == ["author"]
    assert "payment:pay" in out["allowed_actions"]
    assert "doi:reserve" not in out["allowed_actions"]
    assert "role" not in out


def test_switch_active_role(service, db):
    profile = {"id": USER, "roles": ["editor", "author"], "active_role": "editor"}
    out = service.switch_active_role(profile, "author")
    assert out["active_role"] == "author"
    assert db.get("user_profiles", USER)["active_role"] == "author"

    with pytest.raises(HTTPException) as exc:
        service.switch_active_role(profile, "admin")
    assert exc.value.status_code == 400


def test_admin_removes_active_role(service, db, notifications):
    out = service.update_roles(USER, RoleUpdateRequest(action="remove", role="editor"), admin_id=ADMIN)
    assert out["roles"] == ["author"]
    assert out["active_role"] == "author"
    assert db.get("user_profiles", USER)["active_role"] == "author"
    assert notifications.sent[-1]["type"] == "admin_action"
    assert notifications.sent[-1]["user_id"] == USER


def test_removed_role_stays_removed_for_legacy_profiles(db, service):
    db.seed("user_profiles", {"id": "legacy-1", "role": "editor", "roles": ["editor", "author"], "active_role": "editor"})

    out = service.update_roles("legacy-1", RoleUpdateRequest(action="remove", role="editor"), admin_id=ADMIN)
    assert out["roles"] == ["author"]

    stored = db.get("user_profiles", "legacy-1")
    assert stored["role"] is None
    assert stored["roles"] == ["author"]

    again = service.get_user("legacy-1")
    assert "editor" not in again["roles"]
    assert "doi:reserve" not in again["allowed_actions"]


def test_admin_cannot_empty_roles(service):
    with pytest.raises(HTTPException) as exc:
        service.update_roles(USER, RoleUpdateRequest(action="set", roles=[]), admin_id=ADMIN)
    assert exc.value.status_code == 400


def test_admin_cannot_drop_own_admin_role(service):
    with pytest.raises(HTTPException) as exc:
        service.update_roles(ADMIN, RoleUpdateRequest(action="remove", role="admin"), admin_id=ADMIN)
    assert exc.value.detail == "Admins cannot remove their own admin role"


def test_noop_role_change_sends_no_notification(service, notifications):
    service.update_roles(USER, RoleUpdateRequest(action="add", role="author"), admin_id=ADMIN)
    assert notifications.sent == []


def test_unknown_user_is_404(service):
    with pytest.raises(HTTPException) as exc:
        service.update_roles("ghost", RoleUpdateRequest(action="add", role="author"), admin_id=ADMIN)
    assert exc.value.status_code == 404


def test_update_profile(service, db):
    out = service.update_profile(USER, ProfileUpdate(full_name="Dr. X", country="ng", institution="  "))
    assert out["full_name"] == "Dr. X"
    assert db.get("user_profiles", USER)["country"] == "NG"
    assert db.get("user_profiles", USER)["institution"] is None

    with pytest.raises(HTTPException):
        service.update_profile(USER, ProfileUpdate())
