"""
tests/test_users_routes.py -- Integration tests for /api/v1/users admin routes.

Covers:
  - admin-only access (401 unauthenticated, 403 other roles)
  - account creation in the first-login state, generated temporary passwords
  - duplicate email conflict
  - paginated listing with role filter
  - PATCH guards: self-deactivation, last admin, empty body, unknown id
"""

from __future__ import annotations

import re

import pytest

TEST_PASSWORD = "Test@1234"

_READY = {"is_first_login": False, "password_reset_required": False}
_PASSWORD_RE = re.compile(r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)(?=.*[@$!%*?&])[A-Za-z\d@$!%*?&]{8,}$")


@pytest.fixture(autouse=True)
def _fresh_cookies(api_client):
    api_client[0].cookies.clear()


def _bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


def _new_user_body(email: str, role: str = "student", **extra) -> dict:
    body = {"email": email, "firstName": "Chinedu", "lastName": "Okafor", "role": role}
    body.update(extra)
    return body


# ---------------------------------------------------------------------------
# Access control
# ---------------------------------------------------------------------------


def test_users_requires_auth(api_client):
    client, _, _ = api_client
    resp = client.get("/api/v1/users")
    assert resp.status_code == 401
    assert resp.json()["code"] == "unauthorized"


def test_users_forbidden_for_non_admin(api_client, api_user):
    client, _, _ = api_client
    student = api_user("not.admin@siwes.edu", **_READY)
    token = client.app.state.tokens.create_access_token(student)

    resp = client.post("/api/v1/users", json=_new_user_body("x@siwes.edu"), headers=_bearer(token))

    assert resp.status_code == 403
    assert resp.json()["code"] == "forbidden"


# ---------------------------------------------------------------------------
# Create
# ---------------------------------------------------------------------------


def test_create_user_with_password(api_client):
    client, token, _ = api_client
    resp = client.post(
        "/api/v1/users",
        json=_new_user_body("New.Student@siwes.edu", password=TEST_PASSWORD),
        headers=_bearer(token),
    )

    assert resp.status_code == 201
    body = resp.json()
    assert body["success"] is True
    data = body["data"]
    assert data["email"] == "new.student@siwes.edu"
    assert data["fullName"] == "Chinedu Okafor"
    assert data["isFirstLogin"] is True
    assert data["passwordResetRequired"] is True
    assert data["redirectTo"] == "/student/dashboard"
    assert data["temporaryPassword"] is None

    login = client.post("/api/v1/auth/login", json={"email": "new.student@siwes.edu", "password": TEST_PASSWORD})
    assert login.json()["data"]["requiresPasswordReset"] is True


def test_create_user_generates_temporary_password(api_client):
    client, token, _ = api_client
    resp = client.post(
        "/api/v1/users",
        json=_new_user_body("generated@siwes.edu", role="departmental_supervisor"),
        headers=_bearer(token),
    )

    assert resp.status_code == 201
    temporary = resp.json()["data"]["temporaryPassword"]
    assert _PASSWORD_RE.match(temporary)
    assert resp.headers["cache-control"] == "no-store"

    login = client.post("/api/v1/auth/login", json={"email": "generated@siwes.edu", "password": temporary})
    assert login.status_code == 200
    assert login.json()["data"]["isFirstLogin"] is True


def test_create_user_duplicate_email(api_client):
    client, token, _ = api_client
    body = _new_user_body("twice@siwes.edu", password=TEST_PASSWORD)
    assert client.post("/api/v1/users", json=body, headers=_bearer(token)).status_code == 201

    body["email"] = "TWICE@siwes.edu"
    resp = client.post("/api/v1/users", json=body, headers=_bearer(token))

    assert resp.status_code == 409
    assert resp.json()["code"] == "conflict"


@pytest.mark.parametrize(
    "override",
    [
        {"role": "superuser"},
        {"email": "not-an-email"},
        {"password": "weakpass"},
    ],
)
def test_create_user_validation(api_client, override):
    client, token, _ = api_client
    body = _new_user_body("invalid@siwes.edu")
    body.update(override)
    resp = client.post("/api/v1/users", json=body, headers=_bearer(token))
    assert resp.status_code == 422
    assert resp.json()["code"] == "validation_error"
    assert client.app.state.user_store.get_by_email("invalid@siwes.edu") is None


# ---------------------------------------------------------------------------
# List
# ---------------------------------------------------------------------------


def test_list_users_paginates_with_role_filter(api_client, api_user):
    client, token, _ = api_client
    for i in range(3):
        api_user(f"industry{i}@siwes.edu", role="industrial_supervisor")

    resp = client.get("/api/v1/users?role=industrial_supervisor&page=2&limit=2", headers=_bearer(token))

    assert resp.status_code == 200
    data = resp.json()["data"]
    assert [u["email"] for u in data["items"]] == ["industry2@siwes.edu"]
    assert data["pagination"] == {
        "currentPage": 2,
        "totalPages": 2,
        "totalItems": 3,
        "itemsPerPage": 2,
        "hasNextPage": False,
        "hasPrevPage": True,
    }
    assert data["pageRange"] == [1, 2]


def test_list_users_defaults(api_client):
    client, token, _ = api_client
    data = client.get("/api/v1/users", headers=_bearer(token)).json()["data"]
    assert data["pagination"]["currentPage"] == 1
    assert data["pagination"]["itemsPerPage"] == 20
    assert all("hashedPassword" not in u for u in data["items"])


def test_list_users_caps_limit(api_client):
    client, token, _ = api_client
    data = client.get("/api/v1/users?limit=1000", headers=_bearer(token)).json()["data"]
    assert data["pagination"]["itemsPerPage"] == 100


# ---------------------------------------------------------------------------
# Patch
# ---------------------------------------------------------------------------


def test_patch_deactivates_user(api_client, api_user):
    client, token, _ = api_client
    user = api_user("deactivate.me@siwes.edu", **_READY)

    resp = client.patch(f"/api/v1/users/{user.id}", json={"isActive": False}, headers=_bearer(token))

    assert resp.status_code == 200
    assert resp.json()["data"]["isActive"] is False
    login = client.post("/api/v1/auth/login", json={"email": "deactivate.me@siwes.edu", "password": TEST_PASSWORD})
    assert login.status_code == 403


def test_patch_forces_password_reset(api_client, api_user):
    client, token, _ = api_client
    user = api_user("force.reset@siwes.edu", **_READY)

    resp = client.patch(f"/api/v1/users/{user.id}", json={"passwordResetRequired": True}, headers=_bearer(token))

    assert resp.status_code == 200
    login = client.post("/api/v1/auth/login", json={"email": "force.reset@siwes.edu", "password": TEST_PASSWORD})
    data = login.json()["data"]
    assert data["requiresPasswordReset"] is True
    assert data["isFirstLogin"] is False


def test_patch_changes_role(api_client, api_user):
    client, token, _ = api_client
    user = api_user("promote@siwes.edu", **_READY)

    resp = client.patch(f"/api/v1/users/{user.id}", json={"role": "coordinator"}, headers=_bearer(token))

    assert resp.status_code == 200
    assert resp.json()["data"]["role"] == "coordinator"
    assert resp.json()["data"]["redirectTo"] == "/coordinator/dashboard"


def test_patch_blocks_self_deactivation(api_client):
    client, token, uid = api_client
    resp = client.patch(f"/api/v1/users/{uid}", json={"isActive": False}, headers=_bearer(token))
    assert resp.status_code == 400
    assert resp.json()["code"] == "self_deactivation"


def test_patch_blocks_demoting_last_admin(api_client):
    client, token, uid = api_client
    resp = client.patch(f"/api/v1/users/{uid}", json={"role": "student"}, headers=_bearer(token))
    assert resp.status_code == 400
    assert resp.json()["code"] == "last_admin"


def test_patch_empty_body(api_client, api_user):
    client, token, _ = api_client
    user = api_user("nochange@siwes.edu")
    resp = client.patch(f"/api/v1/users/{user.id}", json={}, headers=_bearer(token))
    assert resp.status_code == 400
    assert resp.json()["code"] == "no_changes"


def test_patch_unknown_user(api_client):
    client, token, _ = api_client
    resp = client.patch("/api/v1/users/99999", json={"isActive": True}, headers=_bearer(token))
    assert resp.status_code == 404
    assert resp.json()["message"] == "User not found"
