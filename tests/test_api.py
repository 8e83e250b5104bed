import functools
from unittest.mock import AsyncMock, patch

import pytest
from fastapi.testclient import TestClient

from salesdesk.main import create_app
from salesdesk.models.user import UserRole, UserStatus
from conftest import DEFAULT_PASSWORD, bearer, create_user, make_settings

API = "/api/v1"
NEW_PASSWORD = "N3w-Secure#Pw"


def assert_envelope(body, success, code, status_code):
    assert body["success"] is success
    assert body["code"] == code
    assert body["statusCode"] == status_code
    assert body["message"]
    assert body["timestamp"].endswith("Z")


def test_root(client):
    response = client.get("/")
    assert response.status_code == 200
    body = response.json()
    assert_envelope(body, True, "SUCCESS", 200)
    assert body["data"]["api"] == API


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["data"]["database"] == "healthy"


def test_status_and_auth_health(client):
    response = client.get(f"{API}/status")
    assert response.status_code == 200
    assert response.json()["data"]["environment"] == "test"
    assert response.json()["data"]["user"] is None

    response = client.get(f"{API}/auth/health")
    assert response.json()["data"] == {"service": "auth", "status": "healthy"}


def test_status_names_authenticated_caller(client, seed, login):
    seed(code="ADV001")
    tokens = login("ADV001")

    response = client.get(f"{API}/status", headers=bearer(tokens["accessToken"]))
    assert response.json()["data"]["user"] == "ADV001"

    # A bad token is ignored rather than rejected
    response = client.get(f"{API}/status", headers=bearer("not-a-jwt"))
    assert response.status_code == 200
    assert response.json()["data"]["user"] is None


def test_status_survives_lookup_failure(client, seed, login):
    seed(code="ADV001")
    tokens = login("ADV001")
    users = client.app.state.context.users

    with patch.object(users, "get_by_id", AsyncMock(side_effect=RuntimeError("db down"))):
        response = client.get(f"{API}/status", headers=bearer(tokens["accessToken"]))

    assert response.status_code == 200
    assert response.json()["data"]["user"] is None


def test_security_and_request_id_headers(client):
    response = client.get("/", headers={"X-Request-ID": "req-123"})
    assert response.headers["X-Request-ID"] == "req-123"
    assert response.headers["X-Frame-Options"] == "DENY"
    assert response.headers["X-Content-Type-Options"] == "nosniff"
    assert "Strict-Transport-Security" not in response.headers

    generated = client.get("/").headers["X-Request-ID"]
    assert generated and generated != "req-123"


# =============================================================================
# Login / refresh / logout
# =============================================================================

def test_login(client, seed, login):
    seed(code="ADV001", name="Ana Torres")

    data = login("ADV001")

    assert data["accessToken"].count(".") == 2
    assert data["refreshToken"].count(".") == 2
    assert data["tokenType"] == "Bearer"
    assert data["expiresIn"] == 86400
    assert data["sessionId"]
    assert data["user"]["code"] == "ADV001"
    assert data["user"]["role"] == "agent"
    assert "passwordHash" not in data["user"]


def test_login_with_email(client, seed, login):
    seed(code="ADV001")
    assert login("ADV001@example.com")["user"]["code"] == "ADV001"


@pytest.mark.parametrize("code,password,error", [
    ("NOBODY", DEFAULT_PASSWORD, "USER_NOT_FOUND"),
    ("ADV001", "Wrong-Passw0rd", "INVALID_PASSWORD"),
])
def test_login_failures(client, seed, code, password, error):
    seed(code="ADV001")

    response = client.post(f"{API}/auth/login", json={"code": code, "password": password})

    assert response.status_code == 401
    assert_envelope(response.json(), False, error, 401)


def test_login_inactive_user(client, seed):
    seed(code="ADV001", status=UserStatus.INACTIVE)
    response = client.post(f"{API}/auth/login", json={"code": "ADV001", "password": DEFAULT_PASSWORD})
    assert response.status_code == 401
    assert response.json()["code"] == "USER_INACTIVE"


def test_login_validation_error(client):
    response = client.post(f"{API}/auth/login", json={"code": "ADV001"})

    assert response.status_code == 400
    body = response.json()
    assert_envelope(body, False, "VALIDATION_ERROR", 400)
    assert body["details"][0]["field"] == "password"


def test_login_rate_limit(client, seed, login):
    seed(code="ADV001")
    wrong = {"code": "ADV001", "password": "Wrong-Passw0rd"}

    for _ in range(5):
        assert client.post(f"{API}/auth/login", json=wrong).status_code == 401

    response = client.post(f"{API}/auth/login", json=wrong)
    assert response.status_code == 429
    body = response.json()
    assert body["code"] == "LOGIN_RATE_LIMIT_EXCEEDED"
    assert body["details"] == {"retryAfter": 900, "limit": 5}
    assert response.headers["Retry-After"] == "900"

    # A correct password is throttled too until the window passes
    response = client.post(f"{API}/auth/login", json={"code": "ADV001", "password": DEFAULT_PASSWORD})
    assert response.status_code == 429


def test_login_rate_limit_window_slides(client, seed, clock, login):
    seed(code="ADV001")
    wrong = {"code": "ADV001", "password": "Wrong-Passw0rd"}
    for _ in range(5):
        client.post(f"{API}/auth/login", json=wrong)

    clock.advance(minutes=15)
    assert login("ADV001")["user"]["code"] == "ADV001"


def test_successful_login_clears_failed_attempts(client, seed, login):
    seed(code="ADV001")
    wrong = {"code": "ADV001", "password": "Wrong-Passw0rd"}
    for _ in range(4):
        client.post(f"{API}/auth/login", json=wrong)

    login("ADV001")

    for _ in range(5):
        assert client.post(f"{API}/auth/login", json=wrong).status_code == 401


def test_refresh(client, seed, login):
    seed(code="ADV001")
    tokens = login("ADV001")

    response = client.post(f"{API}/auth/refresh", json={"refreshToken": tokens["refreshToken"]})

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["sessionId"] == tokens["sessionId"]
    assert data["refreshToken"] != tokens["refreshToken"]

    # New access token works
    assert client.get(f"{API}/auth/me", headers=bearer(data["accessToken"])).status_code == 200

    # The rotated-out refresh token does not
    response = client.post(f"{API}/auth/refresh-token", json={"refresh_token": tokens["refreshToken"]})
    assert response.status_code == 401
    assert response.json()["code"] == "INVALID_REFRESH_TOKEN"


def test_refresh_errors(client, seed, login):
    seed(code="ADV001")
    tokens = login("ADV001")

    response = client.post(f"{API}/auth/refresh", json={})
    assert response.status_code == 400
    assert response.json()["code"] == "MISSING_REFRESH_TOKEN"

    response = client.post(f"{API}/auth/refresh", json={"refreshToken": "garbage"})
    assert response.status_code == 401
    assert response.json()["code"] == "INVALID_REFRESH_TOKEN"

    response = client.post(f"{API}/auth/refresh", json={"refreshToken": tokens["accessToken"]})
    assert response.status_code == 400
    assert response.json()["code"] == "WRONG_TOKEN_TYPE"


def test_logout(client, seed, login):
    seed(code="ADV001")
    tokens = login("ADV001")
    headers = bearer(tokens["accessToken"])

    response = client.post(f"{API}/auth/logout", headers=headers)
    assert response.status_code == 200
    assert "data" not in response.json()

    response = client.get(f"{API}/auth/me", headers=headers)
    assert response.status_code == 401
    assert response.json()["code"] == "INVALID_SESSION"

    response = client.post(f"{API}/auth/refresh", json={"refreshToken": tokens["refreshToken"]})
    assert response.json()["code"] == "INVALID_REFRESH_TOKEN"


def test_logout_all(client, seed, login):
    seed(code="ADV001")
    sessions = [login("ADV001") for _ in range(3)]

    response = client.post(f"{API}/auth/logout-all", headers=bearer(sessions[0]["accessToken"]))

    assert response.status_code == 200
    assert response.json()["data"] == {"closedSessions": 3}
    for tokens in sessions:
        response = client.get(f"{API}/auth/me", headers=bearer(tokens["accessToken"]))
        assert response.json()["code"] == "INVALID_SESSION"


# =============================================================================
# Access gate
# =============================================================================

def test_missing_token(client):
    response = client.get(f"{API}/auth/me")
    assert response.status_code == 401
    assert response.json()["code"] == "MISSING_TOKEN"
    assert response.headers["WWW-Authenticate"] == "Bearer"


def test_malformed_token(client):
    response = client.get(f"{API}/auth/me", headers=bearer("abc"))
    assert response.status_code == 401
    assert response.json()["code"] == "INVALID_TOKEN_FORMAT"


def test_refresh_token_rejected_at_access_gate(client, seed, login):
    seed(code="ADV001")
    tokens = login("ADV001")

    response = client.get(f"{API}/auth/me", headers=bearer(tokens["refreshToken"]))
    assert response.status_code == 401
    assert response.json()["code"] == "WRONG_TOKEN_TYPE"


def test_expired_access_token(client, seed, clock, login):
    seed(code="ADV001")
    tokens = login("ADV001")

    clock.advance(hours=25)
    response = client.get(f"{API}/auth/me", headers=bearer(tokens["accessToken"]))

    assert response.status_code == 401
    assert response.json()["code"] == "TOKEN_EXPIRED"


def test_session_ttl_shorter_than_token(tmp_path, clock):
    app = create_app(make_settings(tmp_path, session_ttl_hours=1), clock)
    with TestClient(app) as client:
        client.portal.call(functools.partial(create_user, app.state.context, code="ADV001"))
        tokens = client.post(
            f"{API}/auth/login", json={"code": "ADV001", "password": DEFAULT_PASSWORD}
        ).json()["data"]

        clock.advance(hours=2)
        response = client.get(f"{API}/auth/me", headers=bearer(tokens["accessToken"]))

        assert response.status_code == 401
        assert response.json()["code"] == "INVALID_SESSION"


# =============================================================================
# Current user
# =============================================================================

def test_me(client, seed, login):
    seed(code="ADV001", name="Ana Torres")
    tokens = login("ADV001")

    response = client.get(f"{API}/auth/me", headers=bearer(tokens["accessToken"]))

    data = response.json()["data"]
    assert data["code"] == "ADV001"
    assert data["name"] == "Ana Torres"
    assert data["status"] == "active"
    assert data["lastLogin"].startswith("2026-01-15T12:00:00")


def test_sessions_marks_current(client, seed, login):
    seed(code="ADV001")
    first = login("ADV001", user_agent="Mozilla/5.0 (Macintosh; Intel Mac OS X 14_0) Safari/605.1.15")
    login("ADV001")

    response = client.get(f"{API}/auth/sessions", headers=bearer(first["accessToken"]))

    sessions = response.json()["data"]
    assert len(sessions) == 2
    current = [s for s in sessions if s["current"]]
    assert len(current) == 1
    assert current[0]["browser"] == "Safari"
    assert current[0]["os"] == "macOS"
    assert current[0]["ipAddress"] == "testclient"


def test_validate(client, seed, login):
    seed(code="ADV001")
    tokens = login("ADV001")

    response = client.get(f"{API}/auth/validate", headers=bearer(tokens["accessToken"]))

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["user"]["code"] == "ADV001"
    assert data["session"]["expiresAt"].startswith("2026-01-16T12:00:00")


def test_change_password(client, seed, login):
    seed(code="ADV001")
    tokens = login("ADV001")
    login("ADV001")

    response = client.post(
        f"{API}/auth/change-password",
        json={"currentPassword": DEFAULT_PASSWORD, "newPassword": NEW_PASSWORD},
        headers=bearer(tokens["accessToken"]),
    )

    assert response.status_code == 200
    assert response.json()["data"] == {"revokedSessions": 2}
    assert client.get(f"{API}/auth/me", headers=bearer(tokens["accessToken"])).status_code == 401
    assert login("ADV001", password=NEW_PASSWORD)["user"]["code"] == "ADV001"


def test_change_password_weak(client, seed, login):
    seed(code="ADV001")
    tokens = login("ADV001")

    response = client.post(
        f"{API}/auth/change-password",
        json={"currentPassword": DEFAULT_PASSWORD, "newPassword": "qwerty"},
        headers=bearer(tokens["accessToken"]),
    )

    assert response.status_code == 400
    body = response.json()
    assert body["code"] == "WEAK_PASSWORD"
    assert body["details"]["errors"]


def test_register_is_disabled(client):
    response = client.post(f"{API}/auth/register", json={"code": "X"})
    assert response.status_code == 403
    assert response.json()["code"] == "REGISTRATION_DISABLED"


# =============================================================================
# Roles
# =============================================================================

def test_cleanup_requires_admin(client, seed, login):
    seed(code="ADV001")
    tokens = login("ADV001")

    response = client.post(f"{API}/auth/cleanup", headers=bearer(tokens["accessToken"]))

    assert response.status_code == 403
    body = response.json()
    assert body["code"] == "INSUFFICIENT_PERMISSIONS"
    assert body["details"] == {"requiredRoles": ["admin"], "userRole": "agent"}


def test_cleanup(client, seed, clock, login):
    seed(code="ADM001", role=UserRole.ADMIN)
    seed(code="ADV001")
    login("ADV001")
    clock.advance(hours=23)
    admin = login("ADM001")
    clock.advance(hours=2)

    response = client.post(f"{API}/auth/cleanup", headers=bearer(admin["accessToken"]))

    assert response.status_code == 200
    assert response.json()["data"] == {"cleanedSessions": 1}


# =============================================================================
# Users
# =============================================================================

@pytest.fixture
def admin_headers(seed, login):
    seed(code="ADM001", role=UserRole.ADMIN)
    return bearer(login("ADM001")["accessToken"])


def test_create_user(client, admin_headers):
    response = client.post(
        f"{API}/users",
        json={"code": "adv020", "name": "Luis Gomez", "email": "luis@example.com"},
        headers=admin_headers,
    )

    assert response.status_code == 201
    body = response.json()
    assert_envelope(body, True, "SUCCESS", 201)
    assert body["data"]["code"] == "ADV020"
    assert body["data"]["role"] == "agent"
    temporary = body["data"]["temporaryPassword"]

    response = client.post(f"{API}/auth/login", json={"code": "ADV020", "password": temporary})
    assert response.status_code == 200


def test_create_user_duplicate(client, admin_headers):
    payload = {"code": "ADV020", "name": "Luis Gomez", "email": "luis@example.com", "password": NEW_PASSWORD}
    assert client.post(f"{API}/users", json=payload, headers=admin_headers).status_code == 201

    response = client.post(f"{API}/users", json=payload, headers=admin_headers)
    assert response.status_code == 409
    assert response.json()["code"] == "DUPLICATE_ENTRY"


def test_create_user_rejects_weak_password(client, admin_headers):
    response = client.post(
        f"{API}/users",
        json={"code": "ADV020", "name": "Luis", "email": "luis@example.com", "password": "admin123"},
        headers=admin_headers,
    )
    assert response.status_code == 400
    assert response.json()["code"] == "WEAK_PASSWORD"


def test_list_users_by_supervisor(client, seed, login):
    seed(code="SUP001", role=UserRole.SUPERVISOR)
    seed(code="ADV001")
    seed(code="ADV002")
    headers = bearer(login("SUP001")["accessToken"])

    response = client.get(f"{API}/users", params={"role": "agent", "per_page": 1}, headers=headers)

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["total"] == 2
    assert data["pages"] == 2
    assert data["perPage"] == 1
    assert [u["code"] for u in data["items"]] == ["ADV001"]


def test_list_users_denied_to_agent(client, seed, login):
    seed(code="ADV001")
    response = client.get(f"{API}/users", headers=bearer(login("ADV001")["accessToken"]))
    assert response.status_code == 403
    assert response.json()["details"]["requiredRoles"] == ["supervisor", "admin"]


def test_get_user_self_or_admin(client, seed, login, admin_headers):
    own = seed(code="ADV001")
    other = seed(code="ADV002")
    headers = bearer(login("ADV001")["accessToken"])

    assert client.get(f"{API}/users/{own.id}", headers=headers).status_code == 200

    response = client.get(f"{API}/users/{other.id}", headers=headers)
    assert response.status_code == 403
    assert response.json()["code"] == "ACCESS_DENIED"

    assert client.get(f"{API}/users/{other.id}", headers=admin_headers).status_code == 200

    response = client.get(f"{API}/users/9999", headers=admin_headers)
    assert response.status_code == 404
    assert response.json()["code"] == "NOT_FOUND"


def test_suspend_user_revokes_sessions(client, seed, login, admin_headers):
    user = seed(code="ADV001")
    tokens = login("ADV001")

    response = client.patch(
        f"{API}/users/{user.id}/status",
        json={"status": "suspended", "reason": "Left the company"},
        headers=admin_headers,
    )

    assert response.status_code == 200
    assert response.json()["data"]["status"] == "suspended"

    response = client.get(f"{API}/auth/me", headers=bearer(tokens["accessToken"]))
    assert response.status_code == 401
    assert response.json()["code"] == "USER_INACTIVE"


def test_admin_cannot_deactivate_self(client, seed, login):
    admin = seed(code="ADM001", role=UserRole.ADMIN)
    headers = bearer(login("ADM001")["accessToken"])

    response = client.patch(
        f"{API}/users/{admin.id}/status",
        json={"status": "inactive"},
        headers=headers,
    )

    assert response.status_code == 400
    assert_envelope(response.json(), False, "CANNOT_DEACTIVATE_SELF", 400)
    assert client.get(f"{API}/auth/me", headers=headers).status_code == 200


def test_admin_updates_user(client, seed, admin_headers):
    user = seed(code="ADV001")

    response = client.put(
        f"{API}/users/{user.id}",
        json={"name": "Ana Torres", "role": "supervisor", "phone": "555-0101"},
        headers=admin_headers,
    )

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["name"] == "Ana Torres"
    assert data["role"] == "supervisor"
    assert data["phone"] == "555-0101"
    assert data["code"] == "ADV001"


def test_admin_update_conflicts(client, seed, admin_headers):
    seed(code="ADV001")
    other = seed(code="ADV002")

    response = client.put(f"{API}/users/{other.id}", json={"code": "adv001"}, headers=admin_headers)
    assert response.status_code == 409
    assert response.json()["code"] == "DUPLICATE_ENTRY"

    response = client.put(f"{API}/users/9999", json={"name": "Nobody"}, headers=admin_headers)
    assert response.status_code == 404


def test_update_user_requires_admin(client, seed, login):
    user = seed(code="ADV001")
    headers = bearer(login("ADV001")["accessToken"])

    response = client.put(f"{API}/users/{user.id}", json={"role": "admin"}, headers=headers)
    assert response.status_code == 403


def test_profile_update_ignores_role_and_code(client, seed, login):
    seed(code="ADV001")
    headers = bearer(login("ADV001")["accessToken"])

    response = client.put(
        f"{API}/users/profile",
        json={"name": "Ana Torres", "email": "Ana.Torres@Example.com", "role": "admin", "code": "ROOT"},
        headers=headers,
    )

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["name"] == "Ana Torres"
    assert data["email"] == "ana.torres@example.com"
    assert data["role"] == "agent"
    assert data["code"] == "ADV001"


def test_profile_update_requires_token(client):
    response = client.put(f"{API}/users/profile", json={"name": "Ana Torres"})
    assert response.status_code == 401


# =============================================================================
# Generic errors
# =============================================================================

def test_unknown_route(client):
    response = client.get(f"{API}/nowhere")
    assert response.status_code == 404
    assert_envelope(response.json(), False, "ROUTE_NOT_FOUND", 404)


def test_method_not_allowed(client):
    response = client.get(f"{API}/auth/login")
    assert response.status_code == 405
    assert response.json()["code"] == "METHOD_NOT_ALLOWED"


def test_unexpected_error_is_enveloped(app):
    with TestClient(app, raise_server_exceptions=False) as client:
        client.portal.call(functools.partial(create_user, app.state.context, code="ADV001"))
        tokens = client.post(
            f"{API}/auth/login", json={"code": "ADV001", "password": DEFAULT_PASSWORD}
        ).json()["data"]
        app.state.context.auth.check_user_status = AsyncMock(side_effect=RuntimeError("boom"))

        response = client.get(f"{API}/auth/me", headers=bearer(tokens["accessToken"]))

    assert response.status_code == 500
    body = response.json()
    assert_envelope(body, False, "INTERNAL_SERVER_ERROR", 500)
    assert "details" not in body
