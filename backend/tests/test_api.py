import pytest
from fastapi.testclient import TestClient

from nomod_admin.core.config import DEFAULT_ADMIN_EMAIL, DEFAULT_ADMIN_PASSWORD, get_settings
from nomod_admin.core.dependencies import get_store
from nomod_admin.main import app
from nomod_admin.services.sessions import SESSION_COOKIE_NAME
from nomod_admin.store import StoreError

ORIGIN = {"origin": "http://testserver"}


@pytest.fixture()
def client(store, settings):
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_settings] = lambda: settings
    yield TestClient(app)
    app.dependency_overrides.clear()


def _login(client: TestClient, email: str = DEFAULT_ADMIN_EMAIL, password: str = DEFAULT_ADMIN_PASSWORD):
    return client.post("/api/auth/login", json={"email": email, "password": password}, headers=ORIGIN)


def test_auth_status_shows_default_credentials_in_development(client):
    response = client.get("/api/auth/status")

    assert response.status_code == 200
    body = response.json()
    assert body["show_default_credentials_hint"] is True
    assert body["default_credentials"]["email"] == DEFAULT_ADMIN_EMAIL


def test_login_sets_session_cookie_for_seeded_admin(client, store):
    response = _login(client)

    assert response.status_code == 200
    assert response.json()["role"] == "admin"
    assert "password_hash" not in response.json()
    cookie = response.headers["set-cookie"]
    assert f"{SESSION_COOKIE_NAME}=" in cookie
    assert "HttpOnly" in cookie
    assert "Max-Age=28800" in cookie
    assert "samesite=lax" in cookie.lower()
    assert len(store.sessions) == 1

    me = client.get("/api/auth/me")
    assert me.status_code == 200
    assert me.json()["email"] == DEFAULT_ADMIN_EMAIL


def test_session_endpoint_reports_state_without_caching(client):
    anonymous = client.get("/api/admin/session")
    assert anonymous.json() == {"authenticated": False, "role": None, "name": None}
    assert anonymous.headers["cache-control"] == "no-store"

    _login(client)
    signed_in = client.get("/api/admin/session")
    assert signed_in.json() == {"authenticated": True, "role": "admin", "name": "Site Admin"}


def test_login_requires_email_and_password(client):
    response = client.post("/api/auth/login", json={"email": " ", "password": ""}, headers=ORIGIN)

    assert response.status_code == 400
    assert response.json()["detail"] == "Email and password are required."


def test_wrong_password_is_unauthorized(client, store):
    response = _login(client, password="not-the-password")

    assert response.status_code == 401
    assert response.json()["detail"] == "Invalid credentials."
    (record,) = store.rate_limits.values()
    assert record.count == 1


def test_repeated_failures_lock_out_even_valid_credentials(client):
    for _ in range(4):
        assert _login(client, password="not-the-password").status_code == 401

    locked = _login(client, password="not-the-password")
    assert locked.status_code == 429
    assert locked.headers["retry-after"] == "900"
    assert locked.json()["detail"] == "Too many login attempts. Try again in 15 minutes."

    assert _login(client).status_code == 429


def test_successful_login_clears_failure_counter(client, store):
    _login(client, password="not-the-password")
    assert store.rate_limits

    assert _login(client).status_code == 200
    assert store.rate_limits == {}


def test_cross_origin_login_is_blocked(client, store):
    response = client.post(
        "/api/auth/login",
        json={"email": DEFAULT_ADMIN_EMAIL, "password": DEFAULT_ADMIN_PASSWORD},
        headers={"origin": "https://evil.example.net"},
    )

    assert response.status_code == 403
    assert response.json()["detail"] == "Request was blocked for security reasons."
    assert store.sessions == {}


def test_logout_revokes_session(client, store):
    _login(client)

    response = client.post("/api/auth/logout", headers=ORIGIN)

    assert response.status_code == 200
    assert store.sessions == {}
    assert client.get("/api/auth/me").status_code == 401


def test_admin_manages_users(client, store):
    _login(client)

    created = client.post(
        "/api/admin/users/",
        json={"email": "Writer@Example.com", "name": "Writer", "password": "writer-pass"},
        headers=ORIGIN,
    )
    assert created.status_code == 201
    writer_id = created.json()["id"]
    assert created.json()["role"] == "editor"

    listing = client.get("/api/admin/users/")
    assert [user["name"] for user in listing.json()] == ["Site Admin", "Writer"]

    promoted = client.put(f"/api/admin/users/{writer_id}/role", json={"role": "admin"}, headers=ORIGIN)
    assert promoted.status_code == 200
    assert store.users[writer_id].role == "admin"

    reset = client.put(f"/api/admin/users/{writer_id}/password", json={"password": "short"}, headers=ORIGIN)
    assert reset.status_code == 400
    assert reset.json()["detail"] == "Password must be at least 8 characters."

    deleted = client.delete(f"/api/admin/users/{writer_id}", headers=ORIGIN)
    assert deleted.status_code == 204
    assert writer_id not in store.users


def test_admin_cannot_delete_self_or_unknown_user(client):
    me = _login(client).json()

    own = client.delete(f"/api/admin/users/{me['id']}", headers=ORIGIN)
    assert own.status_code == 400
    assert own.json()["detail"] == "You cannot delete your own account."

    missing = client.delete("/api/admin/users/does-not-exist", headers=ORIGIN)
    assert missing.status_code == 404


def test_editor_cannot_manage_users(client):
    _login(client)
    client.post(
        "/api/admin/users/",
        json={"email": "writer@example.com", "name": "Writer", "password": "writer-pass"},
        headers=ORIGIN,
    )

    editor = TestClient(app)
    assert _login(editor, "writer@example.com", "writer-pass").status_code == 200

    response = editor.get("/api/admin/users/")
    assert response.status_code == 403
    assert response.json()["detail"] == "You are not allowed to access this page."


def test_unauthenticated_user_routes_are_rejected(client):
    assert client.get("/api/admin/users/").status_code == 401


def test_storage_outage_maps_to_service_unavailable(client, store, monkeypatch):
    async def broken():
        raise StoreError("backend down")

    monkeypatch.setattr(store, "list_users", broken)

    response = _login(client)

    assert response.status_code == 503
    assert response.json()["detail"] == "Storage backend unavailable."


def test_session_lookup_outage_is_treated_as_signed_out(client, store, monkeypatch):
    _login(client)

    async def broken():
        raise StoreError("backend down")

    monkeypatch.setattr(store, "list_users", broken)

    assert client.get("/api/admin/session").json()["authenticated"] is False
