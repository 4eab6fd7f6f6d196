import asyncio
from datetime import timedelta

import pytest
from conftest import T0, add_user

from nomod_admin.core.config import DEFAULT_ADMIN_EMAIL, DEFAULT_ADMIN_PASSWORD, Settings
from nomod_admin.core.security import PasswordHasher
from nomod_admin.schemas.user import AdminUserCreate
from nomod_admin.services.sessions import SessionManager
from nomod_admin.services.users import UserManagementError, UserNotFoundError, UserService, to_public


def _service(store, settings, clock) -> UserService:
    return UserService(store, settings, clock=clock)


def test_default_admin_is_seeded_into_empty_store(store, settings, clock):
    service = _service(store, settings, clock)

    assert asyncio.run(service.ensure_default_admin())
    assert not asyncio.run(service.ensure_default_admin())

    (admin,) = store.users.values()
    assert admin.email == DEFAULT_ADMIN_EMAIL
    assert admin.role == "admin"
    assert PasswordHasher.verify(DEFAULT_ADMIN_PASSWORD, admin.password_hash, admin.password_salt)


def test_configured_admin_credentials_are_used_for_seeding(store, clock):
    settings = Settings(_env_file=None, admin_email=" Owner@Example.com ", admin_password="owner-pass-1")
    asyncio.run(_service(store, settings, clock).ensure_default_admin())

    (admin,) = store.users.values()
    assert admin.email == "owner@example.com"
    assert PasswordHasher.verify("owner-pass-1", admin.password_hash, admin.password_salt)


def test_authenticate_normalizes_email_and_stamps_login(store, settings, clock):
    user = add_user(store, "editor@example.com", "correct-horse")
    clock.advance(60)

    result = asyncio.run(_service(store, settings, clock).authenticate_user("  EDITOR@example.com", "correct-horse"))

    assert result is not None
    assert result.id == user.id
    assert result.last_login_at == T0 + timedelta(seconds=60)
    assert store.users[user.id].last_login_at == clock.now
    assert store.users[user.id].updated_at == clock.now


def test_authenticate_rejects_wrong_password_and_inactive_users(store, settings, clock):
    add_user(store, "editor@example.com", "correct-horse")
    add_user(store, "former@example.com", "correct-horse", is_active=False)
    service = _service(store, settings, clock)

    assert asyncio.run(service.authenticate_user("editor@example.com", "wrong-horse")) is None
    assert asyncio.run(service.authenticate_user("former@example.com", "correct-horse")) is None
    assert asyncio.run(service.authenticate_user("nobody@example.com", "correct-horse")) is None


def test_list_users_sorted_by_name(store, settings, clock):
    add_user(store, "z@example.com", name="zoe", role="admin")
    add_user(store, "a@example.com", name="Adam")
    add_user(store, "m@example.com", name="mia")

    names = [user.name for user in asyncio.run(_service(store, settings, clock).list_users())]

    assert names == ["Adam", "mia", "zoe"]


def test_create_user_validates_input(store, settings, clock):
    add_user(store, "admin@example.com", role="admin")
    service = _service(store, settings, clock)

    with pytest.raises(UserManagementError, match="required"):
        asyncio.run(service.create_user(AdminUserCreate(email=" ", name="Writer", password="long-enough")))
    with pytest.raises(UserManagementError, match="at least 8"):
        asyncio.run(service.create_user(AdminUserCreate(email="w@example.com", name="Writer", password="short")))
    with pytest.raises(UserManagementError, match="already exists"):
        asyncio.run(
            service.create_user(AdminUserCreate(email="ADMIN@example.com", name="Dup", password="long-enough"))
        )


def test_create_user_stores_hashed_password(store, settings, clock):
    add_user(store, "admin@example.com", role="admin")
    service = _service(store, settings, clock)

    created = asyncio.run(
        service.create_user(AdminUserCreate(email=" Writer@Example.com", name=" Writer ", password="long-enough"))
    )

    stored = store.users[created.id]
    assert created.email == "writer@example.com"
    assert created.name == "Writer"
    assert created.role == "editor"
    assert stored.password_hash != "long-enough"
    assert asyncio.run(service.authenticate_user("writer@example.com", "long-enough")) is not None


def test_last_admin_cannot_be_demoted_or_deleted(store, settings, clock):
    admin = add_user(store, "admin@example.com", role="admin")
    add_user(store, "editor@example.com")
    service = _service(store, settings, clock)

    with pytest.raises(UserManagementError, match="At least one admin"):
        asyncio.run(service.update_user_role(admin.id, "editor"))
    with pytest.raises(UserManagementError, match="At least one admin"):
        asyncio.run(service.delete_user(admin.id))
    assert store.users[admin.id].role == "admin"


def test_inactive_admins_do_not_count_toward_last_admin(store, settings, clock):
    admin = add_user(store, "admin@example.com", role="admin")
    add_user(store, "retired@example.com", role="admin", is_active=False)

    with pytest.raises(UserManagementError):
        asyncio.run(_service(store, settings, clock).delete_user(admin.id))


def test_role_change_updates_user_and_sessions(store, settings, clock):
    add_user(store, "admin@example.com", role="admin")
    second = add_user(store, "second@example.com", role="admin")
    service = _service(store, settings, clock)

    asyncio.run(SessionManager(store, "secret", clock=clock).issue(to_public(second)))
    clock.advance(30)
    asyncio.run(service.update_user_role(second.id, "editor"))

    assert store.users[second.id].role == "editor"
    (session,) = store.sessions.values()
    assert session.role == "editor"
    assert session.last_seen_at == clock.now


def test_unknown_or_inactive_target_is_not_found(store, settings, clock):
    add_user(store, "admin@example.com", role="admin")
    inactive = add_user(store, "gone@example.com", is_active=False)
    service = _service(store, settings, clock)

    with pytest.raises(UserNotFoundError):
        asyncio.run(service.update_user_role("missing", "admin"))
    with pytest.raises(UserNotFoundError):
        asyncio.run(service.update_user_password(inactive.id, "long-enough"))
    with pytest.raises(UserNotFoundError):
        asyncio.run(service.delete_user("missing"))


def test_password_reset_trims_and_rehashes(store, settings, clock):
    editor = add_user(store, "editor@example.com", "old-password")
    service = _service(store, settings, clock)

    with pytest.raises(UserManagementError, match="at least 8"):
        asyncio.run(service.update_user_password(editor.id, "  short  "))

    asyncio.run(service.update_user_password(editor.id, "  new-password  "))

    assert asyncio.run(service.authenticate_user("editor@example.com", "new-password")) is not None
    assert asyncio.run(service.authenticate_user("editor@example.com", "old-password")) is None


def test_delete_user_removes_their_sessions(store, settings, clock):
    add_user(store, "admin@example.com", role="admin")
    editor = add_user(store, "editor@example.com")
    service = _service(store, settings, clock)

    asyncio.run(SessionManager(store, "secret", clock=clock).issue(to_public(editor)))
    asyncio.run(service.delete_user(editor.id))

    assert editor.id not in store.users
    assert store.sessions == {}


def test_default_credentials_hint(store, clock):
    development = Settings(_env_file=None, environment="development")
    production = Settings(_env_file=None, environment="production", auth_secret="x")
    customized = Settings(_env_file=None, admin_password="owner-pass-1")

    hint = _service(store, development, clock).default_credentials_hint()
    assert hint is not None
    assert hint.email == DEFAULT_ADMIN_EMAIL
    assert _service(store, production, clock).default_credentials_hint() is None
    assert _service(store, customized, clock).default_credentials_hint() is None
