from __future__ import annotations

import pytest

from rentcircle import auth
from rentcircle.auth import ANONYMOUS, Role
from rentcircle.errors import InvalidArgument, Unauthorized
from rentcircle.security import create_access_token


def test_register_and_login(db):
    profile = auth.register(db, email="  New.Owner@Example.com ", password="s3cret!", full_name="New Owner")
    assert profile.email == "new.owner@example.com"
    assert profile.role == "owner"
    assert profile.password_hash != "s3cret!"

    token, logged_in = auth.login(db, email="NEW.OWNER@example.com", password="s3cret!")
    assert logged_in.id == profile.id

    actor = auth.resolve_actor(db, token)
    assert actor.role is Role.OWNER
    assert actor.user_id == profile.id
    assert actor.email == "new.owner@example.com"


@pytest.mark.parametrize(
    "email,password",
    [("not-an-email", "s3cret!"), ("a@example.com", "123")],
)
def test_register_validation(db, email, password):
    with pytest.raises(InvalidArgument):
        auth.register(db, email=email, password=password)


def test_register_duplicate_email(db, owner):
    with pytest.raises(InvalidArgument):
        auth.register(db, email="OWNER@example.com", password="s3cret!")


def test_login_wrong_password(db):
    auth.register(db, email="a@example.com", password="s3cret!")
    with pytest.raises(Unauthorized):
        auth.login(db, email="a@example.com", password="nope-nope")
    with pytest.raises(Unauthorized):
        auth.login(db, email="missing@example.com", password="s3cret!")


def test_resolve_actor_anonymous_and_bad_tokens(db, owner):
    assert auth.resolve_actor(db, None) is ANONYMOUS
    assert auth.resolve_actor(db, "") is ANONYMOUS
    with pytest.raises(Unauthorized):
        auth.resolve_actor(db, "garbage.token.value")
    with pytest.raises(Unauthorized):
        auth.resolve_actor(db, create_access_token(user_id=31337, role="owner"))


def test_admin_by_role_or_allow_list(db, make_profile, monkeypatch):
    admin = make_profile("boss@example.com", role="admin")
    ops = make_profile("ops@example.com")

    assert auth.actor_for(admin).is_admin
    assert not auth.actor_for(ops).is_admin

    monkeypatch.setenv("ADMIN_EMAILS", "Ops@Example.com, someone@else.com")
    assert auth.actor_for(ops).is_admin


def test_anonymous_actor():
    assert not ANONYMOUS.is_authenticated
    assert not ANONYMOUS.is_admin
    with pytest.raises(Unauthorized):
        auth.require_authenticated(ANONYMOUS)


def test_seed_admin(db, monkeypatch):
    monkeypatch.delenv("ADMIN_EMAIL", raising=False)
    monkeypatch.delenv("ADMIN_PASSWORD", raising=False)
    assert auth.ensure_seed_admin(db) is None

    monkeypatch.setenv("ADMIN_EMAIL", "Root@Example.com")
    monkeypatch.setenv("ADMIN_PASSWORD", "change-me-now")
    admin = auth.ensure_seed_admin(db)
    db.commit()
    assert admin.email == "root@example.com"
    assert admin.role == "admin"

    # Second run finds the same account.
    assert auth.ensure_seed_admin(db).id == admin.id
    token, _ = auth.login(db, email="root@example.com", password="change-me-now")
    assert auth.resolve_actor(db, token).is_admin


def test_expired_token_rejected(db, owner):
    token = create_access_token(user_id=owner.id, role="owner", ttl_minutes=-5)
    with pytest.raises(Unauthorized):
        auth.resolve_actor(db, token)
