"""
Authorization gate.

The caller's identity is resolved once per request into an `Actor` and then
passed explicitly to every core operation. Mutating operations call one of the
`require_*` / `ensure_*` guards before touching the database; the guards have
no side effects.
"""
from __future__ import annotations

import enum
import logging
from dataclasses import dataclass

import jwt
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from rentcircle import config
from rentcircle.db import commit
from rentcircle.errors import Forbidden, InvalidArgument, Unauthorized
from rentcircle.models import Profile, Property, utcnow
from rentcircle.security import create_access_token, hash_password, read_access_token, verify_password


logger = logging.getLogger(__name__)


class Role(str, enum.Enum):
    ANONYMOUS = "anonymous"
    OWNER = "owner"
    ADMIN = "admin"


@dataclass(frozen=True)
class Actor:
    role: Role = Role.ANONYMOUS
    user_id: int | None = None
    email: str | None = None

    @property
    def is_authenticated(self) -> bool:
        return self.role is not Role.ANONYMOUS and self.user_id is not None

    @property
    def is_admin(self) -> bool:
        return self.role is Role.ADMIN


ANONYMOUS = Actor()


def is_admin_profile(profile: Profile) -> bool:
    if (profile.role or "").lower() == "admin":
        return True
    return (profile.email or "").lower() in config.admin_emails()


def actor_for(profile: Profile) -> Actor:
    role = Role.ADMIN if is_admin_profile(profile) else Role.OWNER
    return Actor(role=role, user_id=int(profile.id), email=profile.email)


def resolve_actor(db: Session, token: str | None) -> Actor:
    """
    Map a bearer token to an Actor.

    A missing token is anonymous. A present but invalid/expired token, or one
    naming a profile that no longer exists, is rejected rather than silently
    downgraded, so clients notice a stale session.
    """
    if not token:
        return ANONYMOUS
    try:
        claims = read_access_token(token)
    except (jwt.PyJWTError, ValueError):
        raise Unauthorized("Invalid token")
    profile = db.get(Profile, claims.user_id)
    if not profile:
        raise Unauthorized("User not found")
    return actor_for(profile)


def require_authenticated(actor: Actor) -> None:
    if not actor.is_authenticated:
        raise Unauthorized("Login required")


def require_admin(actor: Actor) -> None:
    require_authenticated(actor)
    if not actor.is_admin:
        raise Forbidden("Admin only")


def ensure_owner_or_admin(actor: Actor, prop: Property) -> None:
    require_authenticated(actor)
    if actor.is_admin:
        return
    if int(prop.user_id) != int(actor.user_id or 0):
        raise Forbidden("Only the owner who created the listing can change it")


# -----------------------
# Email/password identity provider
# -----------------------
def _norm_email(email: str | None) -> str:
    return (email or "").strip().lower()


def register(db: Session, *, email: str, password: str, full_name: str | None = None) -> Profile:
    email_n = _norm_email(email)
    if "@" not in email_n:
        raise InvalidArgument("A valid email is required")
    if len(password or "") < 6:
        raise InvalidArgument("Password must be at least 6 characters")
    exists = db.execute(select(Profile.id).where(Profile.email == email_n)).first()
    if exists:
        raise InvalidArgument("Email already registered")
    profile = Profile(
        email=email_n,
        full_name=(full_name or "").strip() or None,
        password_hash=hash_password(password),
        role="owner",
    )
    db.add(profile)
    try:
        db.flush()
    except IntegrityError:
        # Concurrent registration with the same email.
        db.rollback()
        raise InvalidArgument("Email already registered")
    commit(db)
    logger.info("Registered profile id=%s", profile.id)
    return profile


def login(db: Session, *, email: str, password: str) -> tuple[str, Profile]:
    profile = db.execute(select(Profile).where(Profile.email == _norm_email(email))).scalar_one_or_none()
    if not profile or not verify_password(password or "", profile.password_hash):
        raise Unauthorized("Invalid email or password")
    actor = actor_for(profile)
    return create_access_token(user_id=profile.id, role=actor.role.value), profile


def ensure_seed_admin(db: Session) -> Profile | None:
    """Create the ADMIN_EMAIL/ADMIN_PASSWORD account if configured and missing."""
    email = config.seed_admin_email()
    password = config.seed_admin_password()
    if not email or not password:
        return None
    admin = db.execute(select(Profile).where(Profile.email == email)).scalar_one_or_none()
    if admin:
        if admin.role != "admin":
            admin.role = "admin"
            admin.updated_at = utcnow()
        return admin
    admin = Profile(email=email, full_name="Administrator", role="admin", password_hash=hash_password(password))
    db.add(admin)
    db.flush()
    return admin
