"""
Contact blocklist.

Identities are banned by raw email/phone rather than by profile, so the check
works against submission-time contact fields whether or not the person ever
registered.
"""
from __future__ import annotations

import logging

from sqlalchemy import delete, or_, select
from sqlalchemy.orm import Session

from rentcircle.auth import Actor, require_admin
from rentcircle.db import commit
from rentcircle.errors import InvalidArgument, NotFound
from rentcircle.models import BlockedContact, Profile, utcnow
from rentcircle.repository import get_profile, log_moderation


logger = logging.getLogger(__name__)


def norm_email(email: str | None) -> str:
    return (email or "").strip().lower()


def norm_phone(phone: str | None) -> str:
    return (phone or "").strip()


def is_blocked(db: Session, *, email: str | None = None, phone: str | None = None) -> bool:
    email_n = norm_email(email)
    phone_n = norm_phone(phone)
    conds = []
    if email_n:
        conds.append(BlockedContact.email == email_n)
    if phone_n:
        conds.append(BlockedContact.phone == phone_n)
    if not conds:
        return False
    return db.execute(select(BlockedContact.id).where(or_(*conds)).limit(1)).first() is not None


def block(
    db: Session,
    actor: Actor,
    *,
    email: str | None = None,
    phone: str | None = None,
    reason: str | None = None,
) -> BlockedContact:
    require_admin(actor)
    email_n = norm_email(email) or None
    phone_n = norm_phone(phone) or None
    if not email_n and not phone_n:
        raise InvalidArgument("Provide an email or a phone number to block")
    row = BlockedContact(
        email=email_n,
        phone=phone_n,
        reason=(reason or "").strip() or None,
        blocked_by=actor.user_id,
    )
    db.add(row)
    db.flush()
    log_moderation(db, actor_user_id=actor.user_id, entity_type="blocked_contact", entity_id=row.id, action="block", reason=row.reason or "")
    commit(db)
    logger.info("Blocked contact id=%s by admin=%s", row.id, actor.user_id)
    return row


def unblock(db: Session, actor: Actor, blocked_id: int) -> None:
    require_admin(actor)
    row = db.get(BlockedContact, int(blocked_id))
    if not row:
        raise NotFound("Blocked contact not found")
    db.execute(delete(BlockedContact).where(BlockedContact.id == int(blocked_id)))
    log_moderation(db, actor_user_id=actor.user_id, entity_type="blocked_contact", entity_id=int(blocked_id), action="unblock")
    commit(db)
    logger.info("Unblocked contact id=%s by admin=%s", blocked_id, actor.user_id)


def list_blocked(db: Session, actor: Actor) -> list[BlockedContact]:
    require_admin(actor)
    stmt = select(BlockedContact).order_by(BlockedContact.created_at.desc(), BlockedContact.id.desc())
    return list(db.execute(stmt).scalars().all())


def set_profile_blocked(db: Session, actor: Actor, user_id: int, blocked: bool) -> Profile:
    require_admin(actor)
    profile = get_profile(db, user_id)
    if bool(profile.is_blocked) != bool(blocked):
        profile.is_blocked = bool(blocked)
        profile.updated_at = utcnow()
        log_moderation(
            db,
            actor_user_id=actor.user_id,
            entity_type="profile",
            entity_id=profile.id,
            action="block" if blocked else "unblock",
        )
        commit(db)
    return profile
