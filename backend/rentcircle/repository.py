"""
Typed reads over the store, and the one place listings are stitched together.

A `Listing` is a property row plus its ordered images plus the owner's profile.
Profiles are fetched in a second query and joined in Python; a property whose
profile row is missing gets `owner=None` rather than being dropped.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable

from sqlalchemy import Select, func, select
from sqlalchemy.orm import Session, selectinload

from rentcircle.constants import STATUS_REJECTED
from rentcircle.errors import NotFound
from rentcircle.models import BlockedContact, ModerationLog, Profile, Property, PropertyImage, Report


@dataclass
class Listing:
    property: Property
    images: list[PropertyImage] = field(default_factory=list)
    owner: Profile | None = None

    @property
    def id(self) -> int:
        return int(self.property.id)


def load_listings(db: Session, stmt: Select) -> list[Listing]:
    stmt = stmt.options(selectinload(Property.images)).execution_options(populate_existing=True)
    props = db.execute(stmt).scalars().all()
    user_ids = {int(p.user_id) for p in props}
    profiles: dict[int, Profile] = {}
    if user_ids:
        rows = db.execute(select(Profile).where(Profile.id.in_(user_ids))).scalars().all()
        profiles = {int(r.id): r for r in rows}
    return [
        Listing(
            property=p,
            images=sorted(p.images or [], key=lambda i: (int(i.display_order), int(i.id))),
            owner=profiles.get(int(p.user_id)),
        )
        for p in props
    ]


def newest_first(stmt: Select) -> Select:
    return stmt.order_by(Property.created_at.desc(), Property.id.desc())


def get_property(db: Session, property_id: int) -> Property:
    p = db.get(Property, int(property_id))
    if not p:
        raise NotFound("Property not found")
    return p


def get_listing(db: Session, property_id: int) -> Listing:
    found = load_listings(db, select(Property).where(Property.id == int(property_id)))
    if not found:
        raise NotFound("Property not found")
    return found[0]


def get_profile(db: Session, user_id: int) -> Profile:
    p = db.get(Profile, int(user_id))
    if not p:
        raise NotFound("Profile not found")
    return p


def get_report(db: Session, report_id: int) -> Report:
    r = db.get(Report, int(report_id))
    if not r:
        raise NotFound("Report not found")
    return r


def count_active_listings(db: Session, user_id: int) -> int:
    """Listings that count against the owner's quota (everything not rejected)."""
    return int(
        db.execute(
            select(func.count(Property.id)).where(
                Property.user_id == int(user_id),
                Property.status != STATUS_REJECTED,
            )
        ).scalar()
        or 0
    )


def next_display_order(db: Session, property_id: int) -> int:
    current = db.execute(
        select(func.max(PropertyImage.display_order)).where(PropertyImage.property_id == int(property_id))
    ).scalar()
    return 0 if current is None else int(current) + 1


def image_count(db: Session, property_id: int) -> int:
    return int(
        db.execute(select(func.count(PropertyImage.id)).where(PropertyImage.property_id == int(property_id))).scalar()
        or 0
    )


def log_moderation(
    db: Session,
    *,
    actor_user_id: int | None,
    entity_type: str,
    entity_id: int,
    action: str,
    reason: str = "",
) -> None:
    db.add(
        ModerationLog(
            actor_user_id=int(actor_user_id) if actor_user_id else None,
            entity_type=(entity_type or "").strip(),
            entity_id=int(entity_id),
            action=(action or "").strip(),
            reason=(reason or "").strip(),
        )
    )


# -----------------------
# Serialisation
# -----------------------
def _iso(v: Any) -> str | None:
    return v.isoformat() if v is not None else None


def profile_out(p: Profile | None, *, include_internal: bool = False) -> dict[str, Any] | None:
    if p is None:
        return None
    out: dict[str, Any] = {
        "id": p.id,
        "full_name": p.full_name,
        "phone": p.phone,
    }
    if include_internal:
        out["email"] = p.email
        out["is_blocked"] = bool(p.is_blocked)
        out["role"] = p.role
        out["created_at"] = _iso(p.created_at)
    return out


def listing_out(listing: Listing, *, include_internal: bool = False) -> dict[str, Any]:
    p = listing.property
    out: dict[str, Any] = {
        "id": p.id,
        "user_id": p.user_id,
        "title": p.title,
        "property_type": p.property_type,
        "rent": p.rent,
        "area": p.area,
        "description": p.description,
        "map_link": p.map_link,
        "status": p.status,
        "rejection_reason": p.rejection_reason,
        "created_at": _iso(p.created_at),
        "updated_at": _iso(p.updated_at),
        "images": [
            {"id": i.id, "image_url": i.image_url, "display_order": i.display_order} for i in listing.images
        ],
        "profile": profile_out(listing.owner, include_internal=include_internal),
    }
    return out


def report_out(r: Report) -> dict[str, Any]:
    return {
        "id": r.id,
        "property_id": r.property_id,
        "property_title": r.property_title,
        "property_deleted": r.property_id is None,
        "property_status": r.property.status if r.property is not None else None,
        "reporter_email": r.reporter_email,
        "reason": r.reason,
        "status": r.status,
        "admin_notes": r.admin_notes,
        "created_at": _iso(r.created_at),
        "resolved_at": _iso(r.resolved_at),
    }


def blocked_out(b: BlockedContact) -> dict[str, Any]:
    return {
        "id": b.id,
        "email": b.email,
        "phone": b.phone,
        "reason": b.reason,
        "blocked_by": b.blocked_by,
        "created_at": _iso(b.created_at),
    }


def listings_out(listings: Iterable[Listing], *, include_internal: bool = False) -> list[dict[str, Any]]:
    return [listing_out(x, include_internal=include_internal) for x in listings]
