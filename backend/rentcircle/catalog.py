"""
Catalog filter.

One pure predicate serves the public browse page and the admin listing view.
The public variant is fed approved listings only and ignores `status`; the
admin variant may AND a status filter and also matches the query against the
owner's email.

There is no pagination: the full filtered set is returned, which puts a
ceiling on how many listings the catalog can serve per request.
"""
from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Iterable

from sqlalchemy import select
from sqlalchemy.orm import Session

from rentcircle.auth import Actor, require_admin
from rentcircle.constants import PROPERTY_STATUSES, PROPERTY_TYPES, PUNE_AREAS, STATUS_APPROVED
from rentcircle.errors import InvalidArgument
from rentcircle.models import Property
from rentcircle.repository import Listing, load_listings, newest_first


@dataclass(frozen=True)
class FilterSpec:
    area: str | None = None
    property_type: str | None = None
    rent_min: int | None = None
    rent_max: int | None = None
    query: str | None = None
    status: str | None = None

    def validated(self) -> "FilterSpec":
        """Normalise blanks/"all" to None and reject values outside the enumerations."""
        area = (self.area or "").strip() or None
        if area == "all":
            area = None
        if area is not None and area not in PUNE_AREAS:
            raise InvalidArgument(f"Unknown area: {self.area!r}")
        ptype = (self.property_type or "").strip().lower() or None
        if ptype == "all":
            ptype = None
        if ptype is not None and ptype not in PROPERTY_TYPES:
            raise InvalidArgument(f"Unknown property type: {self.property_type!r}")
        status = (self.status or "").strip().lower() or None
        if status in {"all", "any"}:
            status = None
        if status is not None and status not in PROPERTY_STATUSES:
            raise InvalidArgument(f"Unknown status: {self.status!r}")
        if self.rent_min is not None and self.rent_max is not None and self.rent_min > self.rent_max:
            raise InvalidArgument("rent_min must not exceed rent_max")
        return replace(self, area=area, property_type=ptype, status=status, query=(self.query or "").strip() or None)


def _matches_query(listing: Listing, needle: str, *, match_owner_email: bool) -> bool:
    p = listing.property
    haystack = [p.title or "", p.description or "", p.area or ""]
    if match_owner_email and listing.owner is not None:
        haystack.append(listing.owner.email or "")
    return any(needle in h.lower() for h in haystack)


def matches(listing: Listing, spec: FilterSpec, *, match_owner_email: bool = False, honour_status: bool = False) -> bool:
    p = listing.property
    if spec.area and p.area != spec.area:
        return False
    if spec.property_type and p.property_type != spec.property_type:
        return False
    if spec.rent_min is not None and p.rent < spec.rent_min:
        return False
    if spec.rent_max is not None and p.rent > spec.rent_max:
        return False
    if honour_status and spec.status and p.status != spec.status:
        return False
    needle = (spec.query or "").strip().lower()
    if needle and not _matches_query(listing, needle, match_owner_email=match_owner_email):
        return False
    return True


def filter_listings(
    listings: Iterable[Listing],
    spec: FilterSpec,
    *,
    match_owner_email: bool = False,
    honour_status: bool = False,
) -> list[Listing]:
    kept = [x for x in listings if matches(x, spec, match_owner_email=match_owner_email, honour_status=honour_status)]
    # Stable sort: equal timestamps keep their incoming order.
    kept.sort(key=lambda x: x.property.created_at, reverse=True)
    return kept


def list_approved(db: Session, spec: FilterSpec | None = None) -> list[Listing]:
    spec = (spec or FilterSpec()).validated()
    candidates = load_listings(db, newest_first(select(Property).where(Property.status == STATUS_APPROVED)))
    return filter_listings(candidates, spec)


def list_all(db: Session, actor: Actor, spec: FilterSpec | None = None) -> list[Listing]:
    require_admin(actor)
    spec = (spec or FilterSpec()).validated()
    stmt = select(Property)
    if spec.status:
        stmt = stmt.where(Property.status == spec.status)
    candidates = load_listings(db, newest_first(stmt))
    return filter_listings(candidates, spec, match_owner_email=True, honour_status=True)
