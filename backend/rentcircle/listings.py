"""
Listing lifecycle: the property state machine and the two-phase submit.

States
  pending   initial, always
  approved  publicly visible
  rejected  hidden; carries a non-empty rejection_reason

Transitions are admin-only single-row updates. `approve` and `reject` may be
repeated (idempotent re-set, last write wins on the reason text). `reopen`
moves a rejected listing back to pending; an approved listing cannot be
reopened.

Submit is two-phase. Validation, the blocklist and the quota run before any
write ("nothing saved"). The property row is then committed on its own, and
images are uploaded and attached afterwards. If some uploads fail the listing
stays `pending` with whatever images made it, and `StorageFailure` is raised
with `listing_saved=True` so the caller can retry only the image phase via
`upload_images`.
"""
from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from urllib.parse import urlparse

from sqlalchemy import delete as sa_delete, select, update as sa_update
from sqlalchemy.orm import Session

from rentcircle import config
from rentcircle.auth import Actor, ensure_owner_or_admin, require_admin, require_authenticated
from rentcircle.blocklist import is_blocked
from rentcircle.constants import PROPERTY_TYPES, PUNE_AREAS, STATUS_APPROVED, STATUS_PENDING, STATUS_REJECTED
from rentcircle.db import commit
from rentcircle.errors import Blocked, InvalidArgument, InvalidState, NotFound, PersistenceFailure, QuotaExceeded, StorageFailure
from rentcircle.models import Profile, Property, PropertyImage, Report, utcnow
from rentcircle.repository import (
    Listing,
    count_active_listings,
    get_listing,
    get_profile,
    get_property,
    image_count,
    load_listings,
    log_moderation,
    newest_first,
    next_display_order,
)
from rentcircle.storage import ObjectStore, looks_like_image, optimize_image


logger = logging.getLogger(__name__)


@dataclass
class ListingDraft:
    title: str
    property_type: str
    rent: int
    area: str
    phone: str
    description: str = ""
    map_link: str | None = None
    full_name: str | None = None


@dataclass
class ImageFile:
    data: bytes
    filename: str = ""


# -----------------------
# Validation
# -----------------------
def _clean_draft(draft: ListingDraft) -> ListingDraft:
    title = (draft.title or "").strip()
    if not title:
        raise InvalidArgument("Title is required")
    property_type = (draft.property_type or "").strip().lower()
    if property_type not in PROPERTY_TYPES:
        raise InvalidArgument(f"Unknown property type: {draft.property_type!r}")
    area = (draft.area or "").strip()
    if area not in PUNE_AREAS:
        raise InvalidArgument(f"Unknown area: {draft.area!r}")
    try:
        rent = int(draft.rent)
    except (TypeError, ValueError):
        raise InvalidArgument("Rent must be a whole number")
    if rent <= 0:
        raise InvalidArgument("Rent must be positive")
    phone = (draft.phone or "").strip()
    if not phone:
        raise InvalidArgument("A contact phone number is required")
    map_link = (draft.map_link or "").strip() or None
    if map_link and urlparse(map_link).scheme not in {"http", "https"}:
        raise InvalidArgument("Map link must be an http(s) URL")
    return ListingDraft(
        title=title,
        property_type=property_type,
        rent=rent,
        area=area,
        phone=phone,
        description=(draft.description or "").strip(),
        map_link=map_link,
        full_name=(draft.full_name or "").strip() or None,
    )


def _check_files(files: list[ImageFile], *, min_count: int, max_count: int) -> None:
    if len(files) < min_count or len(files) > max_count:
        if min_count == max_count:
            raise InvalidArgument(f"Exactly {min_count} images are required")
        raise InvalidArgument(f"Between {min_count} and {max_count} images are required")
    limit = config.max_upload_image_bytes()
    for idx, f in enumerate(files):
        if not looks_like_image(f.data):
            raise InvalidArgument(f"File #{idx + 1} is not a JPEG, PNG or WebP image")
        if len(f.data) > limit:
            raise InvalidArgument(f"File #{idx + 1} is too large (max {limit} bytes)")


def _check_not_blocked(db: Session, profile: Profile, phone: str | None) -> None:
    if profile.is_blocked or is_blocked(db, email=profile.email, phone=phone):
        raise Blocked("This contact is not allowed to post listings")


# -----------------------
# Image phase
# -----------------------
def _ext_for(data: bytes) -> str:
    if data.startswith(b"\x89PNG"):
        return "png"
    if data.startswith(b"RIFF"):
        return "webp"
    return "jpg"


def _upload_all(store: ObjectStore, *, owner_id: int, property_id: int, files: list[ImageFile]) -> list[tuple[str, str] | StorageFailure]:
    """
    Upload every file concurrently.

    Results are returned in input order regardless of completion order, each
    either (url, storage_path) or the StorageFailure for that file.
    """
    stamp = int(time.time() * 1000)

    def _one(idx: int, f: ImageFile) -> tuple[str, str]:
        data = optimize_image(f.data)
        path = f"{owner_id}/{property_id}/{stamp}-{idx}.{_ext_for(data)}"
        return store.put(path, data), path

    workers = max(1, min(config.upload_workers(), len(files)))
    with ThreadPoolExecutor(max_workers=workers) as pool:
        futures = [pool.submit(_one, idx, f) for idx, f in enumerate(files)]
        results: list[tuple[str, str] | StorageFailure] = []
        for idx, fut in enumerate(futures):
            try:
                results.append(fut.result())
            except StorageFailure as e:
                logger.exception(
                    "Image upload failed property_id=%s index=%s size_bytes=%s",
                    property_id,
                    idx,
                    len(files[idx].data),
                )
                results.append(e)
    return results


def _discard_objects(store: ObjectStore, paths: list[str]) -> int:
    """Remove stored objects; returns how many could not be removed."""
    failed = 0
    for path in paths:
        try:
            store.delete(path)
        except StorageFailure:
            logger.exception("Orphaned storage object left behind path=%s", path)
            failed += 1
    return failed


def _image_phase(db: Session, prop: Property, files: list[ImageFile], store: ObjectStore) -> None:
    start = next_display_order(db, prop.id)
    outcomes = _upload_all(store, owner_id=int(prop.user_id), property_id=int(prop.id), files=files)

    uploaded: list[str] = []
    failed: list[int] = []
    order = start
    for idx, outcome in enumerate(outcomes):
        if isinstance(outcome, StorageFailure):
            failed.append(idx)
            continue
        url, path = outcome
        uploaded.append(path)
        db.add(PropertyImage(property_id=prop.id, image_url=url, storage_path=path, display_order=order))
        order += 1

    try:
        commit(db)
    except PersistenceFailure:
        _discard_objects(store, uploaded)
        raise

    if failed:
        raise StorageFailure(
            f"Listing saved, but {len(failed)} of {len(files)} images failed to upload. Retry the image upload.",
            listing_saved=True,
            property_id=int(prop.id),
            images_saved=len(uploaded),
            failed_images=failed,
        )


# -----------------------
# Operations
# -----------------------
def submit(db: Session, actor: Actor, draft: ListingDraft, files: list[ImageFile], store: ObjectStore) -> Listing:
    require_authenticated(actor)
    clean = _clean_draft(draft)
    _check_files(files, min_count=config.min_listing_images(), max_count=config.max_listing_images())

    profile = get_profile(db, actor.user_id)
    _check_not_blocked(db, profile, clean.phone)

    # Advisory: two concurrent submissions can both pass this check.
    if count_active_listings(db, profile.id) >= config.listing_quota():
        raise QuotaExceeded(f"You can have at most {config.listing_quota()} active listings")

    now = utcnow()
    profile.phone = clean.phone
    if clean.full_name:
        profile.full_name = clean.full_name
    profile.updated_at = now

    prop = Property(
        user_id=profile.id,
        title=clean.title,
        property_type=clean.property_type,
        rent=clean.rent,
        area=clean.area,
        description=clean.description,
        map_link=clean.map_link,
        status=STATUS_PENDING,
        rejection_reason=None,
        created_at=now,
        updated_at=now,
    )
    db.add(prop)
    db.flush()
    log_moderation(db, actor_user_id=actor.user_id, entity_type="property", entity_id=prop.id, action="submit")
    commit(db)
    logger.info("Listing submitted property_id=%s owner=%s images=%s", prop.id, profile.id, len(files))

    _image_phase(db, prop, files, store)
    return get_listing(db, prop.id)


def upload_images(db: Session, actor: Actor, property_id: int, files: list[ImageFile], store: ObjectStore) -> Listing:
    """
    Resume (or extend) the image phase for a listing still awaiting review.

    Reviewed listings are frozen: new images would skip moderation.
    """
    require_authenticated(actor)
    prop = get_property(db, property_id)
    ensure_owner_or_admin(actor, prop)
    if prop.status != STATUS_PENDING:
        raise InvalidState(f"Images can only be added while the listing is pending (status is {prop.status})")
    if not actor.is_admin:
        profile = get_profile(db, actor.user_id)
        _check_not_blocked(db, profile, profile.phone)

    room = config.max_listing_images() - image_count(db, prop.id)
    if room <= 0:
        raise InvalidArgument(f"This listing already has {config.max_listing_images()} images")
    _check_files(files, min_count=1, max_count=room)

    _image_phase(db, prop, files, store)
    return get_listing(db, prop.id)


def _touch(prop: Property) -> None:
    prop.updated_at = utcnow()


def approve(db: Session, actor: Actor, property_id: int) -> Property:
    require_admin(actor)
    prop = get_property(db, property_id)
    if prop.status == STATUS_APPROVED and not prop.rejection_reason:
        return prop
    prop.status = STATUS_APPROVED
    prop.rejection_reason = None
    _touch(prop)
    log_moderation(db, actor_user_id=actor.user_id, entity_type="property", entity_id=prop.id, action="approve")
    commit(db)
    logger.info("Listing approved property_id=%s admin=%s", prop.id, actor.user_id)
    return prop


def reject(db: Session, actor: Actor, property_id: int, reason: str) -> Property:
    require_admin(actor)
    reason_s = (reason or "").strip()
    if not reason_s:
        raise InvalidArgument("A rejection reason is required")
    prop = get_property(db, property_id)
    prop.status = STATUS_REJECTED
    prop.rejection_reason = reason_s
    _touch(prop)
    log_moderation(db, actor_user_id=actor.user_id, entity_type="property", entity_id=prop.id, action="reject", reason=reason_s)
    commit(db)
    logger.info("Listing rejected property_id=%s admin=%s", prop.id, actor.user_id)
    return prop


def reopen(db: Session, actor: Actor, property_id: int) -> Property:
    require_admin(actor)
    prop = get_property(db, property_id)
    if prop.status == STATUS_PENDING:
        return prop
    if prop.status != STATUS_REJECTED:
        raise InvalidState(f"Only rejected listings can be reopened (status is {prop.status})")
    prop.status = STATUS_PENDING
    prop.rejection_reason = None
    _touch(prop)
    log_moderation(db, actor_user_id=actor.user_id, entity_type="property", entity_id=prop.id, action="reopen")
    commit(db)
    return prop


def delete(db: Session, actor: Actor, property_id: int, store: ObjectStore) -> dict:
    """
    Remove a listing, its image rows and stored objects.

    Reports are kept and detached (property_id -> NULL); their title snapshot
    still says what was reported.
    """
    require_authenticated(actor)
    prop = get_property(db, property_id)
    ensure_owner_or_admin(actor, prop)

    pid = int(prop.id)
    paths = [i.storage_path for i in (prop.images or []) if (i.storage_path or "").strip()]

    db.execute(sa_update(Report).where(Report.property_id == pid).values(property_id=None))
    db.execute(sa_delete(PropertyImage).where(PropertyImage.property_id == pid))
    db.execute(sa_delete(Property).where(Property.id == pid))
    log_moderation(db, actor_user_id=actor.user_id, entity_type="property", entity_id=pid, action="delete")
    commit(db)
    db.expunge_all()
    logger.info("Listing deleted property_id=%s by=%s", pid, actor.user_id)

    orphaned = _discard_objects(store, paths)
    return {"ok": True, "id": pid, "orphaned_objects": orphaned}


# -----------------------
# Reads
# -----------------------
def get_visible_listing(db: Session, actor: Actor, property_id: int) -> Listing:
    """
    Public callers only ever see approved listings; the owner and admins see
    their listing in any state. Hidden listings look like unknown ids.
    """
    listing = get_listing(db, property_id)
    p = listing.property
    if p.status == STATUS_APPROVED:
        return listing
    if actor.is_admin or (actor.is_authenticated and int(p.user_id) == int(actor.user_id or 0)):
        return listing
    raise NotFound("Property not found")


def list_mine(db: Session, actor: Actor) -> list[Listing]:
    require_authenticated(actor)
    return load_listings(db, newest_first(select(Property).where(Property.user_id == int(actor.user_id))))
