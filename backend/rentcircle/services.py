"""
Auxiliary catalog: fixed-price services, customer requests against them, and
the singleton sponsor (donation) settings shown on the sponsor page.
"""
from __future__ import annotations

from typing import Any

from sqlalchemy import or_, select
from sqlalchemy.orm import Session, selectinload

from rentcircle.auth import Actor, require_admin
from rentcircle.constants import SERVICE_REQUEST_STATUSES
from rentcircle.db import commit
from rentcircle.errors import InvalidArgument, NotFound
from rentcircle.models import Service, ServiceRequest, SponsorSettings, utcnow


SERVICE_FIELDS = ("title", "description", "price", "image_url", "is_active", "display_order")
# Non-null columns; None in an update leaves them unchanged.
SERVICE_REQUIRED_FIELDS = ("title", "price", "is_active", "display_order")
SPONSOR_FIELDS = ("qr_code_url", "upi_id", "bank_name", "account_holder_name", "account_number", "ifsc_code", "message")


def _get_service(db: Session, service_id: int) -> Service:
    s = db.get(Service, int(service_id))
    if not s:
        raise NotFound("Service not found")
    return s


def _check_service_values(values: dict[str, Any]) -> None:
    if "title" in values and not (values["title"] or "").strip():
        raise InvalidArgument("Service title is required")
    if "price" in values and (values["price"] is None or int(values["price"]) < 0):
        raise InvalidArgument("Price must be zero or more")


def list_services(db: Session, *, active_only: bool = True) -> list[Service]:
    stmt = select(Service).order_by(Service.display_order.asc(), Service.id.asc())
    if active_only:
        stmt = stmt.where(Service.is_active.is_(True))
    return list(db.execute(stmt).scalars().all())


def create_service(db: Session, actor: Actor, **values: Any) -> Service:
    require_admin(actor)
    values = {k: v for k, v in values.items() if k in SERVICE_FIELDS}
    if "title" not in values:
        raise InvalidArgument("Service title is required")
    _check_service_values(values)
    s = Service(**values)
    db.add(s)
    db.flush()
    commit(db)
    return s


def update_service(db: Session, actor: Actor, service_id: int, **values: Any) -> Service:
    require_admin(actor)
    s = _get_service(db, service_id)
    values = {
        k: v
        for k, v in values.items()
        if k in SERVICE_FIELDS and not (v is None and k in SERVICE_REQUIRED_FIELDS)
    }
    _check_service_values(values)
    for k, v in values.items():
        setattr(s, k, v)
    s.updated_at = utcnow()
    commit(db)
    return s


def delete_service(db: Session, actor: Actor, service_id: int) -> None:
    """Deletes the service and every request made against it."""
    require_admin(actor)
    s = _get_service(db, service_id)
    db.delete(s)
    commit(db)


def create_service_request(
    db: Session,
    actor: Actor,
    *,
    service_id: int,
    name: str,
    email: str,
    phone: str,
    address: str | None = None,
    message: str | None = None,
) -> ServiceRequest:
    s = _get_service(db, service_id)
    if not s.is_active:
        raise NotFound("Service not found")
    name_s, email_s, phone_s = (name or "").strip(), (email or "").strip().lower(), (phone or "").strip()
    if not name_s or not email_s or not phone_s:
        raise InvalidArgument("Name, email and phone are required")
    req = ServiceRequest(
        service_id=s.id,
        user_id=actor.user_id if actor.is_authenticated else None,
        name=name_s,
        email=email_s,
        phone=phone_s,
        address=(address or "").strip() or None,
        message=(message or "").strip() or None,
        status="pending",
    )
    db.add(req)
    db.flush()
    commit(db)
    return req


def list_service_requests(db: Session, actor: Actor, *, status: str | None = None, query: str | None = None) -> list[ServiceRequest]:
    require_admin(actor)
    stmt = (
        select(ServiceRequest)
        .options(selectinload(ServiceRequest.service))
        .order_by(ServiceRequest.created_at.desc(), ServiceRequest.id.desc())
    )
    st = (status or "").strip().lower()
    if st and st != "all":
        stmt = stmt.where(ServiceRequest.status == st)
    q = (query or "").strip()
    if q:
        like = f"%{q}%"
        stmt = stmt.join(Service, ServiceRequest.service_id == Service.id).where(
            or_(
                ServiceRequest.name.ilike(like),
                ServiceRequest.email.ilike(like),
                ServiceRequest.phone.contains(q),
                Service.title.ilike(like),
            )
        )
    return list(db.execute(stmt).scalars().all())


def update_service_request(
    db: Session, actor: Actor, request_id: int, *, status: str, admin_notes: str | None = None
) -> ServiceRequest:
    require_admin(actor)
    req = db.get(ServiceRequest, int(request_id))
    if not req:
        raise NotFound("Service request not found")
    st = (status or "").strip().lower()
    if st not in SERVICE_REQUEST_STATUSES:
        raise InvalidArgument(f"Unknown request status: {status!r}")
    req.status = st
    if admin_notes is not None:
        req.admin_notes = admin_notes.strip() or None
    commit(db)
    return req


def delete_service_request(db: Session, actor: Actor, request_id: int) -> None:
    require_admin(actor)
    req = db.get(ServiceRequest, int(request_id))
    if not req:
        raise NotFound("Service request not found")
    db.delete(req)
    commit(db)


def get_sponsor_settings(db: Session) -> SponsorSettings | None:
    return db.execute(select(SponsorSettings).order_by(SponsorSettings.id.asc()).limit(1)).scalar_one_or_none()


def update_sponsor_settings(db: Session, actor: Actor, **values: Any) -> SponsorSettings:
    require_admin(actor)
    row = get_sponsor_settings(db)
    if row is None:
        row = SponsorSettings()
        db.add(row)
    for k, v in values.items():
        if k in SPONSOR_FIELDS:
            setattr(row, k, (v or "").strip() or None)
    row.updated_by = actor.user_id
    row.updated_at = utcnow()
    db.flush()
    commit(db)
    return row


def service_out(s: Service) -> dict[str, Any]:
    return {
        "id": s.id,
        "title": s.title,
        "description": s.description,
        "price": s.price,
        "image_url": s.image_url,
        "is_active": bool(s.is_active),
        "display_order": s.display_order,
    }


def service_request_out(r: ServiceRequest) -> dict[str, Any]:
    return {
        "id": r.id,
        "service_id": r.service_id,
        "service_title": r.service.title if r.service is not None else None,
        "name": r.name,
        "email": r.email,
        "phone": r.phone,
        "address": r.address,
        "message": r.message,
        "status": r.status,
        "admin_notes": r.admin_notes,
        "created_at": r.created_at.isoformat() if r.created_at else None,
    }


def sponsor_out(row: SponsorSettings | None) -> dict[str, Any]:
    if row is None:
        return {k: None for k in SPONSOR_FIELDS}
    return {k: getattr(row, k) for k in SPONSOR_FIELDS}
