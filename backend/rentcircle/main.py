from __future__ import annotations

import logging
import os
from typing import Annotated, Any

from fastapi import Depends, FastAPI, File, Form, Header, Query, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse, Response
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from starlette.middleware.trustedhost import TrustedHostMiddleware

from rentcircle import auth, blocklist, catalog, config, dashboard, listings, moderation, services
from rentcircle.auth import Actor
from rentcircle.constants import catalog_meta
from rentcircle.db import ENGINE, session_scope
from rentcircle.errors import PersistenceFailure, RateLimited, RentCircleError
from rentcircle.models import Base
from rentcircle.rate_limit import limiter
from rentcircle.repository import blocked_out, get_profile, listing_out, listings_out, profile_out, report_out
from rentcircle.schemas import (
    BlockIn,
    LoginIn,
    RegisterIn,
    RejectIn,
    ReportIn,
    ReportUpdateIn,
    ServiceIn,
    ServiceRequestIn,
    ServiceRequestUpdateIn,
    ServiceUpdateIn,
    SponsorSettingsIn,
)
from rentcircle.storage import ObjectStore, get_object_store


logger = logging.getLogger(__name__)

app = FastAPI(title="RentCircle API")

# Production hardening: ensure we don't run with dangerous defaults.
config.enforce_secure_secrets()

app.add_middleware(TrustedHostMiddleware, allowed_hosts=config.allowed_hosts())
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def _security_headers(request, call_next):
    resp = await call_next(request)
    resp.headers.setdefault("X-Content-Type-Options", "nosniff")
    resp.headers.setdefault("X-Frame-Options", "DENY")
    resp.headers.setdefault("Referrer-Policy", "no-referrer")
    return resp


@app.exception_handler(RentCircleError)
async def _core_error(request: Request, exc: RentCircleError):
    headers = None
    if isinstance(exc, RateLimited) and exc.extra.get("retry_after"):
        headers = {"Retry-After": str(exc.extra["retry_after"])}
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)


@app.exception_handler(SQLAlchemyError)
async def _store_error(request: Request, exc: SQLAlchemyError):
    logger.exception("Unhandled database error path=%s", request.url.path)
    err = PersistenceFailure(f"Database error: {type(exc).__name__}")
    return JSONResponse(status_code=err.status_code, content=err.to_dict())


@app.on_event("startup")
def prepare_database() -> None:
    """
    Local sqlite runs get their tables created directly; real deployments are
    migrated with Alembic. Then make sure the configured admin account exists.
    """
    if config.is_local_dev():
        Base.metadata.create_all(ENGINE)
    try:
        with session_scope() as db:
            auth.ensure_seed_admin(db)
    except SQLAlchemyError:
        # Not migrated yet; seeding runs again on the next start.
        logger.warning("Admin seed skipped: database not ready", exc_info=True)


# -----------------------
# Dependencies
# -----------------------
def get_db():
    with session_scope() as db:
        yield db


def get_store() -> ObjectStore:
    return get_object_store()


def _bearer_token(authorization: str | None) -> str | None:
    if not authorization:
        return None
    if not authorization.lower().startswith("bearer "):
        return None
    return authorization.split(" ", 1)[1].strip() or None


def get_actor(
    db: Annotated[Session, Depends(get_db)],
    authorization: Annotated[str | None, Header()] = None,
) -> Actor:
    return auth.resolve_actor(db, _bearer_token(authorization))


DB = Annotated[Session, Depends(get_db)]
Me = Annotated[Actor, Depends(get_actor)]
Store = Annotated[ObjectStore, Depends(get_store)]


def _read_uploads(files: list[UploadFile]) -> list[listings.ImageFile]:
    return [listings.ImageFile(data=f.file.read(), filename=(f.filename or "").strip()) for f in files or []]


# -----------------------
# Meta
# -----------------------
@app.get("/health")
def health():
    return {"ok": True}


@app.get("/meta/catalog")
def meta_catalog() -> dict[str, Any]:
    return catalog_meta()


@app.get("/uploads/{path:path}", include_in_schema=False)
def uploads_proxy(path: str):
    """Serve locally-stored images (only used when Cloudinary is not configured)."""
    rel = (path or "").lstrip("/").replace("\\", "/")
    if not rel or ".." in rel.split("/"):
        return Response(status_code=404)
    disk_path = os.path.join(config.uploads_dir(), rel)
    if not os.path.isfile(disk_path):
        return Response(status_code=404)
    return FileResponse(disk_path)


# -----------------------
# Auth
# -----------------------
@app.post("/auth/register", status_code=201)
def register(data: RegisterIn, db: DB):
    profile = auth.register(db, email=data.email, password=data.password, full_name=data.full_name)
    token, _ = auth.login(db, email=profile.email, password=data.password)
    return {"access_token": token, "token_type": "bearer", "profile": profile_out(profile, include_internal=True)}


@app.post("/auth/login")
def login(data: LoginIn, db: DB):
    token, profile = auth.login(db, email=data.email, password=data.password)
    return {"access_token": token, "token_type": "bearer", "profile": profile_out(profile, include_internal=True)}


@app.get("/me")
def me(db: DB, actor: Me):
    auth.require_authenticated(actor)
    out = profile_out(get_profile(db, actor.user_id), include_internal=True)
    out["is_admin"] = actor.is_admin
    return out


# -----------------------
# Public catalog
# -----------------------
@app.get("/properties")
def list_properties(
    db: DB,
    area: str | None = Query(default=None),
    property_type: str | None = Query(default=None),
    rent_min: int | None = Query(default=None, ge=0),
    rent_max: int | None = Query(default=None, ge=0),
    q: str | None = Query(default=None),
):
    spec = catalog.FilterSpec(area=area, property_type=property_type, rent_min=rent_min, rent_max=rent_max, query=q)
    items = catalog.list_approved(db, spec)
    return {"items": listings_out(items), "count": len(items)}


@app.get("/properties/{property_id:int}")
def get_property(property_id: int, db: DB, actor: Me):
    listing = listings.get_visible_listing(db, actor, property_id)
    return listing_out(listing, include_internal=actor.is_admin)


@app.post("/properties/{property_id:int}/reports", status_code=201)
def report_property(property_id: int, data: ReportIn, request: Request, db: DB, actor: Me):
    client = request.client.host if request.client else "unknown"
    limiter.hit(
        key=f"report:{client}",
        limit=config.report_rate_limit(),
        window_seconds=config.report_rate_window_seconds(),
        detail="Too many reports, please try again later",
    )
    report = moderation.file_report(db, actor, property_id, data.reason, data.reporter_email)
    return {"id": report.id, "status": report.status}


# -----------------------
# Owner flow
# -----------------------
@app.post("/properties", status_code=201)
def submit_property(
    db: DB,
    actor: Me,
    store: Store,
    title: str = Form(...),
    property_type: str = Form(...),
    rent: int = Form(...),
    area: str = Form(...),
    phone: str = Form(...),
    description: str = Form(default=""),
    map_link: str | None = Form(default=None),
    full_name: str | None = Form(default=None),
    files: list[UploadFile] = File(...),
):
    # Authenticate before reading any upload bodies.
    auth.require_authenticated(actor)
    draft = listings.ListingDraft(
        title=title,
        property_type=property_type,
        rent=rent,
        area=area,
        phone=phone,
        description=description,
        map_link=map_link,
        full_name=full_name,
    )
    listing = listings.submit(db, actor, draft, _read_uploads(files), store)
    return listing_out(listing, include_internal=True)


@app.post("/properties/{property_id:int}/images")
def upload_property_images(
    property_id: int,
    db: DB,
    actor: Me,
    store: Store,
    files: list[UploadFile] = File(...),
):
    auth.require_authenticated(actor)
    listing = listings.upload_images(db, actor, property_id, _read_uploads(files), store)
    return listing_out(listing, include_internal=True)


@app.get("/owner/properties")
def owner_list_properties(db: DB, actor: Me):
    items = listings.list_mine(db, actor)
    return {"items": listings_out(items, include_internal=True), "quota": config.listing_quota()}


@app.delete("/owner/properties/{property_id:int}")
def owner_delete_property(property_id: int, db: DB, actor: Me, store: Store):
    return listings.delete(db, actor, property_id, store)


# -----------------------
# Admin: listings
# -----------------------
@app.get("/admin/properties")
def admin_list_properties(
    db: DB,
    actor: Me,
    status: str | None = Query(default=None),
    area: str | None = Query(default=None),
    property_type: str | None = Query(default=None),
    rent_min: int | None = Query(default=None, ge=0),
    rent_max: int | None = Query(default=None, ge=0),
    q: str | None = Query(default=None),
):
    spec = catalog.FilterSpec(
        area=area, property_type=property_type, rent_min=rent_min, rent_max=rent_max, query=q, status=status
    )
    items = catalog.list_all(db, actor, spec)
    return {"items": listings_out(items, include_internal=True), "count": len(items)}


@app.post("/admin/properties/{property_id:int}/approve")
def admin_approve_property(property_id: int, db: DB, actor: Me):
    p = listings.approve(db, actor, property_id)
    return {"ok": True, "id": p.id, "status": p.status}


@app.post("/admin/properties/{property_id:int}/reject")
def admin_reject_property(property_id: int, data: RejectIn, db: DB, actor: Me):
    p = listings.reject(db, actor, property_id, data.reason)
    return {"ok": True, "id": p.id, "status": p.status, "rejection_reason": p.rejection_reason}


@app.post("/admin/properties/{property_id:int}/reopen")
def admin_reopen_property(property_id: int, db: DB, actor: Me):
    p = listings.reopen(db, actor, property_id)
    return {"ok": True, "id": p.id, "status": p.status}


@app.delete("/admin/properties/{property_id:int}")
def admin_delete_property(property_id: int, db: DB, actor: Me, store: Store):
    auth.require_admin(actor)
    return listings.delete(db, actor, property_id, store)


# -----------------------
# Admin: reports
# -----------------------
@app.get("/admin/reports")
def admin_list_reports(db: DB, actor: Me, status: str | None = Query(default=None)):
    return {"items": [report_out(r) for r in moderation.list_reports(db, actor, status)]}


@app.post("/admin/reports/{report_id:int}/review")
def admin_review_report(report_id: int, data: ReportUpdateIn, db: DB, actor: Me):
    return report_out(moderation.mark_reviewed(db, actor, report_id, data.admin_notes))


@app.post("/admin/reports/{report_id:int}/resolve")
def admin_resolve_report(report_id: int, data: ReportUpdateIn, db: DB, actor: Me):
    return report_out(moderation.resolve(db, actor, report_id, data.admin_notes))


@app.delete("/admin/reports/{report_id:int}")
def admin_delete_report(report_id: int, db: DB, actor: Me):
    moderation.delete_report(db, actor, report_id)
    return {"ok": True}


# -----------------------
# Admin: blocklist
# -----------------------
@app.get("/admin/blocked")
def admin_list_blocked(db: DB, actor: Me):
    return {"items": [blocked_out(b) for b in blocklist.list_blocked(db, actor)]}


@app.post("/admin/blocked", status_code=201)
def admin_block_contact(data: BlockIn, db: DB, actor: Me):
    return blocked_out(blocklist.block(db, actor, email=data.email, phone=data.phone, reason=data.reason))


@app.delete("/admin/blocked/{blocked_id:int}")
def admin_unblock_contact(blocked_id: int, db: DB, actor: Me):
    blocklist.unblock(db, actor, blocked_id)
    return {"ok": True}


@app.post("/admin/profiles/{user_id:int}/block")
def admin_block_profile(user_id: int, db: DB, actor: Me):
    return profile_out(blocklist.set_profile_blocked(db, actor, user_id, True), include_internal=True)


@app.post("/admin/profiles/{user_id:int}/unblock")
def admin_unblock_profile(user_id: int, db: DB, actor: Me):
    return profile_out(blocklist.set_profile_blocked(db, actor, user_id, False), include_internal=True)


@app.get("/admin/stats")
def admin_stats(db: DB, actor: Me):
    return dashboard.dashboard_stats(db, actor)


# -----------------------
# Services catalog
# -----------------------
@app.get("/services")
def list_services(db: DB):
    return {"items": [services.service_out(s) for s in services.list_services(db, active_only=True)]}


@app.post("/services/{service_id:int}/requests", status_code=201)
def request_service(service_id: int, data: ServiceRequestIn, db: DB, actor: Me):
    req = services.create_service_request(db, actor, service_id=service_id, **data.model_dump())
    return {"id": req.id, "status": req.status}


@app.get("/admin/services")
def admin_list_services(db: DB, actor: Me):
    auth.require_admin(actor)
    return {"items": [services.service_out(s) for s in services.list_services(db, active_only=False)]}


@app.post("/admin/services", status_code=201)
def admin_create_service(data: ServiceIn, db: DB, actor: Me):
    return services.service_out(services.create_service(db, actor, **data.model_dump()))


@app.patch("/admin/services/{service_id:int}")
def admin_update_service(service_id: int, data: ServiceUpdateIn, db: DB, actor: Me):
    values = data.model_dump(exclude_unset=True)
    return services.service_out(services.update_service(db, actor, service_id, **values))


@app.delete("/admin/services/{service_id:int}")
def admin_delete_service(service_id: int, db: DB, actor: Me):
    services.delete_service(db, actor, service_id)
    return {"ok": True}


@app.get("/admin/service-requests")
def admin_list_service_requests(
    db: DB,
    actor: Me,
    status: str | None = Query(default=None),
    q: str | None = Query(default=None),
):
    items = services.list_service_requests(db, actor, status=status, query=q)
    return {"items": [services.service_request_out(r) for r in items]}


@app.patch("/admin/service-requests/{request_id:int}")
def admin_update_service_request(request_id: int, data: ServiceRequestUpdateIn, db: DB, actor: Me):
    req = services.update_service_request(db, actor, request_id, status=data.status, admin_notes=data.admin_notes)
    return services.service_request_out(req)


@app.delete("/admin/service-requests/{request_id:int}")
def admin_delete_service_request(request_id: int, db: DB, actor: Me):
    services.delete_service_request(db, actor, request_id)
    return {"ok": True}


@app.get("/sponsor")
def sponsor_settings(db: DB):
    return services.sponsor_out(services.get_sponsor_settings(db))


@app.put("/admin/sponsor")
def admin_update_sponsor(data: SponsorSettingsIn, db: DB, actor: Me):
    row = services.update_sponsor_settings(db, actor, **data.model_dump(exclude_unset=True))
    return services.sponsor_out(row)
