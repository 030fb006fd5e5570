"""
Report intake and triage.

    open -> reviewed -> resolved
    open ----------->  resolved

Reports never change the listing they point at; an admin who wants a listing
gone calls `listings.reject` or `listings.delete` separately.
"""
from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from rentcircle.auth import Actor, require_admin
from rentcircle.constants import REPORT_OPEN, REPORT_RESOLVED, REPORT_REVIEWED, REPORT_STATUSES
from rentcircle.db import commit
from rentcircle.errors import InvalidArgument, InvalidState
from rentcircle.listings import get_visible_listing
from rentcircle.models import Report, utcnow
from rentcircle.repository import get_report, log_moderation


logger = logging.getLogger(__name__)


def file_report(db: Session, actor: Actor, property_id: int, reason: str, reporter_email: str | None = None) -> Report:
    reason_s = (reason or "").strip()
    if not reason_s:
        raise InvalidArgument("A reason is required to report a listing")
    email = (reporter_email or "").strip().lower() or None
    if email is None and actor.is_authenticated:
        email = actor.email
    # Same visibility as a public read: hidden ids look unknown.
    prop = get_visible_listing(db, actor, property_id).property
    report = Report(
        property_id=prop.id,
        property_title=prop.title,
        reporter_email=email,
        reason=reason_s,
        status=REPORT_OPEN,
    )
    db.add(report)
    db.flush()
    commit(db)
    logger.info("Report filed report_id=%s property_id=%s", report.id, prop.id)
    return report


def mark_reviewed(db: Session, actor: Actor, report_id: int, admin_notes: str | None = None) -> Report:
    require_admin(actor)
    report = get_report(db, report_id)
    if report.status == REPORT_RESOLVED:
        raise InvalidState("Report is already resolved")
    if report.status == REPORT_REVIEWED and admin_notes is None:
        return report
    report.status = REPORT_REVIEWED
    if admin_notes is not None:
        report.admin_notes = admin_notes.strip() or None
    log_moderation(db, actor_user_id=actor.user_id, entity_type="report", entity_id=report.id, action="review")
    commit(db)
    return report


def resolve(db: Session, actor: Actor, report_id: int, admin_notes: str | None = None) -> Report:
    require_admin(actor)
    report = get_report(db, report_id)
    if report.status == REPORT_RESOLVED:
        raise InvalidState("Report is already resolved")
    report.status = REPORT_RESOLVED
    report.resolved_at = utcnow()
    if admin_notes is not None:
        report.admin_notes = admin_notes.strip() or None
    log_moderation(
        db,
        actor_user_id=actor.user_id,
        entity_type="report",
        entity_id=report.id,
        action="resolve",
        reason=report.admin_notes or "",
    )
    commit(db)
    logger.info("Report resolved report_id=%s admin=%s", report.id, actor.user_id)
    return report


def delete_report(db: Session, actor: Actor, report_id: int) -> None:
    require_admin(actor)
    report = get_report(db, report_id)
    db.delete(report)
    log_moderation(db, actor_user_id=actor.user_id, entity_type="report", entity_id=int(report_id), action="delete")
    commit(db)


def list_reports(db: Session, actor: Actor, status: str | None = None) -> list[Report]:
    require_admin(actor)
    stmt = select(Report).order_by(Report.created_at.desc(), Report.id.desc())
    st = (status or "").strip().lower()
    if st and st != "all":
        if st not in REPORT_STATUSES:
            raise InvalidArgument(f"Unknown report status: {status!r}")
        stmt = stmt.where(Report.status == st)
    return list(db.execute(stmt).scalars().all())
