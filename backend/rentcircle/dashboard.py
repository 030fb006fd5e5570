from __future__ import annotations

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from rentcircle.auth import Actor, require_admin
from rentcircle.constants import REPORT_OPEN, STATUS_APPROVED, STATUS_PENDING, STATUS_REJECTED
from rentcircle.models import BlockedContact, Property, Report


def dashboard_stats(db: Session, actor: Actor) -> dict[str, int]:
    """
    Admin dashboard counters.

    Each collection is read independently (no shared snapshot), so counts may
    be a few milliseconds apart from each other.
    """
    require_admin(actor)

    by_status = dict(
        db.execute(select(Property.status, func.count(Property.id)).group_by(Property.status)).all()
    )
    total_reports = db.execute(select(func.count(Report.id))).scalar() or 0
    open_reports = db.execute(select(func.count(Report.id)).where(Report.status == REPORT_OPEN)).scalar() or 0
    blocked = db.execute(select(func.count(BlockedContact.id))).scalar() or 0

    return {
        "total_listings": int(sum(by_status.values())),
        "pending_approvals": int(by_status.get(STATUS_PENDING, 0)),
        "active_listings": int(by_status.get(STATUS_APPROVED, 0)),
        "rejected_listings": int(by_status.get(STATUS_REJECTED, 0)),
        "total_reports": int(total_reports),
        "flagged_for_review": int(open_reports),
        "blocked_contacts": int(blocked),
    }
