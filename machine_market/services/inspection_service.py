from __future__ import annotations

import logging
import os
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.orm import Session

from machine_market.models.market_models import InspectionReport
from machine_market.schemas.records import InspectionCreate
from machine_market.services.errors import ForbiddenError, NotFoundError
from machine_market.services.identity_service import Identity
from machine_market.services.machine_service import parse_uuid, require_machine


INSPECTION_LOGGER = logging.getLogger("machine_market.inspections")
FAILED_VERDICT = "fail"


def inspector_roles() -> frozenset[str]:
    raw = os.environ.get("INSPECTOR_ROLES", "inspector,admin")
    return frozenset(item.strip().lower() for item in str(raw).split(",") if item.strip())


def create_inspection_report(db: Session, identity: Identity, payload: InspectionCreate) -> InspectionReport:
    machine = require_machine(db, payload.machine_id, for_update=True)

    allowed = inspector_roles()
    if allowed and not identity.has_role(allowed):
        db.rollback()
        INSPECTION_LOGGER.warning("Inspection rejected user_id=%s role=%s", identity.user_id, identity.role)
        raise ForbiddenError("Only inspectors can submit reports")

    now = datetime.now()
    report = InspectionReport(
        machine_id=machine.id,
        inspector_id=identity.user_id,
        report_type=payload.report_type or "listing",
        inspection_date=now,
        verdict=payload.verdict,
        summary=payload.summary,
        report_data=payload.report_data,
        media_urls=list(payload.media_urls),
        created_at=now,
        updated_at=now,
    )
    db.add(report)

    if machine.status == "pending_inspection" and (payload.verdict or "").strip().lower() != FAILED_VERDICT:
        machine.status = "verified"
        machine.updated_at = now

    db.commit()
    db.refresh(report)
    INSPECTION_LOGGER.info(
        "Inspection filed report_id=%s machine_id=%s inspector_id=%s verdict=%s",
        report.id,
        machine.id,
        identity.user_id,
        report.verdict,
    )
    return report


def get_latest_inspection(db: Session, machine_id: str) -> InspectionReport:
    parsed = parse_uuid(machine_id)
    report = None
    if parsed is not None:
        report = db.execute(
            select(InspectionReport)
            .where(InspectionReport.machine_id == parsed)
            .where(InspectionReport.deleted_at.is_(None))
            .order_by(InspectionReport.created_at.desc(), InspectionReport.inspection_date.desc())
        ).scalars().first()
    if not report:
        raise NotFoundError("No inspection report found for this machine")
    return report


def serialize_inspection(report: InspectionReport) -> dict:
    return {
        "id": str(report.id),
        "machine_id": str(report.machine_id),
        "inspector_id": report.inspector_id,
        "report_type": report.report_type,
        "inspection_date": report.inspection_date,
        "verdict": report.verdict,
        "summary": report.summary,
        "report_data": report.report_data,
        "media_urls": report.media_urls or [],
        "created_at": report.created_at,
        "updated_at": report.updated_at,
    }
