from __future__ import annotations

import logging
import re
from datetime import date, datetime

from sqlalchemy import select
from sqlalchemy.orm import Session

from machine_market.models.market_models import MaintenanceRecord
from machine_market.schemas.records import MaintenanceCreate
from machine_market.services.errors import InvalidInputError
from machine_market.services.identity_service import Identity
from machine_market.services.machine_service import parse_uuid, require_machine, require_owner, to_money


MAINTENANCE_LOGGER = logging.getLogger("machine_market.maintenance")
DATE_FORMAT = "%Y-%m-%d"
DATE_PATTERN = re.compile(r"\d{4}-\d{2}-\d{2}")


def _parse_service_date(raw: str | None) -> date:
    value = (raw or "").strip()
    if not value:
        return date.today()
    if not DATE_PATTERN.fullmatch(value):
        raise InvalidInputError("Invalid service_date format")
    try:
        return datetime.strptime(value, DATE_FORMAT).date()
    except ValueError as exc:
        raise InvalidInputError("Invalid service_date format") from exc


def add_maintenance_record(db: Session, identity: Identity, payload: MaintenanceCreate) -> MaintenanceRecord:
    machine = require_machine(db, payload.machine_id)
    require_owner(machine, identity, "You are not the owner of this machine")
    service_date = _parse_service_date(payload.service_date)

    now = datetime.now()
    record = MaintenanceRecord(
        machine_id=machine.id,
        service_date=service_date,
        type=payload.type,
        description=payload.description,
        cost=to_money(payload.cost),
        technician=payload.technician,
        document_url=payload.document_url,
        created_at=now,
        updated_at=now,
    )
    db.add(record)
    db.commit()
    db.refresh(record)
    MAINTENANCE_LOGGER.info(
        "Maintenance recorded record_id=%s machine_id=%s service_date=%s",
        record.id,
        machine.id,
        record.service_date,
    )
    return record


def get_maintenance_history(db: Session, machine_id: str) -> list[MaintenanceRecord]:
    parsed = parse_uuid(machine_id)
    if parsed is None:
        return []
    stmt = (
        select(MaintenanceRecord)
        .where(MaintenanceRecord.machine_id == parsed)
        .where(MaintenanceRecord.deleted_at.is_(None))
        .order_by(MaintenanceRecord.service_date.desc(), MaintenanceRecord.created_at.desc())
    )
    return list(db.execute(stmt).scalars().all())


def serialize_maintenance(record: MaintenanceRecord) -> dict:
    return {
        "id": str(record.id),
        "machine_id": str(record.machine_id),
        "service_date": record.service_date,
        "type": record.type,
        "description": record.description,
        "cost": float(record.cost or 0),
        "technician": record.technician,
        "document_url": record.document_url,
        "created_at": record.created_at,
        "updated_at": record.updated_at,
    }
