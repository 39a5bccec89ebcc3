from __future__ import annotations

import logging
import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from machine_market.models.market_models import Machine
from machine_market.schemas.machines import MachineCreate, MachineUpdate
from machine_market.services.errors import ForbiddenError, NotFoundError
from machine_market.services.identity_service import Identity


MACHINE_LOGGER = logging.getLogger("machine_market.machines")

MUTABLE_FIELDS = {
    "title",
    "description",
    "category",
    "location",
    "price_for_sale",
    "rental_price_per_day",
    "rental_price_per_month",
    "security_deposit",
    "specs",
    "status",
    "listing_type",
}
MONEY_FIELDS = {"price_for_sale", "rental_price_per_day", "rental_price_per_month", "security_deposit"}


def parse_uuid(raw: str | uuid.UUID | None) -> uuid.UUID | None:
    if isinstance(raw, uuid.UUID):
        return raw
    value = (raw or "").strip()
    if not value:
        return None
    try:
        return uuid.UUID(value)
    except ValueError:
        return None


def to_money(value) -> Decimal:
    if value is None:
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def find_machine(db: Session, machine_id: str | uuid.UUID | None, *, for_update: bool = False) -> Machine | None:
    parsed = parse_uuid(machine_id)
    if parsed is None:
        return None
    stmt = select(Machine).where(Machine.id == parsed).where(Machine.deleted_at.is_(None))
    if for_update:
        stmt = stmt.with_for_update()
    return db.execute(stmt).scalars().first()


def require_machine(db: Session, machine_id: str | uuid.UUID | None, *, for_update: bool = False) -> Machine:
    machine = find_machine(db, machine_id, for_update=for_update)
    if not machine:
        raise NotFoundError("Machine not found")
    return machine


def require_owner(machine: Machine, identity: Identity, message: str) -> None:
    if machine.seller_id != identity.user_id:
        MACHINE_LOGGER.warning(
            "Ownership check failed machine_id=%s seller_id=%s user_id=%s",
            machine.id,
            machine.seller_id,
            identity.user_id,
        )
        raise ForbiddenError(message)


def create_machine(db: Session, identity: Identity, payload: MachineCreate) -> Machine:
    values = payload.model_dump()
    for field in MONEY_FIELDS:
        values[field] = to_money(values.get(field))
    values["status"] = values.get("status") or "pending_inspection"

    now = datetime.now()
    machine = Machine(**values)
    machine.id = uuid.uuid4()
    machine.seller_id = identity.user_id
    machine.created_at = now
    machine.updated_at = now

    db.add(machine)
    db.commit()
    db.refresh(machine)
    MACHINE_LOGGER.info("Machine created machine_id=%s seller_id=%s", machine.id, machine.seller_id)
    return machine


def update_machine(db: Session, identity: Identity, machine_id: str, payload: MachineUpdate) -> Machine:
    machine = require_machine(db, machine_id, for_update=True)
    require_owner(machine, identity, "You are not authorized to update this listing")

    for field, value in payload.model_dump(exclude_unset=True).items():
        if field not in MUTABLE_FIELDS:
            continue
        if field in MONEY_FIELDS:
            value = to_money(value)
        setattr(machine, field, value)

    machine.updated_at = datetime.now()
    db.commit()
    db.refresh(machine)
    MACHINE_LOGGER.info("Machine updated machine_id=%s seller_id=%s", machine.id, machine.seller_id)
    return machine


def delete_machine(db: Session, identity: Identity, machine_id: str) -> None:
    machine = require_machine(db, machine_id, for_update=True)
    require_owner(machine, identity, "You are not authorized to delete this listing")

    machine.deleted_at = datetime.now()
    machine.updated_at = machine.deleted_at
    db.commit()
    MACHINE_LOGGER.info("Machine soft-deleted machine_id=%s seller_id=%s", machine.id, machine.seller_id)


def serialize_machine(machine: Machine) -> dict:
    return {
        "id": str(machine.id),
        "seller_id": machine.seller_id,
        "title": machine.title,
        "description": machine.description,
        "manufacturer": machine.manufacturer,
        "model_number": machine.model_number,
        "year_of_manufacture": machine.year_of_manufacture,
        "category": machine.category,
        "location": machine.location,
        "status": machine.status,
        "listing_type": machine.listing_type,
        "price_for_sale": float(machine.price_for_sale or 0),
        "rental_price_per_day": float(machine.rental_price_per_day or 0),
        "rental_price_per_month": float(machine.rental_price_per_month or 0),
        "security_deposit": float(machine.security_deposit or 0),
        "specs": machine.specs,
        "created_at": machine.created_at,
        "updated_at": machine.updated_at,
    }
