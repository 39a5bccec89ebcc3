from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from machine_market.models.market_models import RENTAL_STATUSES, Machine, Rental
from machine_market.services.errors import ForbiddenError, InvalidInputError, NotFoundError
from machine_market.services.identity_service import Identity
from machine_market.services.machine_service import (
    find_machine,
    parse_uuid,
    require_owner,
    serialize_machine,
    to_money,
)


RENTAL_LOGGER = logging.getLogger("machine_market.rentals")

DATE_FORMAT = "%Y-%m-%d"
DATE_PATTERN = re.compile(r"\d{4}-\d{2}-\d{2}")
PLATFORM_FEE_RATE = Decimal("0.05")
RENTAL_STATUS_TRANSITIONS = {
    "pending": {"approved", "rejected"},
    "approved": {"active", "cancelled"},
    "active": {"completed"},
    "rejected": set(),
    "completed": set(),
    "cancelled": set(),
}


@dataclass(frozen=True)
class RentalPricing:
    days: int
    total_amount: Decimal
    platform_fee: Decimal


def parse_rental_date(raw: str | None, field: str) -> date:
    value = (raw or "").strip()
    if not DATE_PATTERN.fullmatch(value):
        raise InvalidInputError(f"Invalid {field} format")
    try:
        return datetime.strptime(value, DATE_FORMAT).date()
    except ValueError as exc:
        raise InvalidInputError(f"Invalid {field} format") from exc


def rental_days(start: date | datetime, end: date | datetime) -> int:
    hours = (end - start).total_seconds() / 3600
    days = math.ceil(hours / 24)
    return max(days, 1)


def compute_rental_pricing(start: date | datetime, end: date | datetime, rate_per_day) -> RentalPricing:
    days = rental_days(start, end)
    total_amount = days * to_money(rate_per_day)
    return RentalPricing(
        days=days,
        total_amount=total_amount,
        platform_fee=total_amount * PLATFORM_FEE_RATE,
    )


def create_rental_request(
    db: Session,
    identity: Identity,
    machine_id: str | None,
    start_date: str | None,
    end_date: str | None,
) -> Rental:
    if not (machine_id or "").strip():
        raise InvalidInputError("Machine ID is required")
    start = parse_rental_date(start_date, "start_date")
    end = parse_rental_date(end_date, "end_date")

    machine = find_machine(db, machine_id)
    if not machine:
        raise NotFoundError("Machine not found")
    if machine.listing_type == "sale":
        raise InvalidInputError("This machine is not for rent")
    if end < start:
        raise InvalidInputError("End date cannot be before start date")

    pricing = compute_rental_pricing(start, end, machine.rental_price_per_day)
    now = datetime.now()
    rental = Rental(
        machine_id=machine.id,
        renter_id=identity.user_id,
        start_date=start,
        end_date=end,
        total_amount=pricing.total_amount,
        security_deposit=to_money(machine.security_deposit),
        platform_fee=pricing.platform_fee,
        status="pending",
        created_at=now,
        updated_at=now,
    )
    db.add(rental)
    db.commit()
    db.refresh(rental)
    RENTAL_LOGGER.info(
        "Rental requested rental_id=%s machine_id=%s renter_id=%s days=%s total=%s",
        rental.id,
        machine.id,
        identity.user_id,
        pricing.days,
        pricing.total_amount,
    )
    return rental


def get_my_rentals(db: Session, identity: Identity) -> list[Rental]:
    stmt = (
        select(Rental)
        .options(selectinload(Rental.machine))
        .where(Rental.renter_id == identity.user_id)
        .where(Rental.deleted_at.is_(None))
        .order_by(Rental.created_at.desc(), Rental.id)
    )
    return list(db.execute(stmt).scalars().all())


def get_owner_rentals(db: Session, identity: Identity) -> list[Rental]:
    stmt = (
        select(Rental)
        .join(Machine, Machine.id == Rental.machine_id)
        .options(selectinload(Rental.machine))
        .where(Machine.seller_id == identity.user_id)
        .where(Rental.deleted_at.is_(None))
        .order_by(Rental.created_at.desc(), Rental.id)
    )
    return list(db.execute(stmt).scalars().all())


def _transition_status(rental: Rental, target: str) -> None:
    current = rental.status
    if target == current:
        return
    if target not in RENTAL_STATUS_TRANSITIONS.get(current, set()):
        raise InvalidInputError(f"Invalid status transition: {current} -> {target}")
    rental.status = target
    rental.updated_at = datetime.now()


def update_rental_status(db: Session, identity: Identity, rental_id: str, new_status: str | None) -> Rental:
    target = (new_status or "").strip().lower()

    parsed_id = parse_uuid(rental_id)
    rental = None
    if parsed_id is not None:
        stmt = (
            select(Rental)
            .options(selectinload(Rental.machine))
            .where(Rental.id == parsed_id)
            .where(Rental.deleted_at.is_(None))
            .with_for_update(of=Rental)
        )
        rental = db.execute(stmt).scalars().first()
    if not rental or not rental.machine:
        db.rollback()
        raise NotFoundError("Rental not found")

    try:
        require_owner(rental.machine, identity, "You are not the owner of this machine")
        if target not in RENTAL_STATUSES:
            raise InvalidInputError(f"Unknown rental status: {new_status}")
        previous = rental.status
        _transition_status(rental, target)
    except (ForbiddenError, InvalidInputError):
        db.rollback()
        raise

    db.commit()
    db.refresh(rental)
    RENTAL_LOGGER.info(
        "Rental status changed rental_id=%s from=%s to=%s by=%s",
        rental.id,
        previous,
        rental.status,
        identity.user_id,
    )
    return rental


def serialize_rental(rental: Rental, include_machine: bool = True) -> dict:
    payload = {
        "id": str(rental.id),
        "machine_id": str(rental.machine_id),
        "renter_id": rental.renter_id,
        "start_date": rental.start_date,
        "end_date": rental.end_date,
        "total_amount": float(rental.total_amount or 0),
        "security_deposit": float(rental.security_deposit or 0),
        "platform_fee": float(rental.platform_fee or 0),
        "status": rental.status,
        "created_at": rental.created_at,
        "updated_at": rental.updated_at,
    }
    if include_machine:
        payload["machine"] = serialize_machine(rental.machine) if rental.machine else None
    return payload
