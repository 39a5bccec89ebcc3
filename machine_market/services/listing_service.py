"""Search, filter, sort and paginate the machine catalogue.

Every query parameter arrives as an optional string. ``ListingQuery`` holds the
parsed form, ``build_listing_statement`` turns it into a single filtered
SELECT, and ``search_listings`` counts, sorts and slices it into a page.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

from sqlalchemy import Select, func, or_, select
from sqlalchemy.orm import Session

from machine_market.models.market_models import Machine
from machine_market.services.machine_service import serialize_machine


DEFAULT_PAGE = 1
DEFAULT_LIMIT = 10
LISTING_TYPE_FILTERS = {
    "sale": ("sale", "both"),
    "rent": ("rent", "both"),
}
SORT_ORDERS = {
    "price_asc": (Machine.price_for_sale.asc(), Machine.created_at.desc()),
    "price_desc": (Machine.price_for_sale.desc(), Machine.created_at.desc()),
    "oldest": (Machine.created_at.asc(),),
    "newest": (Machine.created_at.desc(),),
}


def _clean(raw: str | None) -> str | None:
    if raw is None:
        return None
    value = str(raw).strip()
    return value or None


def _parse_positive_int(raw: str | None, default: int) -> int:
    value = _clean(raw)
    if value is None:
        return default
    try:
        parsed = int(value)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _parse_price(raw: str | None) -> float | None:
    value = _clean(raw)
    if value is None:
        return None
    try:
        parsed = float(value)
    except ValueError:
        return None
    if math.isnan(parsed) or math.isinf(parsed):
        return None
    return parsed


@dataclass(frozen=True)
class ListingQuery:
    q: str | None = None
    category: str | None = None
    manufacturer: str | None = None
    location: str | None = None
    listing_type: str | None = None
    min_price: float | None = None
    max_price: float | None = None
    sort: str = "newest"
    page: int = DEFAULT_PAGE
    limit: int = DEFAULT_LIMIT

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit

    @classmethod
    def from_params(
        cls,
        *,
        q: str | None = None,
        category: str | None = None,
        manufacturer: str | None = None,
        location: str | None = None,
        type: str | None = None,
        min_price: str | None = None,
        max_price: str | None = None,
        sort: str | None = None,
        page: str | None = None,
        limit: str | None = None,
    ) -> "ListingQuery":
        sort_key = _clean(sort)
        return cls(
            q=_clean(q),
            category=_clean(category),
            manufacturer=_clean(manufacturer),
            location=_clean(location),
            listing_type=_clean(type),
            min_price=_parse_price(min_price),
            max_price=_parse_price(max_price),
            sort=sort_key if sort_key in SORT_ORDERS else "newest",
            page=_parse_positive_int(page, DEFAULT_PAGE),
            limit=_parse_positive_int(limit, DEFAULT_LIMIT),
        )


def build_listing_statement(query: ListingQuery) -> Select:
    stmt = select(Machine).where(Machine.deleted_at.is_(None))

    if query.q:
        term = f"%{query.q}%"
        stmt = stmt.where(or_(Machine.title.ilike(term), Machine.description.ilike(term)))

    if query.category:
        stmt = stmt.where(Machine.category == query.category)
    if query.manufacturer:
        stmt = stmt.where(Machine.manufacturer == query.manufacturer)
    if query.location:
        stmt = stmt.where(Machine.location.ilike(f"%{query.location}%"))

    allowed_types = LISTING_TYPE_FILTERS.get(query.listing_type or "")
    if allowed_types:
        stmt = stmt.where(Machine.listing_type.in_(allowed_types))

    if query.min_price is not None:
        stmt = stmt.where(Machine.price_for_sale >= query.min_price)
    if query.max_price is not None:
        stmt = stmt.where(Machine.price_for_sale <= query.max_price)

    return stmt


def total_pages_for(total: int, limit: int) -> int:
    if total <= 0:
        return 0
    return math.ceil(total / limit)


def search_listings(db: Session, query: ListingQuery) -> dict:
    filtered = build_listing_statement(query)

    total = db.execute(select(func.count()).select_from(filtered.subquery())).scalar() or 0

    ordered = filtered.order_by(*SORT_ORDERS[query.sort], Machine.id)
    machines = db.execute(ordered.offset(query.offset).limit(query.limit)).scalars().all()

    return {
        "data": [serialize_machine(machine) for machine in machines],
        "total": int(total),
        "page": query.page,
        "limit": query.limit,
        "total_pages": total_pages_for(int(total), query.limit),
    }
