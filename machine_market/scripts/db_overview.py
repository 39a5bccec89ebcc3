#!/usr/bin/env python3
"""Schema bootstrap, overview and integrity checks for the machine marketplace store."""

from __future__ import annotations

import argparse
import os
import sys
from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable

from sqlalchemy import create_engine, func, inspect, select, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

from machine_market.db.base import Base
from machine_market.models.market_models import (
    LISTING_TYPES,
    RENTAL_STATUSES,
    InspectionReport,
    Machine,
    MaintenanceRecord,
    Rental,
)
from machine_market.services.rental_service import PLATFORM_FEE_RATE


EXPECTED_TABLES = [
    "machines",
    "rentals",
    "inspection_reports",
    "maintenance_records",
]

EXPECTED_COLUMNS: dict[str, list[str]] = {
    table.name: [column.name for column in table.columns]
    for table in (Machine.__table__, Rental.__table__, InspectionReport.__table__, MaintenanceRecord.__table__)
}


@dataclass
class CheckResult:
    name: str
    ok: bool
    detail: str


def _print_section(title: str) -> None:
    print(f"\n=== {title} ===")


def _get_engine(db_url: str) -> Engine:
    return create_engine(db_url, pool_pre_ping=True, future=True)


def _table_names(engine: Engine) -> set[str]:
    return set(inspect(engine).get_table_names())


def _column_names(engine: Engine, table_name: str) -> set[str]:
    return {str(column["name"]) for column in inspect(engine).get_columns(table_name)}


def run_existence_checks(engine: Engine) -> list[CheckResult]:
    present = _table_names(engine)
    return [
        CheckResult(f"table:{table}", table in present, "present" if table in present else "missing")
        for table in EXPECTED_TABLES
    ]


def run_column_checks(engine: Engine) -> list[CheckResult]:
    results: list[CheckResult] = []
    present = _table_names(engine)
    for table, expected in EXPECTED_COLUMNS.items():
        if table not in present:
            results.append(CheckResult(f"columns:{table}", False, "table missing"))
            continue
        actual = _column_names(engine, table)
        missing = [name for name in expected if name not in actual]
        results.append(
            CheckResult(
                f"columns:{table}",
                not missing,
                "ok" if not missing else f"missing={','.join(missing)}",
            )
        )
    return results


def run_integrity_checks(engine: Engine) -> list[CheckResult]:
    checks: list[CheckResult] = []
    present = _table_names(engine)
    if not {"machines", "rentals"} <= present:
        return checks

    with Session(engine) as db:
        orphan_rentals = db.execute(
            select(func.count(Rental.id))
            .select_from(Rental)
            .outerjoin(Machine, Machine.id == Rental.machine_id)
            .where(Machine.id.is_(None))
        ).scalar()
        checks.append(
            CheckResult("rentals:orphan_machine_id", int(orphan_rentals or 0) == 0, f"count={int(orphan_rentals or 0)}")
        )

        inverted = db.execute(select(func.count(Rental.id)).where(Rental.end_date < Rental.start_date)).scalar()
        checks.append(
            CheckResult("rentals:end_before_start", int(inverted or 0) == 0, f"count={int(inverted or 0)}")
        )

        unknown_status = db.execute(
            select(func.count(Rental.id)).where(Rental.status.not_in(RENTAL_STATUSES))
        ).scalar()
        checks.append(
            CheckResult("rentals:unknown_status", int(unknown_status or 0) == 0, f"count={int(unknown_status or 0)}")
        )

        fee_mismatch = 0
        for total_amount, platform_fee in db.execute(select(Rental.total_amount, Rental.platform_fee)).all():
            expected = Decimal(str(total_amount or 0)) * PLATFORM_FEE_RATE
            if abs(Decimal(str(platform_fee or 0)) - expected) > Decimal("0.0001"):
                fee_mismatch += 1
        checks.append(CheckResult("rentals:platform_fee_mismatch", fee_mismatch == 0, f"count={fee_mismatch}"))

        unknown_listing = db.execute(
            select(func.count(Machine.id)).where(Machine.listing_type.not_in(LISTING_TYPES))
        ).scalar()
        checks.append(
            CheckResult("machines:unknown_listing_type", int(unknown_listing or 0) == 0, f"count={int(unknown_listing or 0)}")
        )

    return checks


def _print_results(title: str, rows: Iterable[CheckResult]) -> None:
    _print_section(title)
    for row in rows:
        status = "OK" if row.ok else "FAIL"
        print(f"[{status}] {row.name} :: {row.detail}")


def _print_row_counts(engine: Engine) -> None:
    _print_section("Row Counts")
    present = _table_names(engine)
    with engine.connect() as conn:
        for table in EXPECTED_TABLES:
            if table not in present:
                print(f"{table}: missing")
                continue
            count = conn.execute(text(f"SELECT COUNT(*) FROM {table}")).scalar()
            print(f"{table}: {int(count or 0)}")


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Machine marketplace DB overview")
    parser.add_argument("--db-url", default=os.environ.get("MARKET_DB_URL", ""))
    parser.add_argument("--create-schema", action="store_true", help="create missing tables before checking")
    args = parser.parse_args(argv)

    db_url = (args.db_url or "").strip()
    if not db_url:
        print("MARKET_DB_URL is not set. Provide --db-url or export env first.")
        return 2

    try:
        engine = _get_engine(db_url)
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except Exception as exc:
        print(f"Could not connect to DB: {exc}")
        return 3

    if args.create_schema:
        Base.metadata.create_all(bind=engine)

    existence = run_existence_checks(engine)
    columns = run_column_checks(engine)
    integrity = run_integrity_checks(engine)
    _print_results("Table Existence", existence)
    _print_results("Column Checks", columns)
    _print_results("Integrity Checks", integrity)
    _print_row_counts(engine)
    return 0 if all(row.ok for row in [*existence, *columns, *integrity]) else 1


if __name__ == "__main__":
    sys.exit(main())
