import uuid

from sqlalchemy import JSON, Column, Date, DateTime, ForeignKey, Integer, Numeric, String, Text, Uuid
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from machine_market.db.base import Base


MACHINE_STATUSES = ("pending_inspection", "listed", "verified", "sold", "rented")
LISTING_TYPES = ("sale", "rent", "both")
RENTAL_STATUSES = ("pending", "approved", "rejected", "active", "completed", "cancelled")


class Machine(Base):
    __tablename__ = "machines"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    seller_id = Column(Integer, nullable=False, index=True)
    title = Column(String(100), nullable=False)
    description = Column(Text, nullable=False, default="")
    manufacturer = Column(String(100), nullable=False, default="")
    model_number = Column(String(100), nullable=False, default="")
    year_of_manufacture = Column(Integer, nullable=False, default=0)

    category = Column(String(50), index=True)
    location = Column(String(100), index=True)

    status = Column(String(50), nullable=False, default="pending_inspection")
    listing_type = Column(String(50), nullable=False, index=True)

    price_for_sale = Column(Numeric(12, 2), nullable=False, default=0)
    rental_price_per_day = Column(Numeric(12, 2), nullable=False, default=0)
    rental_price_per_month = Column(Numeric(12, 2), nullable=False, default=0)
    security_deposit = Column(Numeric(12, 2), nullable=False, default=0)

    specs = Column(JSON)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now())
    deleted_at = Column(DateTime, index=True)

    rentals = relationship("Rental", back_populates="machine")
    inspection_reports = relationship("InspectionReport", back_populates="machine")
    maintenance_records = relationship("MaintenanceRecord", back_populates="machine")


class Rental(Base):
    __tablename__ = "rentals"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    machine_id = Column(Uuid, ForeignKey("machines.id"), nullable=False, index=True)
    renter_id = Column(Integer, nullable=False, index=True)

    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)

    total_amount = Column(Numeric(12, 2), nullable=False)
    security_deposit = Column(Numeric(12, 2), nullable=False, default=0)
    platform_fee = Column(Numeric(12, 4), nullable=False, default=0)

    status = Column(String(50), nullable=False, default="pending")

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now())
    deleted_at = Column(DateTime, index=True)

    machine = relationship("Machine", back_populates="rentals")


class InspectionReport(Base):
    __tablename__ = "inspection_reports"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    machine_id = Column(Uuid, ForeignKey("machines.id"), nullable=False, index=True)
    inspector_id = Column(Integer, nullable=False)
    report_type = Column(String(50), nullable=False, default="listing")

    inspection_date = Column(DateTime, nullable=False)
    verdict = Column(String(50))
    summary = Column(Text)
    report_data = Column(JSON)
    media_urls = Column(JSON)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now())
    deleted_at = Column(DateTime, index=True)

    machine = relationship("Machine", back_populates="inspection_reports")


class MaintenanceRecord(Base):
    __tablename__ = "maintenance_records"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    machine_id = Column(Uuid, ForeignKey("machines.id"), nullable=False, index=True)

    service_date = Column(Date, nullable=False)
    type = Column(String(50))
    description = Column(Text)
    cost = Column(Numeric(12, 2), nullable=False, default=0)
    technician = Column(String(100))
    document_url = Column(String(255))

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now())
    deleted_at = Column(DateTime, index=True)

    machine = relationship("Machine", back_populates="maintenance_records")
