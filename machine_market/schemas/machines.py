from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, JsonValue, field_validator


MachineStatus = Literal["pending_inspection", "listed", "verified", "sold", "rented"]
ListingType = Literal["sale", "rent", "both"]


class MachineCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    title: str = Field(min_length=1, max_length=100)
    description: str = ""
    manufacturer: str = Field(default="", max_length=100)
    model_number: str = Field(default="", max_length=100)
    year_of_manufacture: int = 0
    category: Optional[str] = Field(default=None, max_length=50)
    location: Optional[str] = Field(default=None, max_length=100)
    status: Optional[MachineStatus] = None
    listing_type: ListingType
    price_for_sale: float = Field(default=0, ge=0)
    rental_price_per_day: float = Field(default=0, ge=0)
    rental_price_per_month: float = Field(default=0, ge=0)
    security_deposit: float = Field(default=0, ge=0)
    specs: JsonValue = None


class MachineUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    title: Optional[str] = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = None
    category: Optional[str] = Field(default=None, max_length=50)
    location: Optional[str] = Field(default=None, max_length=100)
    price_for_sale: Optional[float] = Field(default=None, ge=0)
    rental_price_per_day: Optional[float] = Field(default=None, ge=0)
    rental_price_per_month: Optional[float] = Field(default=None, ge=0)
    security_deposit: Optional[float] = Field(default=None, ge=0)
    specs: JsonValue = None
    status: Optional[MachineStatus] = None
    listing_type: Optional[ListingType] = None

    @field_validator(
        "title",
        "description",
        "price_for_sale",
        "rental_price_per_day",
        "rental_price_per_month",
        "security_deposit",
        "status",
        "listing_type",
    )
    @classmethod
    def _reject_null(cls, value):
        if value is None:
            raise ValueError("must not be null")
        return value
