from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, JsonValue


class InspectionCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    machine_id: str
    report_type: str = Field(default="listing", max_length=50)
    verdict: Optional[str] = Field(default=None, max_length=50)
    summary: Optional[str] = None
    report_data: Dict[str, JsonValue] = {}
    media_urls: List[str] = []


class MaintenanceCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    machine_id: str
    service_date: Optional[str] = None
    type: Optional[str] = Field(default=None, max_length=50)
    description: Optional[str] = None
    cost: float = Field(default=0, ge=0)
    technician: Optional[str] = Field(default=None, max_length=100)
    document_url: Optional[str] = Field(default=None, max_length=255)
