from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ClockInRequest(BaseModel):
    job_id: int
    lat: float
    lng: float
    accuracy_m: Optional[float] = None
    client_event_id: str
    device_id: Optional[str] = Field(default=None, max_length=128)


class ClockOutRequest(BaseModel):
    time_entry_id: str
    lat: float
    lng: float
    accuracy_m: Optional[float] = None
    client_event_id: str
    device_id: Optional[str] = Field(default=None, max_length=128)


class ClockInResponse(BaseModel):
    time_entry_id: str
    replayed: bool = False


class ClockOutResponse(BaseModel):
    ok: bool
    time_entry_id: str
    warning: Optional[str] = None
    replayed: bool = False


class EditTimeEntryRequest(BaseModel):
    clock_in_at: Optional[datetime] = None
    clock_out_at: Optional[datetime] = None
    notes: Optional[str] = Field(default=None, max_length=2000)
    force: bool = False
    reason: Optional[str] = Field(default=None, max_length=500)


class EditTimeEntryResponse(BaseModel):
    ok: bool
    time_entry_id: str
    has_overlap: bool
    requires_reapproval: bool


class DisputeRequest(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=500)
    force: bool = False


class DisputeResponse(BaseModel):
    time_entry_id: str
    exception_tags: List[str]


class TimeEntryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    time_entry_id: str
    company_id: int
    employee_id: int
    job_id: int

    clock_in_at: datetime
    clock_out_at: Optional[datetime]

    clock_in_lat: float
    clock_in_lng: float
    clock_in_accuracy_m: Optional[float]
    clock_in_distance_m: float
    geo_ok_in: bool

    clock_out_lat: Optional[float]
    clock_out_lng: Optional[float]
    clock_out_accuracy_m: Optional[float]
    clock_out_distance_m: Optional[float]
    geo_ok_out: Optional[bool]

    radius_used_m: float

    approved: bool
    approved_by: Optional[str]
    approved_at: Optional[datetime]
    requires_reapproval: bool

    invoice_id: Optional[str]
    invoiced_at: Optional[datetime]

    exception_tags: List[str]
    geofence_violation_distance_m: Optional[float]
    auto_closed_reason: Optional[str]

    notes: Optional[str]
    created_at: datetime
    updated_at: datetime
