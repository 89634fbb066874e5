from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class BulkApproveRequest(BaseModel):
    time_entry_ids: List[str]


class ApprovalError(BaseModel):
    time_entry_id: str
    code: str
    message: str


class BulkApproveResponse(BaseModel):
    approved_count: int
    failed_count: int
    errors: List[ApprovalError]


class InvoiceFromEntriesRequest(BaseModel):
    job_id: int
    customer_id: str = Field(min_length=1, max_length=128)
    time_entry_ids: List[str]
    hourly_rate: Decimal
    due_date: date
    notes: Optional[str] = Field(default=None, max_length=2000)


class InvoiceFromEntriesResponse(BaseModel):
    invoice_id: str
    total_hours: float
    total_amount: float
    entries_locked: int


class InvoiceResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    invoice_id: str
    company_id: int
    job_id: int
    customer_id: str
    status: str
    currency: str
    hourly_rate_cents: int
    total_seconds: int
    total_hours: float
    total_amount_cents: int
    line_items: List[Dict[str, Any]]
    time_entry_ids: List[str]
    due_date: date
    notes: Optional[str]
    created_by: str
    created_at: datetime
    updated_at: datetime
