from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict


class AuditLogResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    company_id: int
    actor_id: str
    action: str
    target_type: str
    target_id: str
    before: Optional[Dict[str, Any]]
    after: Optional[Dict[str, Any]]
    reason: Optional[str]
    created_at: datetime
