from typing import Any, Dict, List

from pydantic import BaseModel


class SweepRequest(BaseModel):
    dry_run: bool = False


class SweepResponse(BaseModel):
    processed_count: int
    entries: List[Dict[str, Any]]
    dry_run: bool
