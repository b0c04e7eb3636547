from pydantic import BaseModel
from typing import Dict, Optional
from datetime import datetime


class UsageSummaryResponse(BaseModel):
    plan: str
    window_start: datetime
    window_end: datetime
    limits: Optional[Dict[str, Optional[int]]] = None
    usage: Dict[str, int]
    remaining: Optional[Dict[str, Optional[int]]] = None
