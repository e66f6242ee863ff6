"""Audit event response schemas."""

from datetime import datetime
from typing import Optional, Dict, Any

from app.schemas.response import CamelModel


class AuditEventResponse(CamelModel):
    id: int
    user_id: Optional[int]
    email: Optional[str] = None
    action: str
    ip_address: Optional[str]
    user_agent: Optional[str] = None
    metadata: Dict[str, Any] = {}
    created_at: Optional[datetime]


class SweepResponse(CamelModel):
    success: bool = True
    deleted: int
