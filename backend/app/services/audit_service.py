"""Audit service for security-relevant account events."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from app.models.audit import AuditEvent

LOGIN = "auth.login"
LOGOUT = "auth.logout"
LOGOUT_ALL = "auth.logout_all"
EMAIL_VERIFIED = "account.email_verified"
PASSWORD_RESET = "account.password_reset"
PASSWORD_CHANGED = "account.password_changed"
TOKENS_SWEPT = "admin.tokens_swept"


@dataclass(frozen=True)
class ClientContext:
    """Request metadata kept for audit only; never part of an auth decision."""

    ip_address: Optional[str] = None
    user_agent: Optional[str] = None


class AuditService:
    """Persist immutable audit trail entries."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def log_event(
        self,
        action: str,
        *,
        user_id: Optional[int] = None,
        client: Optional[ClientContext] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> AuditEvent:
        client = client or ClientContext()
        event = AuditEvent(
            user_id=user_id,
            action=action,
            ip_address=client.ip_address,
            user_agent=client.user_agent[:512] if client.user_agent else None,
            metadata_json=json.dumps(metadata or {}, ensure_ascii=False),
        )
        self.db.add(event)
        self.db.commit()
        self.db.refresh(event)
        return event

    def recent(self, *, limit: int = 100, action: Optional[str] = None) -> List[AuditEvent]:
        query = self.db.query(AuditEvent).order_by(AuditEvent.created_at.desc(), AuditEvent.id.desc())
        if action:
            query = query.filter(AuditEvent.action == action)
        return query.limit(max(1, min(limit, 500))).all()
