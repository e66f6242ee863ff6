"""Admin routes - audit trail and refresh token maintenance"""

import json
from typing import List, Optional

from fastapi import APIRouter, Depends, status

from app.api.deps import (
    get_audit_service,
    get_client_context,
    get_current_admin_user,
    get_refresh_token_ledger,
)
from app.core.metrics import SWEPT_TOKENS
from app.models.user import User
from app.schemas.audit import AuditEventResponse, SweepResponse
from app.services import audit_service as audit_actions
from app.services.audit_service import AuditService, ClientContext
from app.services.refresh_token_ledger import RefreshTokenLedger

router = APIRouter()


@router.get("/audit-events", response_model=List[AuditEventResponse])
def get_audit_events(
    limit: int = 100,
    action: Optional[str] = None,
    current_user: User = Depends(get_current_admin_user),
    audit: AuditService = Depends(get_audit_service),
):
    """List recent audit trail entries."""
    rows = []
    for ev in audit.recent(limit=limit, action=action):
        metadata = {}
        if ev.metadata_json:
            try:
                metadata = json.loads(ev.metadata_json)
            except json.JSONDecodeError:
                metadata = {"raw": ev.metadata_json}
        rows.append(
            AuditEventResponse(
                id=ev.id,
                user_id=ev.user_id,
                email=ev.user.email if ev.user else None,
                action=ev.action,
                ip_address=ev.ip_address,
                user_agent=ev.user_agent,
                metadata=metadata,
                created_at=ev.created_at,
            )
        )
    return rows


@router.post("/tokens/sweep", response_model=SweepResponse, status_code=status.HTTP_200_OK)
def sweep_refresh_tokens(
    current_user: User = Depends(get_current_admin_user),
    client: ClientContext = Depends(get_client_context),
    ledger: RefreshTokenLedger = Depends(get_refresh_token_ledger),
    audit: AuditService = Depends(get_audit_service),
):
    """Delete expired and revoked refresh tokens now instead of waiting for the sweeper."""
    deleted = ledger.sweep_expired()
    SWEPT_TOKENS.inc(deleted)
    audit.log_event(
        audit_actions.TOKENS_SWEPT,
        user_id=current_user.id,
        client=client,
        metadata={"deleted": deleted},
    )
    return SweepResponse(deleted=deleted)
