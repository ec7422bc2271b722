"""Audit query, verification and export routes."""

from __future__ import annotations

import io
import itertools
from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, Query, Response
from pydantic import BaseModel

from govgate.api.deps import get_gateway
from govgate.audit.models import AuditEventType, AuditFilter
from govgate.core.reasons import Verdict
from govgate.gateway import GovernanceGateway

router = APIRouter()


class AuditRecordItem(BaseModel):
    sequence_no: int
    timestamp: str
    action_id: str | None
    verdict: str | None
    reason: str
    actor: str | None
    event_type: str
    details: dict[str, Any]
    prior_hash: str
    record_hash: str


class VerifyResponse(BaseModel):
    valid: bool
    checked: int
    first_divergence: int | None
    reason: str | None


@router.get("/audit", response_model=list[AuditRecordItem])
def query_audit(
    action_id: str | None = Query(default=None),
    verdict: Verdict | None = Query(default=None),
    actor: str | None = Query(default=None),
    event_type: AuditEventType | None = Query(default=None),
    since: datetime | None = Query(default=None),
    until: datetime | None = Query(default=None),
    limit: int = Query(default=100, ge=1, le=1000),
    gateway: GovernanceGateway = Depends(get_gateway),  # noqa: B008
) -> list[AuditRecordItem]:
    audit_filter = AuditFilter(
        action_id=action_id,
        verdict=verdict,
        actor=actor,
        event_type=event_type,
        since=since,
        until=until,
    )
    records = itertools.islice(gateway.audit.query(audit_filter), limit)
    return [AuditRecordItem(**r.to_dict()) for r in records]


@router.get("/audit/verify", response_model=VerifyResponse)
def verify_audit(
    start: int = Query(default=0, ge=0),
    end: int | None = Query(default=None, ge=0),
    gateway: GovernanceGateway = Depends(get_gateway),  # noqa: B008
) -> VerifyResponse:
    result = gateway.audit.verify(start, end)
    return VerifyResponse(
        valid=result.valid,
        checked=result.checked,
        first_divergence=result.first_divergence,
        reason=result.reason,
    )


@router.get("/audit/export")
def export_audit(
    start: int = Query(default=0, ge=0),
    end: int | None = Query(default=None, ge=0),
    gateway: GovernanceGateway = Depends(get_gateway),  # noqa: B008
) -> Response:
    """Line-delimited JSON records, verifiable without this service."""
    buffer = io.StringIO()
    gateway.audit.export(buffer, start, end)
    return Response(content=buffer.getvalue(), media_type="application/x-ndjson")
