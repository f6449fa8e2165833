"""Ledger event log and reconciliation API endpoints"""
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from educhain.models import LedgerEventKind
from educhain.models.database import get_db
from educhain.schemas.ledger import LedgerEventResponse, ReconciliationReportResponse
from educhain.services.ledger_events import LedgerEventLog
from educhain.services.reconciliation import ReconciliationService

router = APIRouter()


@router.get("/ledger-events", response_model=List[LedgerEventResponse])
async def list_ledger_events(
    kind: Optional[LedgerEventKind] = None,
    reconciled: Optional[bool] = None,
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
):
    """List confirmed ledger transactions, newest first.

    `reconciled=false` shows settlements still waiting for their off-chain update.
    """
    return await LedgerEventLog(db).list_events(
        kind=kind, reconciled=reconciled, limit=limit, offset=offset
    )


@router.post("/reconciliation/replay", response_model=ReconciliationReportResponse)
async def replay_pending_settlements(
    limit: int = Query(100, ge=1, le=1000),
    db: AsyncSession = Depends(get_db),
):
    """Apply off-chain effects of confirmed payouts and redemptions that were never recorded"""
    report = await ReconciliationService(db).replay_pending(limit=limit)
    return ReconciliationReportResponse(
        examined=report.examined,
        applied=report.applied,
        already_applied=report.already_applied,
        failed=report.failed,
    )
