"""Ledger event and reconciliation schemas"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from educhain.models import LedgerEventKind
from educhain.schemas.base import CamelModel


class LedgerEventResponse(CamelModel):
    id: int
    kind: LedgerEventKind
    tx_hash: Optional[str] = None
    source: Optional[str] = None
    destination: Optional[str] = None
    amount: Optional[int] = None
    student_id: Optional[str] = None
    reference_id: Optional[str] = None
    data: Optional[Dict[str, Any]] = None
    reconciled: bool
    reconciled_at: Optional[datetime] = None
    last_error: Optional[str] = None
    created_at: datetime


class ReconciliationReportResponse(CamelModel):
    examined: int
    applied: List[int]
    already_applied: List[int]
    failed: Dict[int, str]
