"""Replay of confirmed settlements whose off-chain effects were never recorded."""
import asyncio
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from educhain.models import LedgerEventKind, StudentTask, StudentTaskStatus
from educhain.models.database import async_session_factory
from educhain.services.ledger_events import LedgerEventLog
from educhain.services.settlement_effects import apply_payout, apply_redemption, voucher_exists

logger = structlog.get_logger()
operator_log = structlog.get_logger("educhain.operator")


@dataclass
class ReconciliationReport:
    examined: int = 0
    applied: List[int] = field(default_factory=list)
    already_applied: List[int] = field(default_factory=list)
    failed: Dict[int, str] = field(default_factory=dict)


@dataclass(frozen=True)
class _PendingEvent:
    """Plain copy of a pending event, safe to use across rollbacks"""

    id: int
    kind: LedgerEventKind
    tx_hash: Optional[str]
    amount: int
    student_id: Optional[str]
    reference_id: Optional[str]
    data: Dict[str, Any]


class ReconciliationService:
    """
    Applies pending payout and redemption events from the ledger event log.

    Replay is idempotent: a payout whose task is already validator_approved, or
    a redemption whose voucher already exists, is only marked reconciled.
    """

    def __init__(self, db: AsyncSession):
        self.db = db
        self.events = LedgerEventLog(db)

    async def replay_pending(self, limit: int = 100) -> ReconciliationReport:
        report = ReconciliationReport()
        pending = [
            _PendingEvent(
                id=event.id,
                kind=event.kind,
                tx_hash=event.tx_hash,
                amount=event.amount or 0,
                student_id=event.student_id,
                reference_id=event.reference_id,
                data=dict(event.data or {}),
            )
            for event in await self.events.pending(limit=limit)
        ]
        report.examined = len(pending)

        for event in pending:
            try:
                applied = await self._replay(event)
                await self.events.mark_reconciled_by_id(event.id)
                await self.db.commit()
            except Exception as e:
                await self.db.rollback()
                await self.events.mark_failed(event.id, str(e))
                report.failed[event.id] = str(e)
                operator_log.error(
                    "Reconciliation replay failed",
                    event_id=event.id,
                    kind=event.kind.value,
                    tx_hash=event.tx_hash,
                    error=str(e),
                )
                continue

            if applied:
                report.applied.append(event.id)
            else:
                report.already_applied.append(event.id)

        if report.examined:
            logger.info(
                "Reconciliation pass finished",
                examined=report.examined,
                applied=len(report.applied),
                already_applied=len(report.already_applied),
                failed=len(report.failed),
            )
        return report

    async def _replay(self, event: _PendingEvent) -> bool:
        """Apply one event. Returns False when its effects were already present."""
        if event.kind == LedgerEventKind.PAYOUT:
            return await self._replay_payout(event)
        if event.kind == LedgerEventKind.REDEMPTION:
            return await self._replay_redemption(event)
        raise ValueError(f"{event.kind.value} events have no off-chain effects to replay")

    async def _replay_payout(self, event: _PendingEvent) -> bool:
        student_task = await self.db.get(StudentTask, event.reference_id, populate_existing=True)
        if student_task is None:
            raise ValueError(f"Student task {event.reference_id} no longer exists")
        if student_task.status == StudentTaskStatus.VALIDATOR_APPROVED:
            return False
        if student_task.status != StudentTaskStatus.TEACHER_APPROVED:
            raise ValueError(
                f"Student task {event.reference_id} is '{student_task.status.value}'; "
                "payout cannot be applied automatically"
            )

        await apply_payout(
            self.db,
            student_task_id=event.reference_id,
            student_id=event.student_id,
            amount=event.amount,
        )
        return True

    async def _replay_redemption(self, event: _PendingEvent) -> bool:
        voucher_uuid = event.data.get("voucher_uuid")
        if not voucher_uuid:
            raise ValueError("Redemption event has no voucher_uuid")
        if await voucher_exists(self.db, voucher_uuid):
            return False

        await apply_redemption(
            self.db,
            student_id=event.student_id,
            reward_id=event.reference_id,
            amount=event.amount,
            tx_hash=event.tx_hash,
            voucher_uuid=voucher_uuid,
        )
        return True


class ReconciliationScheduler:
    """
    Background task that periodically replays pending settlements.

    Each pass opens its own session so a failing pass never poisons the next one.
    """

    def __init__(self, interval_seconds: int = 300, batch_size: int = 100):
        self.interval_seconds = interval_seconds
        self.batch_size = batch_size
        self._running = False
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._running

    async def start(self):
        if self._running:
            logger.warning("Reconciliation scheduler already running")
            return

        self._running = True
        self._task = asyncio.create_task(self._run_loop())
        logger.info("Reconciliation scheduler started", interval_seconds=self.interval_seconds)

    async def stop(self):
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Reconciliation scheduler stopped")

    async def _run_loop(self):
        while self._running:
            try:
                await self.run_once()
            except Exception as e:
                logger.error("Error in reconciliation scheduler", error=str(e))

            await asyncio.sleep(self.interval_seconds)

    async def run_once(self) -> ReconciliationReport:
        async with async_session_factory() as db:
            return await ReconciliationService(db).replay_pending(limit=self.batch_size)


# Global scheduler instance
_scheduler: Optional[ReconciliationScheduler] = None


def get_reconciliation_scheduler(interval_seconds: int = 300) -> ReconciliationScheduler:
    global _scheduler
    if _scheduler is None:
        _scheduler = ReconciliationScheduler(interval_seconds=interval_seconds)
    return _scheduler


async def start_reconciliation_scheduler(interval_seconds: int = 300):
    scheduler = get_reconciliation_scheduler(interval_seconds)
    await scheduler.start()


async def stop_reconciliation_scheduler():
    global _scheduler
    if _scheduler is not None:
        await _scheduler.stop()
        _scheduler = None
