"""Payout of earned E4C from the distributor to a student."""
from dataclasses import dataclass

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from educhain.models import LedgerEventKind, Student, StudentTask, StudentTaskStatus, WalletRole
from educhain.services.custody import master_keypair, require_institutional_wallet
from educhain.services.errors import (
    InstitutionNotConfigured,
    InvalidTaskState,
    RecipientWalletMissing,
    RecordNotFound,
)
from educhain.services.ledger_events import LedgerEventLog
from educhain.services.serializer import task_locks
from educhain.services.settlement_effects import apply_payout, reconciliation_required
from educhain.services.stellar_client import StellarClient

logger = structlog.get_logger()


@dataclass
class PayoutResult:
    tx_hash: str
    student_task_id: str
    amount: int
    balance: int


class SettlementService:
    """
    Pays a student for a validated task.

    Order is strict: eligibility and wallet checks, ledger payment, then the
    off-chain status and balance update. Nothing off-chain changes unless the
    ledger confirmed the payment.
    """

    def __init__(self, db: AsyncSession, ledger: StellarClient):
        self.db = db
        self.ledger = ledger
        self.events = LedgerEventLog(db)

    async def send_tokens(self, student_id: str, amount: int, student_task_id: str) -> PayoutResult:
        async with task_locks.hold(f"student_task:{student_task_id}"):
            student_task = await self.db.get(StudentTask, student_task_id, populate_existing=True)
            if student_task is None or student_task.student_id != student_id:
                raise RecordNotFound(f"Student task {student_task_id} not found for student {student_id}")
            if student_task.status != StudentTaskStatus.TEACHER_APPROVED:
                raise InvalidTaskState(
                    f"Student task is '{student_task.status.value}'; payout requires 'teacher_approved'",
                    {"status": student_task.status.value},
                )

            student = await self.db.get(Student, student_id, populate_existing=True)
            if student is None:
                raise RecordNotFound(f"Student {student_id} not found")
            if not student.stellar_public_key:
                raise RecipientWalletMissing("The student does not have an active Stellar wallet")
            destination = student.stellar_public_key

            distributor = await require_institutional_wallet(
                self.db,
                WalletRole.DISTRIBUTOR,
                "Institutional infrastructure not configured (distributor missing)",
            )
            issuer = await require_institutional_wallet(
                self.db,
                WalletRole.ISSUER,
                "Institutional infrastructure not configured (issuer missing)",
            )
            if not distributor.secret_key:
                raise InstitutionNotConfigured("Distributor signing key is not on record")

            logger.info("Processing payout", student_id=student_id, amount=amount, student_task_id=student_task_id)
            tx_hash = await self.ledger.pay(
                distributor.public_key,
                [master_keypair(distributor)],
                destination,
                self.ledger.asset(issuer.public_key),
                amount,
            )

            balance = await self._record(
                tx_hash=tx_hash,
                source=distributor.public_key,
                destination=destination,
                student_id=student_id,
                student_task_id=student_task_id,
                amount=amount,
            )

        logger.info("Payout settled", student_id=student_id, tx_hash=tx_hash, balance=balance)
        return PayoutResult(tx_hash=tx_hash, student_task_id=student_task_id, amount=amount, balance=balance)

    async def _record(
        self,
        *,
        tx_hash: str,
        source: str,
        destination: str,
        student_id: str,
        student_task_id: str,
        amount: int,
    ) -> int:
        """Persist the confirmed payment, then apply its off-chain effects"""
        context = {"student_id": student_id, "student_task_id": student_task_id, "amount": amount}
        try:
            event = await self.events.record(
                LedgerEventKind.PAYOUT,
                tx_hash=tx_hash,
                source=source,
                destination=destination,
                amount=amount,
                student_id=student_id,
                reference_id=student_task_id,
                pending=True,
            )
        except Exception as e:
            await self.db.rollback()
            raise reconciliation_required("payout", tx_hash, e, event_logged=False, **context) from e
        event_id = event.id

        try:
            balance = await apply_payout(
                self.db, student_task_id=student_task_id, student_id=student_id, amount=amount
            )
            self.events.mark_reconciled(event)
            await self.db.commit()
        except Exception as e:
            await self.db.rollback()
            await self.events.mark_failed(event_id, str(e))
            raise reconciliation_required("payout", tx_hash, e, event_id=event_id, **context) from e
        return balance
