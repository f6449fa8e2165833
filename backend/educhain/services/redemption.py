"""Redemption of E4C for marketplace rewards."""
from dataclasses import dataclass
from typing import Optional
from uuid import uuid4

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from educhain.models import LedgerEventKind, Reward, Student, WalletRole
from educhain.services.custody import (
    get_participant_wallet,
    require_institutional_wallet,
    resolve_escrow_public_key,
    wallet_signers,
)
from educhain.services.errors import InsufficientBalance, RecipientWalletMissing, RecordNotFound
from educhain.services.ledger_events import LedgerEventLog
from educhain.services.settlement_effects import apply_redemption, reconciliation_required
from educhain.services.stellar_client import StellarClient

logger = structlog.get_logger()

# Stellar text memos hold at most 28 bytes
VOUCHER_LENGTH = 28


def new_voucher_uuid() -> str:
    return uuid4().hex[:VOUCHER_LENGTH]


@dataclass
class RedemptionResult:
    tx_hash: str
    voucher_uuid: str
    amount: int
    balance: int


class RedemptionService:
    """
    Student pays escrow for a reward; the voucher memo is the dedup key.

    Every check that can fail runs before the ledger is touched.
    """

    def __init__(self, db: AsyncSession, ledger: StellarClient):
        self.db = db
        self.ledger = ledger
        self.events = LedgerEventLog(db)

    async def redeem_tokens(
        self,
        student_id: str,
        amount: int,
        reward_id: str,
        device_secret: Optional[str] = None,
    ) -> RedemptionResult:
        student = await self.db.get(Student, student_id, populate_existing=True)
        if student is None:
            raise RecordNotFound(f"Student {student_id} not found")
        if await self.db.get(Reward, reward_id) is None:
            raise RecordNotFound(f"Reward {reward_id} not found")
        if student.tokens < amount:
            raise InsufficientBalance(
                f"Requested {amount} E4C exceeds the available balance ({student.tokens} E4C)",
                {"balance": student.tokens},
            )

        wallet = await get_participant_wallet(self.db, WalletRole.STUDENT, student_id)
        if wallet is None:
            raise RecipientWalletMissing("Student wallet or its signing key was not found")
        signers = wallet_signers(wallet, device_secret)

        issuer = await require_institutional_wallet(
            self.db, WalletRole.ISSUER, "E4C issuer public key could not be found"
        )
        escrow = await resolve_escrow_public_key(self.db)

        voucher_uuid = new_voucher_uuid()
        logger.info("Starting redemption", student_id=student_id, amount=amount, reward_id=reward_id)
        tx_hash = await self.ledger.pay(
            wallet.public_key,
            signers,
            escrow,
            self.ledger.asset(issuer.public_key),
            amount,
            memo_text=voucher_uuid,
        )

        balance = await self._record(
            tx_hash=tx_hash,
            source=wallet.public_key,
            destination=escrow,
            student_id=student_id,
            reward_id=reward_id,
            amount=amount,
            voucher_uuid=voucher_uuid,
        )

        logger.info("Redemption settled", student_id=student_id, tx_hash=tx_hash, voucher_uuid=voucher_uuid)
        return RedemptionResult(tx_hash=tx_hash, voucher_uuid=voucher_uuid, amount=amount, balance=balance)

    async def _record(
        self,
        *,
        tx_hash: str,
        source: str,
        destination: str,
        student_id: str,
        reward_id: str,
        amount: int,
        voucher_uuid: str,
    ) -> int:
        context = {
            "student_id": student_id,
            "reward_id": reward_id,
            "amount": amount,
            "voucher_uuid": voucher_uuid,
        }
        try:
            event = await self.events.record(
                LedgerEventKind.REDEMPTION,
                tx_hash=tx_hash,
                source=source,
                destination=destination,
                amount=amount,
                student_id=student_id,
                reference_id=reward_id,
                data={"voucher_uuid": voucher_uuid},
                pending=True,
            )
        except Exception as e:
            await self.db.rollback()
            raise reconciliation_required("redemption", tx_hash, e, event_logged=False, **context) from e
        event_id = event.id

        try:
            _, balance = await apply_redemption(
                self.db,
                student_id=student_id,
                reward_id=reward_id,
                amount=amount,
                tx_hash=tx_hash,
                voucher_uuid=voucher_uuid,
            )
            self.events.mark_reconciled(event)
            await self.db.commit()
        except Exception as e:
            await self.db.rollback()
            await self.events.mark_failed(event_id, str(e))
            raise reconciliation_required("redemption", tx_hash, e, event_id=event_id, **context) from e
        return balance
