"""Off-chain effects of confirmed settlements.

Both the request path and the reconciler apply payouts and redemptions through
these functions, so a replay produces exactly what the original request would
have recorded.
"""
from typing import Any, Tuple

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from educhain.models import RedeemVoucher
from educhain.services.balances import adjust_cached_balance
from educhain.services.errors import PostSettlementReconciliationRequired
from educhain.services.task_workflow import TaskWorkflowService

logger = structlog.get_logger()
operator_log = structlog.get_logger("educhain.operator")


async def apply_payout(db: AsyncSession, *, student_task_id: str, student_id: str, amount: int) -> int:
    """Advance the task to validator_approved and credit the student. Returns the new balance."""
    await TaskWorkflowService(db).mark_validator_approved(student_task_id)
    return await adjust_cached_balance(db, student_id, amount)


async def apply_redemption(
    db: AsyncSession,
    *,
    student_id: str,
    reward_id: str,
    amount: int,
    tx_hash: str,
    voucher_uuid: str,
) -> Tuple[RedeemVoucher, int]:
    """Debit the student and issue the voucher. Returns the voucher and the new balance."""
    new_balance = await adjust_cached_balance(db, student_id, -amount)
    voucher = RedeemVoucher(
        student_id=student_id,
        reward_id=reward_id,
        amount=amount,
        stellar_tx_hash=tx_hash,
        voucher_uuid=voucher_uuid,
        status="completed",
    )
    db.add(voucher)
    await db.flush()
    return voucher, new_balance


async def voucher_exists(db: AsyncSession, voucher_uuid: str) -> bool:
    result = await db.execute(
        select(RedeemVoucher.id).where(RedeemVoucher.voucher_uuid == voucher_uuid)
    )
    return result.scalar_one_or_none() is not None


def reconciliation_required(
    operation: str, tx_hash: str, error: BaseException, **context: Any
) -> PostSettlementReconciliationRequired:
    """
    Report money moved on-chain but not recorded off-chain.

    Goes to the operator channel at critical level in addition to the caller.
    """
    operator_log.critical(
        "Reconciliation required: ledger confirmed but off-chain update failed",
        operation=operation,
        tx_hash=tx_hash,
        error=str(error),
        **context,
    )
    return PostSettlementReconciliationRequired(
        f"{operation} confirmed on the ledger (tx {tx_hash}) but could not be recorded; "
        "it has been queued for reconciliation",
        tx_hash=tx_hash,
        extras={"operation": operation},
    )
