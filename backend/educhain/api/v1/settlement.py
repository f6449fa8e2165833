"""Payout and redemption API endpoints"""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from educhain.models.database import get_db
from educhain.schemas.settlement import (
    RedeemTokensRequest,
    RedeemTokensResponse,
    SendTokensRequest,
    SendTokensResponse,
)
from educhain.services.redemption import RedemptionService
from educhain.services.settlement import SettlementService
from educhain.services.stellar_client import StellarClient, get_stellar_client

router = APIRouter()


@router.post("/send-tokens", response_model=SendTokensResponse)
async def send_tokens(
    request: SendTokensRequest,
    db: AsyncSession = Depends(get_db),
    ledger: StellarClient = Depends(get_stellar_client),
):
    """Pay a student for a teacher-approved task and mark it validator_approved"""
    result = await SettlementService(db, ledger).send_tokens(
        request.student_id, request.amount, request.student_task_id
    )
    return SendTokensResponse(hash=result.tx_hash, balance=result.balance)


@router.post("/redeem-tokens", response_model=RedeemTokensResponse)
async def redeem_tokens(
    request: RedeemTokensRequest,
    db: AsyncSession = Depends(get_db),
    ledger: StellarClient = Depends(get_stellar_client),
):
    """Pay E4C into escrow for a reward and issue the voucher"""
    result = await RedemptionService(db, ledger).redeem_tokens(
        request.student_id,
        request.amount,
        request.reward_id,
        device_secret=request.device_secret_key,
    )
    return RedeemTokensResponse(
        hash=result.tx_hash,
        voucher_uuid=result.voucher_uuid,
        balance=result.balance,
    )
