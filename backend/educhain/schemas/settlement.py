"""Payout and redemption schemas"""
from typing import Optional
from pydantic import PositiveInt

from educhain.schemas.base import CamelModel


class SendTokensRequest(CamelModel):
    student_id: str
    amount: PositiveInt
    student_task_id: str


class SendTokensResponse(CamelModel):
    hash: str
    balance: int


class RedeemTokensRequest(CamelModel):
    student_id: str
    amount: PositiveInt
    reward_id: str
    device_secret_key: Optional[str] = None


class RedeemTokensResponse(CamelModel):
    hash: str
    voucher_uuid: str
    balance: int
