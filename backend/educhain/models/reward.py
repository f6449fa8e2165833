"""Marketplace rewards and redemption vouchers"""
from datetime import datetime
from uuid import uuid4
from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey

from educhain.models.database import Base


class Reward(Base):
    """Reward a student can buy with E4C"""
    __tablename__ = "rewards"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    category = Column(String(100), nullable=True)
    cost = Column(Integer, nullable=False)
    available = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=datetime.utcnow)

    def __repr__(self):
        return f"<Reward {self.name} ({self.cost} E4C)>"


class RedeemVoucher(Base):
    """
    Proof of a confirmed redemption payment to escrow.

    `voucher_uuid` is the memo carried by the ledger transaction; the redemption
    desk scans it, so it is unique and never reused.
    """
    __tablename__ = "redeem_vouchers"

    id = Column(Integer, primary_key=True, autoincrement=True)
    student_id = Column(String(36), ForeignKey("students.id"), nullable=False, index=True)
    reward_id = Column(String(36), ForeignKey("rewards.id"), nullable=False, index=True)
    amount = Column(Integer, nullable=False)
    stellar_tx_hash = Column(String(64), nullable=False, unique=True)
    voucher_uuid = Column(String(28), nullable=False, unique=True)
    status = Column(String(20), nullable=False, default="completed")  # completed, claimed
    created_at = Column(DateTime, default=datetime.utcnow)

    def __repr__(self):
        return f"<RedeemVoucher {self.voucher_uuid} ({self.amount})>"
