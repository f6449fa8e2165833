"""Append-only log of ledger-confirmed transactions."""
import enum
from datetime import datetime
from sqlalchemy import (
    Column, Integer, String, BigInteger, Boolean, DateTime, Text, JSON,
    Index, Enum as SQLEnum
)

from educhain.models.database import Base


class LedgerEventKind(str, enum.Enum):
    """Kinds of confirmed Stellar transactions."""
    ACCOUNT_FUNDED = "account_funded"
    TRUSTLINE = "trustline"
    MINT = "mint"
    PAYOUT = "payout"
    REDEMPTION = "redemption"
    WALLET_HARDENED = "wallet_hardened"


# Events whose off-chain effects are applied after confirmation and can be replayed
SETTLEMENT_KINDS = (LedgerEventKind.PAYOUT, LedgerEventKind.REDEMPTION)


class LedgerEvent(Base):
    """
    One confirmed ledger transaction.

    Written and committed as soon as Horizon confirms a submission, before any
    off-chain state is touched. Settlement events stay `reconciled = False`
    until their off-chain effects (task status, cached balance, voucher) are
    applied, so a reconciler can replay whatever the request path failed to record.
    """
    __tablename__ = "ledger_events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    kind = Column(
        SQLEnum(LedgerEventKind, name="ledger_event_kind", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        index=True,
    )
    tx_hash = Column(String(64), nullable=True, unique=True)  # None for faucet funding
    source = Column(String(56), nullable=True, index=True)
    destination = Column(String(56), nullable=True, index=True)
    amount = Column(BigInteger, nullable=True)

    # References into the off-chain store
    student_id = Column(String(36), nullable=True, index=True)
    reference_id = Column(String(36), nullable=True)  # student_task id, reward id, admin id...
    data = Column(JSON, nullable=True)

    reconciled = Column(Boolean, nullable=False, default=True)
    reconciled_at = Column(DateTime, nullable=True)
    last_error = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index("ix_ledger_events_kind_reconciled", "kind", "reconciled"),
    )

    def __repr__(self):
        return f"<LedgerEvent(id={self.id}, kind={self.kind}, tx={self.tx_hash})>"
