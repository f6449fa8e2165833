"""Recording and querying confirmed ledger transactions."""
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

import structlog
from sqlalchemy import select, update, func
from sqlalchemy.ext.asyncio import AsyncSession

from educhain.models.ledger_event import LedgerEvent, LedgerEventKind, SETTLEMENT_KINDS

logger = structlog.get_logger()


class LedgerEventLog:
    """Append-only log of what the ledger has confirmed."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def record(
        self,
        kind: LedgerEventKind,
        tx_hash: Optional[str] = None,
        source: Optional[str] = None,
        destination: Optional[str] = None,
        amount: Optional[int] = None,
        student_id: Optional[str] = None,
        reference_id: Optional[str] = None,
        data: Optional[Dict[str, Any]] = None,
        pending: bool = False,
    ) -> LedgerEvent:
        """
        Record a confirmed transaction and commit it immediately.

        Args:
            kind: What the transaction did
            tx_hash: Ledger transaction hash (None for faucet funding)
            source: Paying or signing account
            destination: Receiving account
            amount: Units of the asset moved
            student_id: Student whose off-chain state the event concerns
            reference_id: Related student task, reward or admin id
            data: Extra fields needed to replay the event
            pending: True when off-chain effects still have to be applied

        Returns:
            The committed LedgerEvent
        """
        event = LedgerEvent(
            kind=kind,
            tx_hash=tx_hash,
            source=source,
            destination=destination,
            amount=amount,
            student_id=student_id,
            reference_id=reference_id,
            data=data,
            reconciled=not pending,
            reconciled_at=None if pending else datetime.utcnow(),
        )
        self.db.add(event)
        await self.db.commit()

        logger.info(
            "Recorded ledger event",
            event_id=event.id,
            kind=kind.value,
            tx_hash=tx_hash,
            pending=pending,
        )
        return event

    def mark_reconciled(self, event: LedgerEvent) -> None:
        """Flag an event as applied; committed together with its off-chain effects"""
        event.reconciled = True
        event.reconciled_at = datetime.utcnow()
        event.last_error = None

    async def mark_reconciled_by_id(self, event_id: int) -> None:
        """Same as mark_reconciled for callers holding only the id; not committed"""
        await self.db.execute(
            update(LedgerEvent)
            .where(LedgerEvent.id == event_id)
            .values(reconciled=True, reconciled_at=datetime.utcnow(), last_error=None)
            .execution_options(synchronize_session=False)
        )

    async def mark_failed(self, event_id: int, error: str) -> None:
        """Store why applying an event failed. Call after rolling back."""
        try:
            await self.db.execute(
                update(LedgerEvent)
                .where(LedgerEvent.id == event_id)
                .values(last_error=error[:2000])
                .execution_options(synchronize_session=False)
            )
            await self.db.commit()
        except Exception as e:
            await self.db.rollback()
            logger.error("Failed to store ledger event error", event_id=event_id, error=str(e))

    async def pending(
        self,
        kinds: Sequence[LedgerEventKind] = SETTLEMENT_KINDS,
        limit: int = 100,
    ) -> List[LedgerEvent]:
        """Confirmed events whose off-chain effects are not recorded yet, oldest first"""
        result = await self.db.execute(
            select(LedgerEvent)
            .where(LedgerEvent.reconciled.is_(False), LedgerEvent.kind.in_(kinds))
            .order_by(LedgerEvent.id)
            .limit(limit)
        )
        return list(result.scalars().all())

    async def list_events(
        self,
        kind: Optional[LedgerEventKind] = None,
        reconciled: Optional[bool] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[LedgerEvent]:
        query = select(LedgerEvent)
        if kind is not None:
            query = query.where(LedgerEvent.kind == kind)
        if reconciled is not None:
            query = query.where(LedgerEvent.reconciled.is_(reconciled))
        query = query.order_by(LedgerEvent.id.desc()).limit(limit).offset(offset)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def has_event(self, kind: LedgerEventKind, destination: str) -> bool:
        result = await self.db.execute(
            select(LedgerEvent.id)
            .where(LedgerEvent.kind == kind, LedgerEvent.destination == destination)
            .limit(1)
        )
        return result.scalar_one_or_none() is not None

    async def total_minted(self) -> int:
        """Cumulative units paid out by the issuer"""
        result = await self.db.execute(
            select(func.coalesce(func.sum(LedgerEvent.amount), 0)).where(
                LedgerEvent.kind == LedgerEventKind.MINT
            )
        )
        return int(result.scalar_one())
