"""Cached E4C balance updates."""
import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from educhain.models import Student
from educhain.services.errors import RecordNotFound

logger = structlog.get_logger()


def supports_atomic_increment(db: AsyncSession) -> bool:
    """UPDATE ... RETURNING lets the database apply and report the increment in one statement"""
    return bool(getattr(db.get_bind().dialect, "update_returning", False))


async def adjust_cached_balance(db: AsyncSession, student_id: str, delta: int) -> int:
    """
    Add `delta` to a student's cached token balance and return the new value.

    Uses a single `SET tokens = tokens + delta` statement. Dialects without
    RETURNING fall back to read-then-write, which a concurrent settlement
    for the same student can race.
    """
    if supports_atomic_increment(db):
        result = await db.execute(
            update(Student)
            .where(Student.id == student_id)
            .values(tokens=Student.tokens + delta)
            .returning(Student.tokens)
            .execution_options(synchronize_session=False)
        )
        new_balance = result.scalar_one_or_none()
        if new_balance is None:
            raise RecordNotFound(f"Student {student_id} not found")
        return new_balance

    logger.warning("Atomic balance update unavailable, using read-then-write", student_id=student_id)
    result = await db.execute(select(Student.tokens).where(Student.id == student_id))
    current = result.scalar_one_or_none()
    if current is None:
        raise RecordNotFound(f"Student {student_id} not found")
    new_balance = (current or 0) + delta
    await db.execute(
        update(Student)
        .where(Student.id == student_id)
        .values(tokens=new_balance)
        .execution_options(synchronize_session=False)
    )
    return new_balance
