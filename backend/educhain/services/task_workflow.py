"""Student task state machine."""
from datetime import datetime
from typing import Dict, FrozenSet, Optional

import structlog
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from educhain.models import Student, StudentTask, StudentTaskStatus, Task
from educhain.services.errors import InvalidTaskState, RecordNotFound

logger = structlog.get_logger()

S = StudentTaskStatus

ALLOWED_TRANSITIONS: Dict[StudentTaskStatus, FrozenSet[StudentTaskStatus]] = {
    S.ASSIGNED: frozenset({S.COMPLETED}),
    S.COMPLETED: frozenset({S.TEACHER_APPROVED, S.REJECTED_BY_TEACHER}),
    S.TEACHER_APPROVED: frozenset({S.VALIDATOR_APPROVED, S.REJECTED_BY_VALIDATOR}),
    S.REJECTED_BY_TEACHER: frozenset(),
    S.VALIDATOR_APPROVED: frozenset(),
    S.REJECTED_BY_VALIDATOR: frozenset(),
}


def can_transition(current: StudentTaskStatus, target: StudentTaskStatus) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, frozenset())


def ensure_transition(current: StudentTaskStatus, target: StudentTaskStatus) -> None:
    if not can_transition(current, target):
        raise InvalidTaskState(
            f"Cannot move student task from '{current.value}' to '{target.value}'",
            {"status": current.value, "target": target.value},
        )


def transition(student_task: StudentTask, target: StudentTaskStatus) -> StudentTaskStatus:
    """Move `student_task` to `target` in memory and return the previous status"""
    previous = student_task.status
    ensure_transition(previous, target)
    student_task.status = target
    return previous


class TaskWorkflowService:
    """
    Moves student tasks along assigned -> completed -> teacher_approved -> validator_approved.

    `validator_approved` is only reachable through a confirmed payout, see
    `mark_validator_approved`.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, student_task_id: str) -> StudentTask:
        task = await self.db.get(StudentTask, student_task_id, populate_existing=True)
        if task is None:
            raise RecordNotFound(f"Student task {student_task_id} not found")
        return task

    async def assign(self, student_id: str, task_id: str) -> StudentTask:
        if await self.db.get(Student, student_id) is None:
            raise RecordNotFound(f"Student {student_id} not found")
        if await self.db.get(Task, task_id) is None:
            raise RecordNotFound(f"Task {task_id} not found")

        student_task = StudentTask(student_id=student_id, task_id=task_id, status=S.ASSIGNED)
        self.db.add(student_task)
        await self.db.commit()
        logger.info("Task assigned", student_task_id=student_task.id, student_id=student_id)
        return student_task

    async def complete(self, student_task_id: str) -> StudentTask:
        return await self._move(student_task_id, S.COMPLETED, completed_at=datetime.utcnow())

    async def approve_by_teacher(self, student_task_id: str, grade: Optional[int] = None) -> StudentTask:
        return await self._move(student_task_id, S.TEACHER_APPROVED, grade=grade)

    async def reject_by_teacher(self, student_task_id: str) -> StudentTask:
        return await self._move(student_task_id, S.REJECTED_BY_TEACHER)

    async def reject_by_validator(self, student_task_id: str) -> StudentTask:
        return await self._move(student_task_id, S.REJECTED_BY_VALIDATOR)

    async def _move(self, student_task_id: str, target: StudentTaskStatus, **values) -> StudentTask:
        task = await self.get(student_task_id)
        previous = transition(task, target)
        for field, value in values.items():
            if value is not None:
                setattr(task, field, value)
        await self.db.commit()

        logger.info(
            "Student task transitioned",
            student_task_id=student_task_id,
            from_status=previous.value,
            to_status=target.value,
        )
        return task

    async def mark_validator_approved(self, student_task_id: str) -> None:
        """
        Guarded teacher_approved -> validator_approved update, not committed.

        The WHERE clause on the current status makes a second application a
        no-op that raises instead of advancing twice.
        """
        result = await self.db.execute(
            update(StudentTask)
            .where(
                StudentTask.id == student_task_id,
                StudentTask.status == S.TEACHER_APPROVED,
            )
            .values(status=S.VALIDATOR_APPROVED, updated_at=datetime.utcnow())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise InvalidTaskState(
                f"Student task {student_task_id} is no longer teacher_approved",
                {"target": S.VALIDATOR_APPROVED.value},
            )
