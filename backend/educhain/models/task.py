"""Task assignment models"""
import enum
from datetime import datetime
from uuid import uuid4
from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, Enum as SQLEnum
from sqlalchemy.orm import relationship

from educhain.models.database import Base


class StudentTaskStatus(str, enum.Enum):
    """Progression of one task assignment. Payout is only possible from TEACHER_APPROVED."""
    ASSIGNED = "assigned"
    COMPLETED = "completed"
    TEACHER_APPROVED = "teacher_approved"
    REJECTED_BY_TEACHER = "rejected_by_teacher"
    VALIDATOR_APPROVED = "validator_approved"
    REJECTED_BY_VALIDATOR = "rejected_by_validator"


class Task(Base):
    """Task defined by a teacher"""
    __tablename__ = "tasks"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))
    title = Column(String(255), nullable=False)
    subject = Column(String(100), nullable=True)
    description = Column(Text, nullable=True)
    points = Column(Integer, nullable=False, default=0)
    teacher_id = Column(String(36), ForeignKey("teachers.id"), nullable=True, index=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    def __repr__(self):
        return f"<Task {self.title}>"


class StudentTask(Base):
    """One assignment of a task to a student"""
    __tablename__ = "student_tasks"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))
    student_id = Column(String(36), ForeignKey("students.id"), nullable=False, index=True)
    task_id = Column(String(36), ForeignKey("tasks.id"), nullable=False, index=True)
    status = Column(
        SQLEnum(StudentTaskStatus, name="student_task_status", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=StudentTaskStatus.ASSIGNED,
        index=True,
    )
    grade = Column(Integer, nullable=True)
    assigned_at = Column(DateTime, default=datetime.utcnow)
    completed_at = Column(DateTime, nullable=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    task = relationship("Task")

    def __repr__(self):
        return f"<StudentTask {self.id[:8]} ({self.status.value})>"
