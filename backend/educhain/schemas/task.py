"""Student task workflow schemas"""
from datetime import datetime
from typing import Optional

from educhain.models import StudentTaskStatus
from educhain.schemas.base import CamelModel


class AssignTaskRequest(CamelModel):
    student_id: str
    task_id: str


class ApproveTaskRequest(CamelModel):
    grade: Optional[int] = None


class StudentTaskResponse(CamelModel):
    id: str
    student_id: str
    task_id: str
    status: StudentTaskStatus
    grade: Optional[int] = None
    assigned_at: datetime
    completed_at: Optional[datetime] = None
