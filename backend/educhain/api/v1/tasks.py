"""Student task workflow API endpoints"""
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from educhain.models import StudentTask, StudentTaskStatus
from educhain.models.database import get_db
from educhain.schemas.task import ApproveTaskRequest, AssignTaskRequest, StudentTaskResponse
from educhain.services.task_workflow import TaskWorkflowService

router = APIRouter()


@router.get("", response_model=List[StudentTaskResponse])
async def list_student_tasks(
    student_id: Optional[str] = Query(None, alias="studentId"),
    status: Optional[StudentTaskStatus] = None,
    db: AsyncSession = Depends(get_db),
):
    query = select(StudentTask)
    if student_id:
        query = query.where(StudentTask.student_id == student_id)
    if status:
        query = query.where(StudentTask.status == status)
    result = await db.execute(query.order_by(StudentTask.assigned_at.desc()))
    return result.scalars().all()


@router.post("", response_model=StudentTaskResponse)
async def assign_task(request: AssignTaskRequest, db: AsyncSession = Depends(get_db)):
    return await TaskWorkflowService(db).assign(request.student_id, request.task_id)


@router.get("/{student_task_id}", response_model=StudentTaskResponse)
async def get_student_task(student_task_id: str, db: AsyncSession = Depends(get_db)):
    return await TaskWorkflowService(db).get(student_task_id)


@router.post("/{student_task_id}/complete", response_model=StudentTaskResponse)
async def complete_task(student_task_id: str, db: AsyncSession = Depends(get_db)):
    return await TaskWorkflowService(db).complete(student_task_id)


@router.post("/{student_task_id}/teacher-approve", response_model=StudentTaskResponse)
async def teacher_approve(
    student_task_id: str,
    request: ApproveTaskRequest,
    db: AsyncSession = Depends(get_db),
):
    """Approve a completed task; the validator step happens through send-tokens"""
    return await TaskWorkflowService(db).approve_by_teacher(student_task_id, request.grade)


@router.post("/{student_task_id}/teacher-reject", response_model=StudentTaskResponse)
async def teacher_reject(student_task_id: str, db: AsyncSession = Depends(get_db)):
    return await TaskWorkflowService(db).reject_by_teacher(student_task_id)


@router.post("/{student_task_id}/validator-reject", response_model=StudentTaskResponse)
async def validator_reject(student_task_id: str, db: AsyncSession = Depends(get_db)):
    return await TaskWorkflowService(db).reject_by_validator(student_task_id)
