"""Fixtures that provision accounts on the fake ledger"""
import pytest_asyncio

from educhain.models import StudentTask, WalletRole
from educhain.services.provisioning import InstitutionAccounts, ParticipantWallet, ProvisioningService
from educhain.services.task_workflow import TaskWorkflowService


@pytest_asyncio.fixture
async def institution(db_session, ledger, admin) -> InstitutionAccounts:
    """Issuer and distributor with the initial supply minted"""
    return await ProvisioningService(db_session, ledger).create_accounts_and_emit(admin.id)


@pytest_asyncio.fixture
async def escrow(db_session, ledger, admin, institution):
    return await ProvisioningService(db_session, ledger).create_escrow_account(admin.id)


@pytest_asyncio.fixture
async def student_wallet(db_session, ledger, student, institution) -> ParticipantWallet:
    """Hardened student wallet linked to E4C"""
    return await ProvisioningService(db_session, ledger).create_participant_wallet(
        WalletRole.STUDENT, student.id
    )


@pytest_asyncio.fixture
async def approved_task(db_session, student, task) -> StudentTask:
    """Student task waiting for validator payout"""
    workflow = TaskWorkflowService(db_session)
    student_task = await workflow.assign(student.id, task.id)
    await workflow.complete(student_task.id)
    return await workflow.approve_by_teacher(student_task.id, grade=10)
