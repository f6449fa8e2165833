"""Pytest configuration and fixtures for EduChain backend tests"""
import os
from dataclasses import dataclass, field, replace
from typing import AsyncGenerator, Dict, List, Optional, Sequence, Tuple
from uuid import uuid4

import pytest
import pytest_asyncio
from dotenv import load_dotenv
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool
from stellar_sdk import Asset, Keypair

from educhain.config import get_settings
from educhain.main import app
from educhain.models import Admin, Base, Reward, Student, Task, Teacher, Validator, get_db
from educhain.services.errors import (
    LedgerActivationFailure,
    LedgerRejection,
    rejection_from_result_codes,
)
from educhain.services.stellar_client import get_stellar_client
from educhain.services.wallet_hardening import (
    HARDENED_THRESHOLDS,
    HardenedKeys,
    Thresholds,
    authorizes,
    generate_hardening_keys,
    hardened_signers,
)

# Load environment variables
load_dotenv()

settings = get_settings()

# In-memory SQLite by default; point TEST_DATABASE_URL at Postgres to run against it
TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL", "sqlite+aiosqlite:///:memory:")


@dataclass
class FakeAccount:
    signers: Dict[str, int]
    thresholds: Thresholds = Thresholds(low=0, medium=0, high=0)
    # asset key -> balance; a key is present once a trustline exists
    balances: Dict[Tuple[str, str], int] = field(default_factory=dict)


@dataclass
class Submission:
    source: str
    kind: str
    tx_hash: str
    destination: Optional[str] = None
    amount: Optional[int] = None
    memo_text: Optional[str] = None


class FakeLedger:
    """
    In-memory stand-in for StellarClient.

    Enforces what the services rely on the ledger for: accounts must exist,
    signatures must reach the medium threshold, the destination needs a
    trustline and the source needs funds. The issuer pays out without limit.
    """

    def __init__(self):
        self.accounts: Dict[str, FakeAccount] = {}
        self.submissions: List[Submission] = []
        self.funding_error: Optional[Exception] = None
        self.reject_next: Optional[LedgerRejection] = None

    def asset(self, issuer_public_key: str) -> Asset:
        return Asset(settings.asset_code, issuer_public_key)

    # Inspection helpers

    def balance(self, public_key: str, asset: Asset) -> Optional[int]:
        return self.accounts[public_key].balances.get((asset.code, asset.issuer))

    def has_trustline(self, public_key: str, asset: Asset) -> bool:
        return (asset.code, asset.issuer) in self.accounts[public_key].balances

    def credit(self, public_key: str, asset: Asset, amount: int) -> None:
        key = (asset.code, asset.issuer)
        account = self.accounts[public_key]
        account.balances[key] = account.balances.get(key, 0) + amount

    def submissions_of(self, kind: str) -> List[Submission]:
        return [s for s in self.submissions if s.kind == kind]

    # StellarClient interface

    async def get_account(self, public_key: str):
        account = self.accounts.get(public_key)
        return None if account is None else {"id": public_key}

    async def account_exists(self, public_key: str) -> bool:
        return public_key in self.accounts

    async def get_asset_balance(self, public_key: str, asset: Asset):
        account = self.accounts.get(public_key)
        if account is None:
            return None
        return account.balances.get((asset.code, asset.issuer))

    async def fund_account(self, public_key: str) -> None:
        if self.funding_error is not None:
            raise self.funding_error
        self.accounts[public_key] = FakeAccount(signers={public_key: 1})

    async def wait_for_account(self, public_key: str):
        if public_key not in self.accounts:
            raise LedgerActivationFailure(f"Account {public_key} not visible", {"public_key": public_key})
        return {"id": public_key}

    async def change_trust(self, source: str, signers: Sequence[Keypair], asset: Asset, limit=None) -> str:
        account = self._authorize(source, signers, "medium")
        account.balances.setdefault((asset.code, asset.issuer), 0)
        return self._confirm(Submission(source=source, kind="change_trust", tx_hash=""))

    async def pay(
        self,
        source: str,
        signers: Sequence[Keypair],
        destination: str,
        asset: Asset,
        amount: int,
        memo_text: Optional[str] = None,
    ) -> str:
        account = self._authorize(source, signers, "medium")
        key = (asset.code, asset.issuer)
        target = self.accounts.get(destination)
        if target is None:
            raise rejection_from_result_codes(
                "Ledger rejected transaction", {"transaction": "tx_failed", "operations": ["op_no_destination"]}
            )
        if key not in target.balances:
            raise rejection_from_result_codes(
                "Ledger rejected transaction", {"transaction": "tx_failed", "operations": ["op_no_trust"]}
            )
        if source != asset.issuer:
            if key not in account.balances:
                raise rejection_from_result_codes(
                    "Ledger rejected transaction", {"transaction": "tx_failed", "operations": ["op_src_no_trust"]}
                )
            if account.balances[key] < amount:
                raise rejection_from_result_codes(
                    "Ledger rejected transaction", {"transaction": "tx_failed", "operations": ["op_underfunded"]}
                )
            account.balances[key] -= amount
        target.balances[key] += amount
        return self._confirm(
            Submission(
                source=source,
                kind="payment",
                tx_hash="",
                destination=destination,
                amount=amount,
                memo_text=memo_text,
            )
        )

    async def harden_wallet(self, master: Keypair) -> HardenedKeys:
        account = self._authorize(master.public_key, [master], "high")
        keys = generate_hardening_keys()
        account.signers = hardened_signers(master.public_key, keys)
        account.thresholds = HARDENED_THRESHOLDS
        tx_hash = self._confirm(Submission(source=master.public_key, kind="set_options", tx_hash=""))
        return replace(keys, tx_hash=tx_hash)

    def _authorize(self, source: str, signers: Sequence[Keypair], level: str) -> FakeAccount:
        if self.reject_next is not None:
            rejection, self.reject_next = self.reject_next, None
            raise rejection
        account = self.accounts.get(source)
        if account is None:
            raise LedgerActivationFailure(f"Source account {source} does not exist on the ledger")
        threshold = getattr(account.thresholds, level)
        if not authorizes(account.signers, threshold, [k.public_key for k in signers]):
            raise LedgerRejection("Ledger rejected transaction", {"transaction": "tx_bad_auth"})
        return account

    def _confirm(self, submission: Submission) -> str:
        submission.tx_hash = uuid4().hex + uuid4().hex
        self.submissions.append(submission)
        return submission.tx_hash


def _engine():
    if TEST_DATABASE_URL.startswith("sqlite"):
        return create_async_engine(
            TEST_DATABASE_URL,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    return create_async_engine(TEST_DATABASE_URL)


@pytest_asyncio.fixture(scope="function")
async def session_factory() -> AsyncGenerator[async_sessionmaker, None]:
    """Fresh schema for every test"""
    engine = _engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Database session for one test"""
    session = session_factory()
    try:
        yield session
    finally:
        await session.close()


@pytest.fixture
def ledger() -> FakeLedger:
    return FakeLedger()


@pytest_asyncio.fixture(scope="function")
async def client(db_session: AsyncSession, ledger: FakeLedger) -> AsyncGenerator[AsyncClient, None]:
    """Create an async test client backed by the test session and the fake ledger"""

    async def override_get_db():
        yield db_session

    async def override_get_stellar_client():
        return ledger

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_stellar_client] = override_get_stellar_client

    async with AsyncClient(
        transport=ASGITransport(app=app, raise_app_exceptions=False),
        base_url="http://test"
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def admin(db_session: AsyncSession) -> Admin:
    admin = Admin(name="Ada Admin", email="admin@school.test")
    db_session.add(admin)
    await db_session.commit()
    return admin


@pytest_asyncio.fixture
async def student(db_session: AsyncSession) -> Student:
    student = Student(name="Sam Student", email="sam@school.test", tokens=0)
    db_session.add(student)
    await db_session.commit()
    return student


@pytest_asyncio.fixture
async def teacher(db_session: AsyncSession) -> Teacher:
    teacher = Teacher(name="Tess Teacher", email="tess@school.test")
    db_session.add(teacher)
    await db_session.commit()
    return teacher


@pytest_asyncio.fixture
async def validator(db_session: AsyncSession) -> Validator:
    validator = Validator(name="Val Validator", email="val@school.test")
    db_session.add(validator)
    await db_session.commit()
    return validator


@pytest_asyncio.fixture
async def task(db_session: AsyncSession, teacher: Teacher) -> Task:
    task = Task(title="Plant a tree", description="Plant and photograph a tree", teacher_id=teacher.id, points=15)
    db_session.add(task)
    await db_session.commit()
    return task


@pytest_asyncio.fixture
async def reward(db_session: AsyncSession) -> Reward:
    reward = Reward(name="Cafeteria voucher", category="food", cost=30, available=10)
    db_session.add(reward)
    await db_session.commit()
    return reward
