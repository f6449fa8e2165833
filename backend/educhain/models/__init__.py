"""Database models"""
from educhain.models.database import Base, get_db
from educhain.models.wallet import StellarWallet, WalletRole, INSTITUTIONAL_ROLES, PARTICIPANT_ROLES
from educhain.models.participant import Admin, Student, Teacher, Validator
from educhain.models.task import Task, StudentTask, StudentTaskStatus
from educhain.models.reward import Reward, RedeemVoucher

# Confirmed ledger transactions
from educhain.models.ledger_event import LedgerEvent, LedgerEventKind, SETTLEMENT_KINDS

__all__ = [
    "Base",
    "get_db",
    "StellarWallet",
    "WalletRole",
    "INSTITUTIONAL_ROLES",
    "PARTICIPANT_ROLES",
    "Admin",
    "Student",
    "Teacher",
    "Validator",
    "Task",
    "StudentTask",
    "StudentTaskStatus",
    "Reward",
    "RedeemVoucher",
    # Ledger event log
    "LedgerEvent",
    "LedgerEventKind",
    "SETTLEMENT_KINDS",
]
