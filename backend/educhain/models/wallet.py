"""Stellar wallet custody records"""
import enum
from datetime import datetime
from sqlalchemy import Column, Integer, String, Boolean, DateTime, Index, UniqueConstraint, text, Enum as SQLEnum

from educhain.models.database import Base


class WalletRole(str, enum.Enum):
    """Role of a Stellar account in the E4C system."""
    ISSUER = "issuer"
    DISTRIBUTOR = "distributor"
    ESCROW = "escrow"
    STUDENT = "student"
    TEACHER = "teacher"
    VALIDATOR = "validator"


INSTITUTIONAL_ROLES = (WalletRole.ISSUER, WalletRole.DISTRIBUTOR, WalletRole.ESCROW)
PARTICIPANT_ROLES = (WalletRole.STUDENT, WalletRole.TEACHER, WalletRole.VALIDATOR)

_institutional_role_clause = text("role IN ('issuer', 'distributor', 'escrow')")


class StellarWallet(Base):
    """
    Key material for one Stellar account.

    Institutional wallets (issuer, distributor, escrow) are singletons enforced by
    a partial unique index. Participant wallets are keyed by (role, owner_id).
    Hardened wallets keep the demoted master secret plus the institutional
    co-signer secret; the device secret is never stored, only its public key.
    """
    __tablename__ = "stellar_wallets"

    id = Column(Integer, primary_key=True, autoincrement=True)
    role = Column(
        SQLEnum(WalletRole, name="wallet_role", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        index=True,
    )
    public_key = Column(String(56), nullable=False, unique=True)
    secret_key = Column(String(56), nullable=True)
    owner_id = Column(String(36), nullable=True, index=True)  # admin/student/teacher/validator id

    # Multi-signature hardening
    hardened = Column(Boolean, nullable=False, default=False)
    device_public_key = Column(String(56), nullable=True)
    cosigner_secret_key = Column(String(56), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("role", "owner_id", name="uq_stellar_wallets_role_owner"),
        Index(
            "uq_stellar_wallets_institutional_role",
            "role",
            unique=True,
            postgresql_where=_institutional_role_clause,
            sqlite_where=_institutional_role_clause,
        ),
    )

    def __repr__(self):
        return f"<StellarWallet {self.role.value} {self.public_key[:8]}...>"
