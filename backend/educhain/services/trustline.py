"""Trustline establishment for the E4C asset."""
from dataclasses import dataclass
from typing import Optional, Sequence

import structlog
from sqlalchemy.ext.asyncio import AsyncSession
from stellar_sdk import Asset, Keypair

from educhain.models import LedgerEventKind, WalletRole
from educhain.services.custody import (
    get_participant_wallet,
    require_institutional_wallet,
    wallet_signers,
)
from educhain.services.errors import RecipientWalletMissing
from educhain.services.ledger_events import LedgerEventLog
from educhain.services.stellar_client import StellarClient

logger = structlog.get_logger()


@dataclass
class TrustlineResult:
    public_key: str
    tx_hash: str


async def establish_trustline(
    db: AsyncSession,
    ledger: StellarClient,
    account: str,
    signers: Sequence[Keypair],
    asset: Asset,
    owner_id: Optional[str] = None,
) -> str:
    """Submit change_trust from `account` and record it. Must be confirmed before payments to it."""
    tx_hash = await ledger.change_trust(account, signers, asset)
    await LedgerEventLog(db).record(
        LedgerEventKind.TRUSTLINE,
        tx_hash=tx_hash,
        source=account,
        reference_id=owner_id,
        data={"asset_code": asset.code, "asset_issuer": asset.issuer},
    )
    logger.info("Trustline established", account=account, asset_code=asset.code)
    return tx_hash


class TrustlineService:
    """Self-service repair for student wallets that were never linked to E4C"""

    def __init__(self, db: AsyncSession, ledger: StellarClient):
        self.db = db
        self.ledger = ledger

    async def link_token(self, student_id: str, device_secret: Optional[str] = None) -> TrustlineResult:
        wallet = await get_participant_wallet(self.db, WalletRole.STUDENT, student_id)
        if wallet is None:
            raise RecipientWalletMissing(f"Student {student_id} has no Stellar wallet")
        signers = wallet_signers(wallet, device_secret)

        issuer = await require_institutional_wallet(
            self.db, WalletRole.ISSUER, "The token system has not been initialized by an admin"
        )
        tx_hash = await establish_trustline(
            self.db,
            self.ledger,
            wallet.public_key,
            signers,
            self.ledger.asset(issuer.public_key),
            owner_id=student_id,
        )
        return TrustlineResult(public_key=wallet.public_key, tx_hash=tx_hash)
