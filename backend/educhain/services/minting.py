"""E4C issuance from the issuer to the distributor reserve."""
from dataclasses import dataclass

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from educhain.models import LedgerEventKind, WalletRole
from educhain.services.custody import get_institutional_wallet, load_admin, master_keypair
from educhain.services.errors import ConfigurationError
from educhain.services.ledger_events import LedgerEventLog
from educhain.services.stellar_client import StellarClient

logger = structlog.get_logger()


@dataclass
class MintResult:
    tx_hash: str
    amount: int
    total_minted: int


class MintingService:
    """Admin-triggered, repeatable mint. There is no supply cap; every mint is logged."""

    def __init__(self, db: AsyncSession, ledger: StellarClient):
        self.db = db
        self.ledger = ledger
        self.events = LedgerEventLog(db)

    async def mint_tokens(self, admin_id: str, amount: int) -> MintResult:
        await load_admin(self.db, admin_id)

        issuer = await get_institutional_wallet(self.db, WalletRole.ISSUER)
        distributor = await get_institutional_wallet(self.db, WalletRole.DISTRIBUTOR)
        if issuer is None or distributor is None:
            raise ConfigurationError("Issuer and distributor accounts not found")

        issuer_keys = master_keypair(issuer)
        # The distributor must already trust the asset; the ledger rejects with op_no_trust otherwise
        tx_hash = await self.ledger.pay(
            issuer.public_key,
            [issuer_keys],
            distributor.public_key,
            self.ledger.asset(issuer.public_key),
            amount,
        )
        await self.events.record(
            LedgerEventKind.MINT,
            tx_hash=tx_hash,
            source=issuer.public_key,
            destination=distributor.public_key,
            amount=amount,
            reference_id=admin_id,
        )
        total = await self.events.total_minted()

        logger.info("E4C minted", admin_id=admin_id, amount=amount, total_minted=total, tx_hash=tx_hash)
        return MintResult(tx_hash=tx_hash, amount=amount, total_minted=total)
