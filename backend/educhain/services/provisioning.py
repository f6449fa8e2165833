"""Keypair provisioning, funding and wallet hardening."""
from dataclasses import dataclass
from typing import Optional

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from stellar_sdk import Keypair

from educhain.config import get_settings
from educhain.models import LedgerEventKind, StellarWallet, WalletRole, PARTICIPANT_ROLES
from educhain.services.custody import (
    get_institutional_wallet,
    get_participant_wallet,
    load_admin,
    load_owner,
    master_keypair,
    require_institutional_wallet,
)
from educhain.services.errors import RecipientWalletMissing, WalletConflict
from educhain.services.ledger_events import LedgerEventLog
from educhain.services.stellar_client import StellarClient
from educhain.services.trustline import establish_trustline

logger = structlog.get_logger()
settings = get_settings()


@dataclass
class InstitutionAccounts:
    issuer: str
    distributor: str
    created: bool
    mint_tx_hash: Optional[str] = None


@dataclass
class EscrowAccount:
    public_key: str
    secret_key: Optional[str]  # only on creation
    network: str
    message: str
    created: bool


@dataclass
class ParticipantWallet:
    public_key: str
    device_secret_key: Optional[str]  # only when hardening happened in this call
    created: bool
    hardened: bool
    trustline: Optional[bool]  # None when unknown (existing wallet)


class ProvisioningService:
    """
    Creates and funds the Stellar accounts of the institution and its participants.

    Keys are persisted right after activation, before any further ledger step,
    so a failure later in the flow never loses a funded account.
    """

    def __init__(self, db: AsyncSession, ledger: StellarClient):
        self.db = db
        self.ledger = ledger
        self.events = LedgerEventLog(db)

    async def create_accounts_and_emit(self, admin_id: str) -> InstitutionAccounts:
        """
        Issuer + distributor setup, distributor trustline and the initial E4C supply.

        Every step is skipped when already done, so calling again after a
        failure finishes the setup: a stored issuer or distributor is reused,
        a missing distributor trustline is established and a missing initial
        mint is submitted. `created` is False only when nothing was left to do.
        """
        admin = await load_admin(self.db, admin_id)

        issuer_wallet = await get_institutional_wallet(self.db, WalletRole.ISSUER)
        distributor_wallet = await get_institutional_wallet(self.db, WalletRole.DISTRIBUTOR)
        if distributor_wallet is not None and issuer_wallet is None:
            raise WalletConflict("A distributor exists without an issuer; fix the wallet table manually")

        changed = False
        if issuer_wallet is None:
            issuer = Keypair.random()
            await self._activate(issuer, WalletRole.ISSUER)
            await self._store(WalletRole.ISSUER, issuer, owner_id=admin_id)
            changed = True
        else:
            issuer = master_keypair(issuer_wallet)

        new_distributor = distributor_wallet is None
        if new_distributor:
            distributor = Keypair.random()
            await self._activate(distributor, WalletRole.DISTRIBUTOR)
            await self._store(WalletRole.DISTRIBUTOR, distributor, owner_id=admin_id)
            changed = True
        else:
            distributor = master_keypair(distributor_wallet)

        asset = self.ledger.asset(issuer.public_key)
        if new_distributor or await self.ledger.get_asset_balance(distributor.public_key, asset) is None:
            if not new_distributor:
                logger.warning("Distributor has no E4C trustline, completing setup", distributor=distributor.public_key)
            await establish_trustline(
                self.db, self.ledger, distributor.public_key, [distributor], asset, owner_id=admin_id
            )
            changed = True

        mint_tx = None
        if not await self.events.has_event(LedgerEventKind.MINT, distributor.public_key):
            mint_tx = await self.ledger.pay(
                issuer.public_key, [issuer], distributor.public_key, asset, settings.initial_supply
            )
            await self.events.record(
                LedgerEventKind.MINT,
                tx_hash=mint_tx,
                source=issuer.public_key,
                destination=distributor.public_key,
                amount=settings.initial_supply,
                reference_id=admin_id,
            )
            changed = True

        if admin.stellar_public_key != issuer.public_key:
            admin.stellar_public_key = issuer.public_key
            await self.db.commit()

        if changed:
            logger.info(
                "Institution provisioned",
                admin_id=admin_id,
                issuer=issuer.public_key,
                distributor=distributor.public_key,
                initial_supply=settings.initial_supply,
            )
        else:
            logger.info("Institution already provisioned", admin_id=admin_id, issuer=issuer.public_key)
        return InstitutionAccounts(
            issuer=issuer.public_key,
            distributor=distributor.public_key,
            created=changed,
            mint_tx_hash=mint_tx,
        )

    async def create_escrow_account(self, admin_id: str) -> EscrowAccount:
        """Escrow vault for redeemed tokens. Can only be created once."""
        await load_admin(self.db, admin_id)

        existing = await get_institutional_wallet(self.db, WalletRole.ESCROW)
        if existing is not None:
            return EscrowAccount(
                public_key=existing.public_key,
                secret_key=None,
                network=settings.stellar_network,
                message="The escrow account already exists. It can only be created once.",
                created=False,
            )

        issuer = await require_institutional_wallet(
            self.db, WalletRole.ISSUER, "Issuer account not configured; provision the institution first"
        )

        escrow = Keypair.random()
        await self._activate(escrow, WalletRole.ESCROW)
        await self._store(WalletRole.ESCROW, escrow, owner_id=admin_id)
        await establish_trustline(
            self.db,
            self.ledger,
            escrow.public_key,
            [escrow],
            self.ledger.asset(issuer.public_key),
            owner_id=admin_id,
        )

        logger.info("Escrow account created", admin_id=admin_id, escrow=escrow.public_key)
        return EscrowAccount(
            public_key=escrow.public_key,
            secret_key=escrow.secret,
            network=settings.stellar_network,
            message="Escrow account created. Archive the secret key now; it will not be shown again.",
            created=True,
        )

    async def create_participant_wallet(self, role: WalletRole, owner_id: str) -> ParticipantWallet:
        """
        Funded, E4C-linked and hardened wallet for a student, teacher or validator.

        The device secret is returned once and never stored.
        """
        if role not in PARTICIPANT_ROLES:
            raise ValueError(f"{role.value} is not a participant role")
        owner = await load_owner(self.db, role, owner_id)

        existing = await get_participant_wallet(self.db, role, owner_id)
        if existing is not None:
            return ParticipantWallet(
                public_key=existing.public_key,
                device_secret_key=None,
                created=False,
                hardened=existing.hardened,
                trustline=None,
            )

        keypair = Keypair.random()
        await self._activate(keypair, role)
        wallet = await self._store(role, keypair, owner_id=owner_id)
        owner.stellar_public_key = keypair.public_key
        await self.db.commit()

        # Trustline first: afterwards the master key can no longer sign alone
        issuer = await get_institutional_wallet(self.db, WalletRole.ISSUER)
        if issuer is not None:
            await establish_trustline(
                self.db,
                self.ledger,
                keypair.public_key,
                [keypair],
                self.ledger.asset(issuer.public_key),
                owner_id=owner_id,
            )
        else:
            logger.warning(
                "Issuer not configured; wallet created without E4C trustline",
                role=role.value,
                owner_id=owner_id,
            )

        device_secret = await self._harden(wallet, keypair)
        return ParticipantWallet(
            public_key=keypair.public_key,
            device_secret_key=device_secret,
            created=True,
            hardened=True,
            trustline=issuer is not None,
        )

    async def harden_existing_wallet(self, role: WalletRole, owner_id: str) -> ParticipantWallet:
        """Harden a wallet created before hardening was introduced, or whose hardening failed"""
        wallet = await get_participant_wallet(self.db, role, owner_id)
        if wallet is None:
            raise RecipientWalletMissing(f"{role.value.capitalize()} {owner_id} has no Stellar wallet")
        if wallet.hardened:
            raise WalletConflict("Wallet is already hardened")

        device_secret = await self._harden(wallet, master_keypair(wallet))
        return ParticipantWallet(
            public_key=wallet.public_key,
            device_secret_key=device_secret,
            created=False,
            hardened=True,
            trustline=None,
        )

    async def _activate(self, keypair: Keypair, role: WalletRole) -> None:
        """Faucet funding, then wait until the account is readable"""
        await self.ledger.fund_account(keypair.public_key)
        await self.ledger.wait_for_account(keypair.public_key)
        await self.events.record(
            LedgerEventKind.ACCOUNT_FUNDED,
            destination=keypair.public_key,
            data={"role": role.value},
        )

    async def _store(self, role: WalletRole, keypair: Keypair, owner_id: Optional[str]) -> StellarWallet:
        wallet = StellarWallet(
            role=role,
            public_key=keypair.public_key,
            secret_key=keypair.secret,
            owner_id=owner_id,
        )
        self.db.add(wallet)
        try:
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            logger.error(
                "Funded account could not be stored",
                role=role.value,
                public_key=keypair.public_key,
            )
            raise WalletConflict(f"A {role.value} wallet already exists") from e
        return wallet

    async def _harden(self, wallet: StellarWallet, master: Keypair) -> str:
        """
        Install device and recovery signers. Recovery key 1 is kept as the
        institutional co-signer, recovery key 2 is discarded.
        """
        keys = await self.ledger.harden_wallet(master)
        await self.events.record(
            LedgerEventKind.WALLET_HARDENED,
            tx_hash=keys.tx_hash,
            source=wallet.public_key,
            reference_id=wallet.owner_id,
            data={"device_public_key": keys.device.public_key},
        )

        wallet.hardened = True
        wallet.device_public_key = keys.device.public_key
        wallet.cosigner_secret_key = keys.recovery_1.secret
        await self.db.commit()

        logger.info("Wallet hardened", role=wallet.role.value, public_key=wallet.public_key)
        return keys.device.secret
