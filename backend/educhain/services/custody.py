"""Lookup of wallet rows and the keys that sign for them."""
from typing import List, Optional, Type, Union

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from stellar_sdk import Keypair
from stellar_sdk.exceptions import Ed25519SecretSeedInvalidError

from educhain.config import get_settings
from educhain.models import Admin, Student, Teacher, Validator, StellarWallet, WalletRole
from educhain.services.errors import (
    ConfigurationError,
    DeviceKeyRequired,
    RecordNotFound,
)

settings = get_settings()

Owner = Union[Admin, Student, Teacher, Validator]

OWNER_MODELS: dict[WalletRole, Type[Owner]] = {
    WalletRole.STUDENT: Student,
    WalletRole.TEACHER: Teacher,
    WalletRole.VALIDATOR: Validator,
}


async def get_institutional_wallet(db: AsyncSession, role: WalletRole) -> Optional[StellarWallet]:
    result = await db.execute(select(StellarWallet).where(StellarWallet.role == role))
    return result.scalar_one_or_none()


async def require_institutional_wallet(
    db: AsyncSession, role: WalletRole, detail: Optional[str] = None
) -> StellarWallet:
    wallet = await get_institutional_wallet(db, role)
    if wallet is None:
        raise ConfigurationError(detail or f"Institutional {role.value} account is not configured")
    return wallet


async def get_participant_wallet(
    db: AsyncSession, role: WalletRole, owner_id: str
) -> Optional[StellarWallet]:
    result = await db.execute(
        select(StellarWallet).where(
            StellarWallet.role == role,
            StellarWallet.owner_id == owner_id,
        )
    )
    return result.scalar_one_or_none()


async def resolve_escrow_public_key(db: AsyncSession) -> str:
    """Escrow wallet row, falling back to the configured public key"""
    wallet = await get_institutional_wallet(db, WalletRole.ESCROW)
    if wallet is not None:
        return wallet.public_key
    if settings.escrow_public_key:
        return settings.escrow_public_key
    raise ConfigurationError("Escrow account is not configured")


async def load_admin(db: AsyncSession, admin_id: str) -> Admin:
    admin = await db.get(Admin, admin_id)
    if admin is None:
        raise RecordNotFound(f"Admin {admin_id} not found")
    return admin


async def load_owner(db: AsyncSession, role: WalletRole, owner_id: str) -> Owner:
    model = OWNER_MODELS.get(role)
    if model is None:
        raise ValueError(f"{role.value} wallets have no participant owner")
    owner = await db.get(model, owner_id, populate_existing=True)
    if owner is None:
        raise RecordNotFound(f"{role.value.capitalize()} {owner_id} not found")
    return owner


def master_keypair(wallet: StellarWallet) -> Keypair:
    if not wallet.secret_key:
        raise ConfigurationError(f"No signing key on record for {wallet.role.value} wallet")
    return Keypair.from_secret(wallet.secret_key)


def wallet_signers(wallet: StellarWallet, device_secret: Optional[str] = None) -> List[Keypair]:
    """
    Keys that authorize medium-threshold operations on a participant wallet.

    Unhardened wallets sign with their master key. Hardened wallets need the
    holder's device key plus the institutional co-signer (recovery key 1).
    """
    if not wallet.hardened:
        return [master_keypair(wallet)]

    if not device_secret:
        raise DeviceKeyRequired("This wallet is protected by a device key; provide deviceSecretKey")
    try:
        device = Keypair.from_secret(device_secret)
    except Ed25519SecretSeedInvalidError as e:
        raise DeviceKeyRequired("Device key is not a valid Stellar secret") from e
    if device.public_key != wallet.device_public_key:
        raise DeviceKeyRequired("Device key does not belong to this wallet")
    if not wallet.cosigner_secret_key:
        raise ConfigurationError("Hardened wallet has no institutional co-signer on record")
    return [device, Keypair.from_secret(wallet.cosigner_secret_key)]
