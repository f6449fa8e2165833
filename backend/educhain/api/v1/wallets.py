"""Participant wallet API endpoints"""
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from educhain.models import WalletRole, PARTICIPANT_ROLES
from educhain.models.database import get_db
from educhain.schemas.wallet import (
    CreateWalletRequest,
    HardenWalletRequest,
    LinkTokenRequest,
    LinkTokenResponse,
    WalletResponse,
)
from educhain.services.provisioning import ParticipantWallet, ProvisioningService
from educhain.services.stellar_client import StellarClient, get_stellar_client
from educhain.services.trustline import TrustlineService

router = APIRouter()


def _wallet_to_response(wallet: ParticipantWallet) -> WalletResponse:
    return WalletResponse(
        stellar_public_key=wallet.public_key,
        device_secret_key=wallet.device_secret_key,
        created=wallet.created,
        hardened=wallet.hardened,
        trustline=wallet.trustline,
    )


async def _create_wallet(
    role: WalletRole, request: CreateWalletRequest, db: AsyncSession, ledger: StellarClient
) -> WalletResponse:
    wallet = await ProvisioningService(db, ledger).create_participant_wallet(role, request.owner_id)
    return _wallet_to_response(wallet)


@router.post("/create-student-wallet", response_model=WalletResponse)
async def create_student_wallet(
    request: CreateWalletRequest,
    db: AsyncSession = Depends(get_db),
    ledger: StellarClient = Depends(get_stellar_client),
):
    """Create, fund, link and harden a student wallet.

    The device secret key is in this response only; it is never stored.
    """
    return await _create_wallet(WalletRole.STUDENT, request, db, ledger)


@router.post("/create-teacher-wallet", response_model=WalletResponse)
async def create_teacher_wallet(
    request: CreateWalletRequest,
    db: AsyncSession = Depends(get_db),
    ledger: StellarClient = Depends(get_stellar_client),
):
    return await _create_wallet(WalletRole.TEACHER, request, db, ledger)


@router.post("/create-validator-wallet", response_model=WalletResponse)
async def create_validator_wallet(
    request: CreateWalletRequest,
    db: AsyncSession = Depends(get_db),
    ledger: StellarClient = Depends(get_stellar_client),
):
    return await _create_wallet(WalletRole.VALIDATOR, request, db, ledger)


@router.post("/harden-wallet", response_model=WalletResponse)
async def harden_wallet(
    request: HardenWalletRequest,
    db: AsyncSession = Depends(get_db),
    ledger: StellarClient = Depends(get_stellar_client),
):
    """Install device and recovery signers on an existing unhardened wallet"""
    try:
        role = WalletRole(request.role)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Unknown wallet role '{request.role}'")
    if role not in PARTICIPANT_ROLES:
        raise HTTPException(status_code=400, detail=f"{role.value} wallets cannot be hardened")

    wallet = await ProvisioningService(db, ledger).harden_existing_wallet(role, request.owner_id)
    return _wallet_to_response(wallet)


@router.post("/link-token", response_model=LinkTokenResponse)
async def link_token(
    request: LinkTokenRequest,
    db: AsyncSession = Depends(get_db),
    ledger: StellarClient = Depends(get_stellar_client),
):
    """Establish the E4C trustline on a student wallet; repeating it is harmless"""
    result = await TrustlineService(db, ledger).link_token(
        request.student_id, device_secret=request.device_secret_key
    )
    return LinkTokenResponse(
        success=True,
        message="Wallet linked to E4C",
        hash=result.tx_hash,
    )
