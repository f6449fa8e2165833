"""Institution setup API endpoints: issuer, distributor, escrow and minting"""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from educhain.config import get_settings
from educhain.models.database import get_db
from educhain.schemas.institution import (
    AdminRequest,
    CreateAccountsResponse,
    MintTokensRequest,
    MintTokensResponse,
    EscrowAccountResponse,
)
from educhain.services.minting import MintingService
from educhain.services.provisioning import ProvisioningService
from educhain.services.stellar_client import StellarClient, get_stellar_client

router = APIRouter()
logger = structlog.get_logger()
settings = get_settings()


@router.post("/create-accounts-and-emit", response_model=CreateAccountsResponse)
async def create_accounts_and_emit(
    request: AdminRequest,
    db: AsyncSession = Depends(get_db),
    ledger: StellarClient = Depends(get_stellar_client),
):
    """Create and fund issuer and distributor, link the distributor and mint the initial supply.

    Calling it again completes any step a failed call left undone and
    returns the existing accounts unchanged once setup is complete.
    """
    accounts = await ProvisioningService(db, ledger).create_accounts_and_emit(request.admin_id)
    return CreateAccountsResponse(
        issuer=accounts.issuer,
        distributor=accounts.distributor,
        created=accounts.created,
        mint_tx_hash=accounts.mint_tx_hash,
    )


@router.post("/mint-tokens", response_model=MintTokensResponse)
async def mint_tokens(
    request: MintTokensRequest,
    db: AsyncSession = Depends(get_db),
    ledger: StellarClient = Depends(get_stellar_client),
):
    """Mint additional E4C into the distributor reserve"""
    result = await MintingService(db, ledger).mint_tokens(request.admin_id, request.amount)
    return MintTokensResponse(
        success=True,
        message=f"{result.amount} {settings.asset_code} minted to the distributor",
        hash=result.tx_hash,
        total_minted=result.total_minted,
    )


@router.post("/create-escrow-account", response_model=EscrowAccountResponse)
async def create_escrow_account(
    request: AdminRequest,
    db: AsyncSession = Depends(get_db),
    ledger: StellarClient = Depends(get_stellar_client),
):
    """Create the escrow account that receives redeemed tokens"""
    escrow = await ProvisioningService(db, ledger).create_escrow_account(request.admin_id)
    return EscrowAccountResponse(
        public_key=escrow.public_key,
        secret_key=escrow.secret_key,
        network=escrow.network,
        message=escrow.message,
    )
