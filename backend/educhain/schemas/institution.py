"""Institution setup schemas"""
from typing import Optional
from pydantic import PositiveInt

from educhain.schemas.base import CamelModel


class AdminRequest(CamelModel):
    """Request carrying the acting admin"""
    admin_id: str


class CreateAccountsResponse(CamelModel):
    issuer: str
    distributor: str
    created: bool
    mint_tx_hash: Optional[str] = None


class MintTokensRequest(CamelModel):
    admin_id: str
    amount: PositiveInt


class MintTokensResponse(CamelModel):
    success: bool
    message: str
    hash: str
    total_minted: int


class EscrowAccountResponse(CamelModel):
    """Secret key is only present on the call that created the account"""
    public_key: str
    secret_key: Optional[str] = None
    network: str
    message: str
