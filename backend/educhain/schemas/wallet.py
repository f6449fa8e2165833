"""Participant wallet schemas"""
from typing import Any, Optional
from pydantic import model_validator

from educhain.schemas.base import CamelModel


class CreateWalletRequest(CamelModel):
    """
    Owner of the wallet to create.

    Accepts `ownerId`, the role-specific id (`studentId`, `teacherId`,
    `validatorId`, camelCase or snake_case) or a database webhook payload
    `{"record": {"id": ...}}`.
    """
    owner_id: str

    @model_validator(mode="before")
    @classmethod
    def resolve_owner(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        if data.get("ownerId") or data.get("owner_id"):
            return data
        for key in ("studentId", "student_id", "teacherId", "teacher_id", "validatorId", "validator_id"):
            if data.get(key):
                return {"owner_id": data[key]}
        record = data.get("record")
        if isinstance(record, dict) and record.get("id"):
            return {"owner_id": record["id"]}
        return data


class HardenWalletRequest(CamelModel):
    role: str = "student"
    owner_id: str


class WalletResponse(CamelModel):
    """Device secret is returned once, on the call that installed it"""
    stellar_public_key: str
    device_secret_key: Optional[str] = None
    created: bool
    hardened: bool
    trustline: Optional[bool] = None


class LinkTokenRequest(CamelModel):
    student_id: str
    device_secret_key: Optional[str] = None


class LinkTokenResponse(CamelModel):
    success: bool
    message: str
    hash: str
