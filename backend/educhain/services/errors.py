"""Settlement error taxonomy.

Every failure a settlement operation can surface is a `SettlementError`; the
API layer turns them into `{"error", "code", "details"}` payloads.
"""
from typing import Any, Dict, List, Optional


class SettlementError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code = 500
    code = "settlement_error"

    def __init__(self, detail: str, extras: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(detail)
        self.detail = detail
        self.extras = extras or {}


class ConfigurationError(SettlementError):
    """A required institutional wallet (issuer, distributor, escrow) is absent."""

    status_code = 500
    code = "configuration_error"


# Name used by the payout flow
InstitutionNotConfigured = ConfigurationError


class RecordNotFound(SettlementError):
    status_code = 404
    code = "not_found"


class RecipientWalletMissing(SettlementError):
    """The target participant has no known Stellar public key."""

    status_code = 404
    code = "recipient_wallet_missing"


class DeviceKeyRequired(SettlementError):
    """A hardened wallet needs the holder's device key to authorize an operation."""

    status_code = 400
    code = "device_key_required"


class WalletConflict(SettlementError):
    """Wallet already exists or is already in the requested state."""

    status_code = 409
    code = "wallet_conflict"


class InvalidTaskState(SettlementError):
    status_code = 409
    code = "invalid_task_state"


class InsufficientBalance(SettlementError):
    status_code = 400
    code = "insufficient_balance"


class LedgerActivationFailure(SettlementError):
    """Faucet funding did not complete or the account never became visible."""

    status_code = 502
    code = "ledger_activation_failure"


class LedgerRejection(SettlementError):
    """Horizon rejected a submitted transaction; result codes are kept verbatim."""

    status_code = 502
    code = "ledger_rejection"

    def __init__(
        self,
        detail: str,
        result_codes: Optional[Dict[str, Any]] = None,
        extras: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.result_codes = result_codes or {}
        merged = dict(extras or {})
        if self.result_codes:
            merged["result_codes"] = self.result_codes
        super().__init__(detail, merged)

    @property
    def operation_codes(self) -> List[str]:
        return list(self.result_codes.get("operations") or [])


class MissingTrustline(LedgerRejection):
    """Payment failed because an account does not trust the asset."""

    code = "missing_trustline"


TRUSTLINE_RESULT_CODES = frozenset({
    "op_no_trust",
    "op_src_no_trust",
    "op_not_authorized",
    "op_src_not_authorized",
})


def rejection_from_result_codes(detail: str, result_codes: Optional[Dict[str, Any]]) -> LedgerRejection:
    """Pick the rejection class matching Horizon's result codes."""
    operations = (result_codes or {}).get("operations") or []
    if any(code in TRUSTLINE_RESULT_CODES for code in operations):
        return MissingTrustline(detail, result_codes)
    return LedgerRejection(detail, result_codes)


class PostSettlementReconciliationRequired(SettlementError):
    """
    The ledger confirmed a transfer but the off-chain record could not be updated.

    Money moved without being recorded; the tx hash is the reconciliation anchor.
    """

    status_code = 500
    code = "reconciliation_required"

    def __init__(self, detail: str, tx_hash: str, extras: Optional[Dict[str, Any]] = None) -> None:
        self.tx_hash = tx_hash
        merged = dict(extras or {})
        merged["tx_hash"] = tx_hash
        super().__init__(detail, merged)
