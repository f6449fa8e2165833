"""Unit tests for the settlement error taxonomy"""
from educhain.services.errors import (
    ConfigurationError,
    InstitutionNotConfigured,
    LedgerRejection,
    MissingTrustline,
    PostSettlementReconciliationRequired,
    RecipientWalletMissing,
    rejection_from_result_codes,
)


class TestRejectionMapping:
    """Horizon result codes to exception classes"""

    def test_no_trust_maps_to_missing_trustline(self):
        error = rejection_from_result_codes("rejected", {"transaction": "tx_failed", "operations": ["op_no_trust"]})
        assert isinstance(error, MissingTrustline)
        assert error.code == "missing_trustline"

    def test_source_not_authorized_maps_to_missing_trustline(self):
        error = rejection_from_result_codes("rejected", {"operations": ["op_success", "op_src_not_authorized"]})
        assert isinstance(error, MissingTrustline)

    def test_other_codes_stay_generic(self):
        error = rejection_from_result_codes("rejected", {"transaction": "tx_bad_auth"})
        assert type(error) is LedgerRejection
        assert error.operation_codes == []
        assert error.extras["result_codes"] == {"transaction": "tx_bad_auth"}

    def test_missing_codes(self):
        error = rejection_from_result_codes("rejected", None)
        assert type(error) is LedgerRejection
        assert "result_codes" not in error.extras


class TestErrorPayloads:
    def test_status_codes(self):
        assert RecipientWalletMissing("x").status_code == 404
        assert ConfigurationError("x").status_code == 500
        assert LedgerRejection("x").status_code == 502
        assert InstitutionNotConfigured is ConfigurationError

    def test_reconciliation_error_carries_tx_hash(self):
        error = PostSettlementReconciliationRequired("payout not recorded", tx_hash="b" * 64, extras={"operation": "payout"})
        assert error.tx_hash == "b" * 64
        assert error.extras == {"operation": "payout", "tx_hash": "b" * 64}
        assert error.code == "reconciliation_required"
