"""Unit tests for request/response schemas"""
import pytest
from pydantic import ValidationError

from educhain.schemas.settlement import RedeemTokensResponse, SendTokensRequest
from educhain.schemas.wallet import CreateWalletRequest


class TestCreateWalletRequest:
    """Wallet creation accepts several owner id shapes"""

    @pytest.mark.parametrize(
        "payload",
        [
            {"studentId": "s-1"},
            {"student_id": "s-1"},
            {"record": {"id": "s-1", "name": "Sam"}},
            {"ownerId": "s-1"},
            {"teacherId": "s-1"},
        ],
    )
    def test_owner_id_shapes(self, payload):
        assert CreateWalletRequest.model_validate(payload).owner_id == "s-1"

    def test_missing_owner(self):
        with pytest.raises(ValidationError):
            CreateWalletRequest.model_validate({"record": {}})


class TestSettlementSchemas:
    def test_camel_and_snake_case_input(self):
        camel = SendTokensRequest.model_validate({"studentId": "s", "amount": 15, "studentTaskId": "t"})
        snake = SendTokensRequest.model_validate({"student_id": "s", "amount": 15, "student_task_id": "t"})
        assert camel == snake

    def test_amount_must_be_positive(self):
        with pytest.raises(ValidationError):
            SendTokensRequest.model_validate({"studentId": "s", "amount": 0, "studentTaskId": "t"})

    def test_response_uses_camel_case(self):
        response = RedeemTokensResponse(hash="h", voucher_uuid="v", balance=20)
        assert response.model_dump(by_alias=True) == {"hash": "h", "voucherUuid": "v", "balance": 20}
