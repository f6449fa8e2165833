"""Unit tests for the Horizon client wrapper"""
import json

import httpx
import pytest
from unittest.mock import AsyncMock, MagicMock
from stellar_sdk import Account, Asset, Keypair, Payment, SetOptions, ChangeTrust
from stellar_sdk.client.response import Response
from stellar_sdk.exceptions import BadRequestError, BadResponseError, NotFoundError
from stellar_sdk.exceptions import ConnectionError as HorizonConnectionError

from educhain.services import stellar_client as stellar_client_module
from educhain.services.errors import LedgerActivationFailure, LedgerRejection, MissingTrustline
from educhain.services.stellar_client import StellarClient
from educhain.services.wallet_hardening import HARDENED_THRESHOLDS


def _horizon_error(status: int, result_codes: dict) -> BadRequestError:
    body = {
        "type": "https://stellar.org/horizon-errors/transaction_failed",
        "title": "Transaction Failed",
        "status": status,
        "detail": "The transaction failed when submitted to the stellar network.",
        "extras": {"result_codes": result_codes},
    }
    return BadRequestError(Response(status, json.dumps(body), {}, "https://horizon.test/transactions"))


def _not_found() -> NotFoundError:
    body = {"type": "not_found", "title": "Resource Missing", "status": 404, "detail": "missing"}
    return NotFoundError(Response(404, json.dumps(body), {}, "https://horizon.test/accounts"))


def _server_error() -> BadResponseError:
    body = {"type": "server_error", "title": "Service Unavailable", "status": 503, "detail": "try again"}
    return BadResponseError(Response(503, json.dumps(body), {}, "https://horizon.test/accounts"))


class TestSubmission:
    """Tests for transaction building and submission"""

    @pytest.fixture
    def source(self):
        return Keypair.random()

    @pytest.fixture
    def client(self, source):
        client = StellarClient(
            horizon_url="https://horizon.test",
            network_passphrase="Test SDF Network ; September 2015",
            friendbot_url="https://friendbot.test",
        )
        server = MagicMock()
        server.load_account = AsyncMock(return_value=Account(source.public_key, 100))
        server.submit_transaction = AsyncMock(return_value={"hash": "a" * 64})
        client._server = server
        return client

    def _envelope(self, client):
        return client.server.submit_transaction.call_args[0][0]

    @pytest.mark.asyncio
    async def test_pay_builds_signed_payment_with_memo(self, client, source):
        """Payment carries amount, destination and the text memo"""
        destination = Keypair.random().public_key
        asset = Asset("E4C", Keypair.random().public_key)

        tx_hash = await client.pay(source.public_key, [source], destination, asset, 30, memo_text="voucher123")

        assert tx_hash == "a" * 64
        envelope = self._envelope(client)
        operations = envelope.transaction.operations
        assert len(operations) == 1
        assert isinstance(operations[0], Payment)
        assert operations[0].destination.account_id == destination
        assert operations[0].amount == "30"
        assert envelope.transaction.memo.memo_text == b"voucher123"
        assert len(envelope.signatures) == 1
        assert client.server.submit_transaction.call_args.kwargs["skip_memo_required_check"] is True

    @pytest.mark.asyncio
    async def test_change_trust_uses_asset(self, client, source):
        asset = Asset("E4C", Keypair.random().public_key)

        await client.change_trust(source.public_key, [source], asset)

        operation = self._envelope(client).transaction.operations[0]
        assert isinstance(operation, ChangeTrust)
        assert operation.asset.code == "E4C"

    @pytest.mark.asyncio
    async def test_harden_wallet_adds_signers_before_demoting_master(self, client, source):
        """Three weighted signers first, then master weight 0 and thresholds 1/2/2"""
        keys = await client.harden_wallet(source)

        operations = self._envelope(client).transaction.operations
        assert len(operations) == 4
        assert all(isinstance(op, SetOptions) for op in operations)
        assert [op.signer.weight for op in operations[:3]] == [1, 1, 1]
        assert all(op.master_weight is None for op in operations[:3])

        final = operations[3]
        assert final.master_weight == 0
        assert final.low_threshold == HARDENED_THRESHOLDS.low
        assert final.med_threshold == HARDENED_THRESHOLDS.medium
        assert final.high_threshold == HARDENED_THRESHOLDS.high
        assert keys.tx_hash == "a" * 64
        assert len({keys.device.public_key, keys.recovery_1.public_key, keys.recovery_2.public_key}) == 3

    @pytest.mark.asyncio
    async def test_no_trust_result_code_raises_missing_trustline(self, client, source):
        client.server.submit_transaction.side_effect = _horizon_error(
            400, {"transaction": "tx_failed", "operations": ["op_no_trust"]}
        )

        with pytest.raises(MissingTrustline) as exc_info:
            await client.pay(
                source.public_key, [source], Keypair.random().public_key,
                Asset("E4C", Keypair.random().public_key), 5,
            )

        assert exc_info.value.operation_codes == ["op_no_trust"]
        assert exc_info.value.extras["result_codes"]["transaction"] == "tx_failed"

    @pytest.mark.asyncio
    async def test_other_result_codes_raise_ledger_rejection(self, client, source):
        client.server.submit_transaction.side_effect = _horizon_error(
            400, {"transaction": "tx_bad_seq"}
        )

        with pytest.raises(LedgerRejection) as exc_info:
            await client.change_trust(source.public_key, [source], Asset("E4C", Keypair.random().public_key))

        assert not isinstance(exc_info.value, MissingTrustline)
        assert exc_info.value.result_codes == {"transaction": "tx_bad_seq"}

    @pytest.mark.asyncio
    async def test_missing_source_account(self, client, source):
        client.server.load_account.side_effect = _not_found()

        with pytest.raises(LedgerActivationFailure):
            await client.change_trust(source.public_key, [source], Asset("E4C", Keypair.random().public_key))
        client.server.submit_transaction.assert_not_called()

    @pytest.mark.asyncio
    async def test_unreachable_horizon_while_loading_source(self, client, source):
        client.server.load_account.side_effect = HorizonConnectionError("Cannot connect to host horizon.test")

        with pytest.raises(LedgerRejection) as exc_info:
            await client.change_trust(source.public_key, [source], Asset("E4C", Keypair.random().public_key))

        assert exc_info.value.extras["outcome"] == "not_submitted"
        client.server.submit_transaction.assert_not_called()

    @pytest.mark.asyncio
    async def test_horizon_error_while_loading_source(self, client, source):
        client.server.load_account.side_effect = _server_error()

        with pytest.raises(LedgerRejection):
            await client.pay(
                source.public_key, [source], Keypair.random().public_key,
                Asset("E4C", Keypair.random().public_key), 5,
            )
        client.server.submit_transaction.assert_not_called()


class TestActivation:
    """Tests for faucet funding and account polling"""

    @pytest.fixture
    def client(self):
        return StellarClient(horizon_url="https://horizon.test", friendbot_url="https://friendbot.test")

    @pytest.fixture(autouse=True)
    def fast_polling(self, monkeypatch):
        monkeypatch.setattr(stellar_client_module.settings, "activation_initial_delay", 0.001)
        monkeypatch.setattr(stellar_client_module.settings, "activation_max_delay", 0.002)
        monkeypatch.setattr(stellar_client_module.settings, "activation_timeout", 0.05)

    @pytest.mark.asyncio
    async def test_fund_account_calls_faucet(self, client):
        requested = []

        def handler(request: httpx.Request) -> httpx.Response:
            requested.append(request.url.params["addr"])
            return httpx.Response(200, json={"hash": "f" * 64})

        client._http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        public_key = Keypair.random().public_key

        await client.fund_account(public_key)

        assert requested == [public_key]

    @pytest.mark.asyncio
    async def test_faucet_refusal_is_activation_failure(self, client):
        client._http = httpx.AsyncClient(
            transport=httpx.MockTransport(lambda request: httpx.Response(400, json={"detail": "createAccountAlreadyExist"}))
        )

        with pytest.raises(LedgerActivationFailure) as exc_info:
            await client.fund_account(Keypair.random().public_key)

        assert exc_info.value.extras["status"] == 400

    @pytest.mark.asyncio
    async def test_wait_for_account_polls_until_visible(self, client):
        client.get_account = AsyncMock(side_effect=[None, None, {"id": "G..."}])

        account = await client.wait_for_account("G...")

        assert account == {"id": "G..."}
        assert client.get_account.await_count == 3

    @pytest.mark.asyncio
    async def test_account_lookup_maps_connection_errors(self, client):
        server = MagicMock()
        server.accounts.return_value.account_id.return_value.call = AsyncMock(
            side_effect=HorizonConnectionError("Cannot connect to host horizon.test")
        )
        client._server = server

        with pytest.raises(LedgerRejection):
            await client.get_account(Keypair.random().public_key)

    @pytest.mark.asyncio
    async def test_account_lookup_maps_server_errors(self, client):
        server = MagicMock()
        server.accounts.return_value.account_id.return_value.call = AsyncMock(side_effect=_server_error())
        client._server = server

        with pytest.raises(LedgerRejection) as exc_info:
            await client.get_account(Keypair.random().public_key)

        assert exc_info.value.extras["status"] == 503

    @pytest.mark.asyncio
    async def test_wait_for_account_survives_lookup_failures(self, client):
        server = MagicMock()
        server.accounts.return_value.account_id.return_value.call = AsyncMock(
            side_effect=[HorizonConnectionError("reset by peer"), _server_error(), {"id": "G..."}]
        )
        client._server = server

        account = await client.wait_for_account("G...")

        assert account == {"id": "G..."}

    @pytest.mark.asyncio
    async def test_wait_for_account_reports_last_lookup_failure(self, client):
        client.get_account = AsyncMock(side_effect=LedgerRejection("Could not reach Horizon: reset by peer"))

        with pytest.raises(LedgerActivationFailure) as exc_info:
            await client.wait_for_account("G...")

        assert exc_info.value.extras["last_error"] == "Could not reach Horizon: reset by peer"

    @pytest.mark.asyncio
    async def test_wait_for_account_gives_up(self, client):
        client.get_account = AsyncMock(return_value=None)

        with pytest.raises(LedgerActivationFailure) as exc_info:
            await client.wait_for_account("G...")

        assert exc_info.value.extras["attempts"] >= 2

    def test_not_connected(self, client):
        with pytest.raises(RuntimeError):
            client.server
