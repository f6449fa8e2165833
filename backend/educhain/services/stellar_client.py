"""Stellar Horizon client wrapper for EduChain"""
import asyncio
from dataclasses import replace
from decimal import Decimal
from typing import Any, Callable, Dict, Optional, Sequence

import httpx
import structlog
from stellar_sdk import Asset, Keypair, TransactionBuilder
from stellar_sdk.client.aiohttp_client import AiohttpClient
from stellar_sdk.exceptions import BaseHorizonError, NotFoundError
from stellar_sdk.exceptions import ConnectionError as HorizonConnectionError
from stellar_sdk.server_async import ServerAsync

from educhain.config import get_settings
from educhain.services.errors import (
    LedgerActivationFailure,
    LedgerRejection,
    rejection_from_result_codes,
)
from educhain.services.serializer import KeyedLocks
from educhain.services.wallet_hardening import (
    HARDENED_THRESHOLDS,
    MASTER_WEIGHT,
    HardenedKeys,
    generate_hardening_keys,
)

logger = structlog.get_logger()
settings = get_settings()


def _rejection(error: BaseHorizonError) -> LedgerRejection:
    """Translate a Horizon error response, keeping its result codes verbatim."""
    extras = error.extras or {}
    result_codes = extras.get("result_codes")
    detail = f"Ledger rejected transaction: {error.title or error.status}"
    if result_codes:
        detail = f"{detail} ({result_codes})"
    return rejection_from_result_codes(detail, result_codes)


class StellarClient:
    """Async Horizon client with faucet funding and serialized submission"""

    def __init__(
        self,
        horizon_url: Optional[str] = None,
        network_passphrase: Optional[str] = None,
        friendbot_url: Optional[str] = None,
    ):
        self.horizon_url = horizon_url or settings.horizon_url
        self.network_passphrase = network_passphrase or settings.network_passphrase
        self.friendbot_url = friendbot_url or settings.friendbot_url
        self._server: Optional[ServerAsync] = None
        self._http: Optional[httpx.AsyncClient] = None
        # One in-flight transaction per source account
        self._account_locks = KeyedLocks()

    async def connect(self) -> None:
        """Open the Horizon and faucet connections"""
        if self._server is None:
            self._server = ServerAsync(self.horizon_url, client=AiohttpClient())
            logger.info("Connected to Horizon", url=self.horizon_url)
        if self._http is None:
            self._http = httpx.AsyncClient(timeout=settings.faucet_timeout)

    async def disconnect(self) -> None:
        """Close connections"""
        if self._server:
            await self._server.close()
            self._server = None
            logger.info("Disconnected from Horizon")
        if self._http:
            await self._http.aclose()
            self._http = None

    @property
    def server(self) -> ServerAsync:
        """Get the Horizon server, raise if not connected"""
        if self._server is None:
            raise RuntimeError("Stellar client not connected. Call connect() first.")
        return self._server

    @property
    def http(self) -> httpx.AsyncClient:
        if self._http is None:
            raise RuntimeError("Stellar client not connected. Call connect() first.")
        return self._http

    def asset(self, issuer_public_key: str) -> Asset:
        """The E4C asset descriptor for an issuer"""
        return Asset(settings.asset_code, issuer_public_key)

    # Account reads

    async def get_account(self, public_key: str) -> Optional[Dict[str, Any]]:
        """GET /accounts/{id}; None when the account does not exist yet"""
        try:
            return await self.server.accounts().account_id(public_key).call()
        except NotFoundError:
            return None
        except BaseHorizonError as e:
            raise LedgerRejection(
                f"Horizon could not load account {public_key}: {e.title or e.status}",
                extras={"public_key": public_key, "status": e.status},
            ) from e
        except HorizonConnectionError as e:
            raise LedgerRejection(
                f"Could not reach Horizon: {e}", extras={"public_key": public_key}
            ) from e

    async def account_exists(self, public_key: str) -> bool:
        return await self.get_account(public_key) is not None

    async def get_asset_balance(self, public_key: str, asset: Asset) -> Optional[Decimal]:
        """Balance of `asset` held by the account, None without a trustline"""
        account = await self.get_account(public_key)
        if account is None:
            return None
        for balance in account.get("balances", []):
            if (
                balance.get("asset_code") == asset.code
                and balance.get("asset_issuer") == asset.issuer
            ):
                return Decimal(balance["balance"])
        return None

    # Activation

    async def fund_account(self, public_key: str) -> None:
        """Ask the faucet for the minimum balance grant"""
        try:
            response = await self.http.get(self.friendbot_url, params={"addr": public_key})
        except httpx.HTTPError as e:
            raise LedgerActivationFailure(
                f"Faucet request failed for {public_key}: {e}",
                {"public_key": public_key},
            ) from e

        if response.is_error:
            raise LedgerActivationFailure(
                f"Faucet refused to fund {public_key}",
                {"public_key": public_key, "status": response.status_code, "body": response.text[:500]},
            )
        logger.info("Faucet funding requested", public_key=public_key)

    async def wait_for_account(self, public_key: str) -> Dict[str, Any]:
        """Poll until the account is visible, with exponential backoff and a hard timeout"""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + settings.activation_timeout
        delay = settings.activation_initial_delay
        attempts = 0
        last_error = None

        while True:
            attempts += 1
            try:
                account = await self.get_account(public_key)
            except LedgerRejection as e:
                # Horizon hiccups while the account propagates; keep polling
                logger.warning("Account lookup failed", public_key=public_key, attempts=attempts, error=e.detail)
                account, last_error = None, e.detail
            if account is not None:
                logger.info("Account active on ledger", public_key=public_key, attempts=attempts)
                return account

            remaining = deadline - loop.time()
            if remaining <= 0:
                details = {"public_key": public_key, "attempts": attempts}
                if last_error is not None:
                    details["last_error"] = last_error
                raise LedgerActivationFailure(
                    f"Account {public_key} not visible after {settings.activation_timeout}s",
                    details,
                )
            await asyncio.sleep(min(delay, remaining))
            delay = min(delay * settings.activation_backoff_factor, settings.activation_max_delay)

    # Submission

    async def submit(
        self,
        source: str,
        signers: Sequence[Keypair],
        build: Callable[[TransactionBuilder], Any],
    ) -> str:
        """
        Build, sign and submit one transaction from `source`.

        Loading the sequence number and submitting happen under the source
        account's lock. Rejections are raised, never retried: a stale
        sequence number makes blind retry unsafe.

        Returns:
            The confirmed transaction hash
        """
        async with self._account_locks.hold(source):
            try:
                account = await self.server.load_account(source)
            except NotFoundError as e:
                raise LedgerActivationFailure(
                    f"Source account {source} does not exist on the ledger",
                    {"public_key": source},
                ) from e
            except BaseHorizonError as e:
                raise _rejection(e) from e
            except HorizonConnectionError as e:
                raise LedgerRejection(
                    f"Could not reach Horizon: {e}", extras={"outcome": "not_submitted"}
                ) from e

            builder = TransactionBuilder(
                source_account=account,
                network_passphrase=self.network_passphrase,
                base_fee=settings.base_fee,
            )
            build(builder)
            transaction = builder.set_timeout(settings.tx_timeout).build()
            for keypair in signers:
                transaction.sign(keypair)

            try:
                response = await self.server.submit_transaction(
                    transaction, skip_memo_required_check=True
                )
            except BaseHorizonError as e:
                rejection = _rejection(e)
                logger.warning(
                    "Ledger rejected transaction",
                    source=source,
                    status=e.status,
                    result_codes=rejection.result_codes,
                )
                raise rejection from e
            except HorizonConnectionError as e:
                raise LedgerRejection(
                    f"Could not reach Horizon: {e}", extras={"outcome": "unknown"}
                ) from e

        tx_hash = response["hash"]
        logger.info("Transaction confirmed", source=source, tx_hash=tx_hash)
        return tx_hash

    async def change_trust(
        self,
        source: str,
        signers: Sequence[Keypair],
        asset: Asset,
        limit: Optional[str] = None,
    ) -> str:
        """Authorize `source` to hold `asset`; repeating it is harmless"""
        limit = limit or settings.trustline_limit
        return await self.submit(
            source,
            signers,
            lambda builder: builder.append_change_trust_op(asset=asset, limit=limit),
        )

    async def pay(
        self,
        source: str,
        signers: Sequence[Keypair],
        destination: str,
        asset: Asset,
        amount: int,
        memo_text: Optional[str] = None,
    ) -> str:
        """Payment of `amount` units of `asset`; the issuer paying out mints"""

        def build(builder: TransactionBuilder) -> None:
            builder.append_payment_op(destination=destination, asset=asset, amount=str(amount))
            if memo_text:
                builder.add_text_memo(memo_text)

        return await self.submit(source, signers, build)

    async def harden_wallet(self, master: Keypair) -> HardenedKeys:
        """
        Install device and recovery signers and demote the master key, in one transaction.

        Three add-signer operations come first so the account never passes
        through a state where nobody can sign.
        """
        keys = generate_hardening_keys()

        def build(builder: TransactionBuilder) -> None:
            for public_key, weight in keys.signer_weights().items():
                builder.append_ed25519_public_key_signer(account_id=public_key, weight=weight)
            builder.append_set_options_op(
                master_weight=MASTER_WEIGHT,
                low_threshold=HARDENED_THRESHOLDS.low,
                med_threshold=HARDENED_THRESHOLDS.medium,
                high_threshold=HARDENED_THRESHOLDS.high,
            )

        tx_hash = await self.submit(master.public_key, [master], build)
        return replace(keys, tx_hash=tx_hash)


# Singleton instance
_stellar_client: Optional[StellarClient] = None


async def get_stellar_client() -> StellarClient:
    """Get or create Stellar client singleton"""
    global _stellar_client
    if _stellar_client is None:
        _stellar_client = StellarClient()
        await _stellar_client.connect()
    return _stellar_client


async def close_stellar_client() -> None:
    """Close Stellar client singleton"""
    global _stellar_client
    if _stellar_client is not None:
        await _stellar_client.disconnect()
        _stellar_client = None
