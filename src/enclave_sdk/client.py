"""
EnclaveClient: the main entry point.

Wires the REST client, the local stores, the two action flows and the
realtime client together behind one object.

Usage:
    from enclave_sdk import EnclaveClient, EnclaveConfig, Signer

    config = EnclaveConfig(api_url="https://enclave.example")
    signer = Signer.from_private_key(os.environ["PRIVATE_KEY"])

    async with EnclaveClient(config, signer) as client:
        allocations = await client.create_commitment(checkbook_id, ["1500000000000000000"])
        request = await client.withdraw([a.id for a in allocations], intent)
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Sequence
from typing import Any

import httpx

from enclave_sdk.actions.commitment import CommitmentAction, PreparedCommitment, SignedCommitment
from enclave_sdk.actions.withdrawal import PreparedWithdrawal, SignedWithdrawal, WithdrawalAction
from enclave_sdk.core.address import UniversalAddress
from enclave_sdk.core.amount import AmountLike
from enclave_sdk.core.api import EnclaveAPI
from enclave_sdk.core.config import EnclaveConfig
from enclave_sdk.core.errors import EnclaveError, WebSocketError
from enclave_sdk.core.models import (
    Allocation,
    AssetTokenIntent,
    RawTokenIntent,
    WithdrawRequest,
    WithdrawStats,
)
from enclave_sdk.core.signer import Signer
from enclave_sdk.core.store import AllocationStore, CheckbookStore, PriceStore, WithdrawalStore
from enclave_sdk.realtime.client import RealtimeClient
from enclave_sdk.realtime.messages import EntityUpdate
from enclave_sdk.realtime.reconnection import ReconnectionPolicy
from enclave_sdk.realtime.subscriptions import Channel
from enclave_sdk.realtime.transport import TransportFactory


class EnclaveClient:
    """
    High-level client.

    Args:
        config: validated on construction.
        signer: a Signer, or anything Signer.coerce accepts.
        http_transport: optional httpx transport (tests use httpx.MockTransport).
        realtime_transport: optional transport factory for the realtime client.
        logger: optional logger; components log under its children.
    """

    # Page size used by refresh() when walking the list endpoints
    refresh_page_size = 100

    def __init__(
        self,
        config: EnclaveConfig,
        signer: Any,
        http_transport: httpx.AsyncBaseTransport | None = None,
        realtime_transport: TransportFactory | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        config.validate()
        self.config = config
        self.signer = Signer.coerce(signer)
        self._log = logger or logging.getLogger("enclave_sdk.client")

        self.api = EnclaveAPI(
            config.api_url,
            auth_token=config.auth_token,
            timeout=config.timeout,
            headers=config.headers,
            transport=http_transport,
            logger=self._log.getChild("api"),
        )
        self.checkbooks = CheckbookStore(logger=self._log.getChild("store"))
        self.allocations = AllocationStore(logger=self._log.getChild("store"))
        self.withdrawals = WithdrawalStore(logger=self._log.getChild("store"))
        self.prices = PriceStore(logger=self._log.getChild("store"))

        self.commitments = CommitmentAction(
            self.api,
            self.checkbooks,
            self.allocations,
            self.signer,
            language=config.language,
            submit_timeout=config.commitment_timeout,
            logger=self._log.getChild("commitment"),
        )
        self.withdraws = WithdrawalAction(
            self.api,
            self.checkbooks,
            self.allocations,
            self.withdrawals,
            self.signer,
            language=config.language,
            logger=self._log.getChild("withdrawal"),
        )
        self.realtime = RealtimeClient(
            config.ws_url,
            transport_factory=realtime_transport,
            auth_token=config.auth_token,
            auto_reconnect=config.auto_reconnect,
            reconnect=ReconnectionPolicy(
                initial_delay=config.reconnect_delay,
                max_delay=config.max_reconnect_delay,
                multiplier=config.reconnect_multiplier,
                max_attempts=config.max_reconnect_attempts,
                logger=self._log.getChild("realtime"),
            ),
            ping_interval=config.ping_interval,
            ping_timeout=config.ping_timeout,
            logger=self._log.getChild("realtime"),
        )
        self.realtime.on(Channel.CHECKBOOKS.value, self._route(self.checkbooks))
        self.realtime.on(Channel.ALLOCATIONS.value, self._route(self.allocations))
        self.realtime.on(Channel.WITHDRAWALS.value, self._route(self.withdrawals))
        self.realtime.on(Channel.PRICES.value, self._on_prices)
        self.realtime.on("connected", self._on_realtime_connected)

        self._owner: UniversalAddress | None = None
        self._synced = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def owner(self) -> UniversalAddress | None:
        return self._owner

    @property
    def is_authenticated(self) -> bool:
        return self.api.is_authenticated

    async def authenticate(self) -> str:
        """nonce -> sign -> login. Returns the bearer token."""
        owner = await self.signer.get_universal_address()
        nonce = await self.api.get_nonce(owner.canonical_hex())
        signature = await self.signer.sign_message(nonce["message"])
        token = await self.api.login(owner, nonce["message"], signature)
        self._owner = owner
        return token

    async def connect(self) -> None:
        """
        Authenticate, start realtime sync and load the initial state.

        Authentication errors propagate. Realtime and initial-load failures
        are logged; the client stays usable over REST.
        """
        self._log.info("Connecting Enclave client")
        token = await self.authenticate()
        owner_hex = self._owner.canonical_hex()

        self.realtime.set_auth_token(token)
        try:
            await self.realtime.connect()
        except WebSocketError as e:
            self._log.warning(f"Realtime unavailable, continuing without live updates: {e}")

        for channel in (Channel.CHECKBOOKS, Channel.ALLOCATIONS, Channel.WITHDRAWALS):
            await self.realtime.subscribe(channel, owner=owner_hex)
        await self.realtime.subscribe(Channel.PRICES)

        await self.refresh(owner_hex)
        self._log.info("Enclave client ready")

    async def refresh(self, owner_hex: str | None = None) -> None:
        """
        Reload checkbooks, allocations and withdraw requests, every page of
        each. A failed list leaves its store untouched and is logged.
        """
        owner_hex = owner_hex or (self._owner.canonical_hex() if self._owner else None)
        size = self.refresh_page_size
        loaders = (
            ("checkbooks", self.checkbooks,
             lambda page: self.api.list_checkbooks(owner=owner_hex, page=page, limit=size)),
            ("allocations", self.allocations,
             lambda page: self.api.list_allocations(owner=owner_hex, page=page, limit=size)),
            ("withdraw requests", self.withdrawals,
             lambda page: self.api.list_withdraw_requests(page=page, limit=size)),
        )
        for name, store, load in loaders:
            try:
                store.replace_all(await self._load_pages(load, size))
            except EnclaveError as e:
                self._log.error(f"Load of {name} failed: {e}")
        self._synced = True

    async def _load_pages(self, load: Callable[[int], Awaitable[list[Any]]], size: int) -> list[Any]:
        items: dict[str, Any] = {}
        page = 1
        while True:
            batch = await load(page)
            fresh = [e for e in batch if e.id not in items]
            items.update((e.id, e) for e in fresh)
            # a short page ends the list; a page of repeats means paging is ignored
            if len(batch) < size or not fresh:
                return list(items.values())
            page += 1

    async def close(self) -> None:
        await self.realtime.disconnect()
        await self.api.close()
        self._log.info("Enclave client closed")

    async def __aenter__(self) -> EnclaveClient:
        await self.connect()
        return self

    async def __aexit__(self, *_: Any) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Realtime routing
    # ------------------------------------------------------------------

    def _route(self, store: Any):
        def apply(update: EntityUpdate) -> None:
            store.apply_update(update)

        return apply

    def _on_prices(self, update: EntityUpdate) -> None:
        self.prices.upsert_many(update.entity)

    async def _on_realtime_connected(self, _: Any) -> None:
        # Updates missed while disconnected are only recoverable over REST.
        if self._synced:
            self._log.info("Realtime reconnected; refreshing state")
            await self.refresh()

    # ------------------------------------------------------------------
    # Commitments
    # ------------------------------------------------------------------

    async def prepare_commitment(
        self, checkbook_id: str, amounts: Sequence[AmountLike], language: int | None = None
    ) -> PreparedCommitment:
        return await self.commitments.prepare(checkbook_id, amounts, language)

    async def submit_commitment(self, signed: SignedCommitment) -> list[Allocation]:
        return await self.commitments.submit(signed)

    async def create_commitment(
        self, checkbook_id: str, amounts: Sequence[AmountLike], language: int | None = None
    ) -> list[Allocation]:
        return await self.commitments.create(checkbook_id, amounts, language)

    # ------------------------------------------------------------------
    # Withdrawals
    # ------------------------------------------------------------------

    async def prepare_withdraw(
        self,
        allocation_ids: Sequence[str],
        intent: RawTokenIntent | AssetTokenIntent,
        language: int | None = None,
        min_output: AmountLike = "0",
        metadata: dict[str, Any] | None = None,
    ) -> PreparedWithdrawal:
        return await self.withdraws.prepare(allocation_ids, intent, language, min_output, metadata)

    async def submit_withdraw(self, signed: SignedWithdrawal) -> WithdrawRequest:
        return await self.withdraws.submit(signed)

    async def withdraw(
        self,
        allocation_ids: Sequence[str],
        intent: RawTokenIntent | AssetTokenIntent,
        language: int | None = None,
        min_output: AmountLike = "0",
        metadata: dict[str, Any] | None = None,
    ) -> WithdrawRequest:
        return await self.withdraws.withdraw(allocation_ids, intent, language, min_output, metadata)

    async def retry_withdraw(self, withdraw_id: str) -> WithdrawRequest:
        return await self.withdraws.retry(withdraw_id)

    async def cancel_withdraw(self, withdraw_id: str) -> WithdrawRequest:
        return await self.withdraws.cancel(withdraw_id)

    async def get_withdraw_stats(self, token_id: str | None = None) -> WithdrawStats:
        return await self.withdraws.get_withdraw_stats(token_id)
