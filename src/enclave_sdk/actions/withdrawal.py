"""
WithdrawalAction: spend allocations to a beneficiary.

    prepared = await action.prepare(["a1", "a2"], RawTokenIntent(beneficiary=to, token_symbol="USDT"))
    signed   = await action.sign(prepared)
    request  = await action.submit(signed)

Allocations may come from several checkbooks. Each allocation's own
checkbook supplies its local deposit id and chain for the message, and its
commitment when the allocation record lacks one.

After submission the request moves through the backend state machine
(see `enclave_sdk.core.status`). Two transitions are caller-driven:

    retry   only from proof_failed / submit_failed
    cancel  from proof_failed / submit_failed / verify_failed

verify_failed means the proof or nullifier was rejected on-chain; it is
never retried.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Any

from enclave_sdk.actions.common import (
    is_conflict,
    resolve_allocation,
    resolve_checkbook,
    tag_step,
)
from enclave_sdk.core.amount import AmountLike
from enclave_sdk.core.api import EnclaveAPI
from enclave_sdk.core.errors import (
    EnclaveError,
    InvalidStateError,
    ValidationError,
    WithdrawStateError,
)
from enclave_sdk.core.models import (
    Allocation,
    AssetTokenIntent,
    Checkbook,
    DepositInfo,
    RawTokenIntent,
    WithdrawalSignData,
    WithdrawRequest,
    WithdrawStats,
)
from enclave_sdk.core.signer import Signer
from enclave_sdk.core.status import (
    AllocationStatus,
    WithdrawStatus,
    can_cancel_withdraw,
    can_retry_withdraw,
)
from enclave_sdk.core.store import AllocationStore, CheckbookStore, WithdrawalStore
from enclave_sdk.formatters.languages import LANG_EN
from enclave_sdk.formatters.withdraw import prepare_withdrawal_message, sort_allocations_by_id

WITHDRAW_CHECKBOOK_FIELDS = ("local_deposit_id", "slip44_chain_id")


def _is_idle(allocation: Allocation) -> bool:
    return allocation.status == AllocationStatus.IDLE


@dataclass(frozen=True)
class PreparedWithdrawal:
    allocations: tuple[Allocation, ...]     # id-sorted, commitments filled
    intent: RawTokenIntent | AssetTokenIntent
    sign_data: WithdrawalSignData
    checkbook_id: str
    token_symbol: str
    language: int
    metadata: dict[str, Any] | None = field(default=None)

    @property
    def message(self) -> str:
        return self.sign_data.message


@dataclass(frozen=True)
class SignedWithdrawal:
    prepared: PreparedWithdrawal
    signature: str


class WithdrawalAction:
    """Orchestrates prepare -> sign -> submit, plus retry / cancel, for withdrawals."""

    def __init__(
        self,
        api: EnclaveAPI,
        checkbooks: CheckbookStore,
        allocations: AllocationStore,
        withdrawals: WithdrawalStore,
        signer: Signer,
        language: int = LANG_EN,
        logger: logging.Logger | None = None,
    ) -> None:
        self.api = api
        self.checkbooks = checkbooks
        self.allocations = allocations
        self.withdrawals = withdrawals
        self.signer = signer
        self.language = language
        self._log = logger or logging.getLogger("enclave_sdk.actions.withdrawal")

    # ------------------------------------------------------------------
    # Prepare
    # ------------------------------------------------------------------

    async def prepare(
        self,
        allocation_ids: Sequence[str],
        intent: RawTokenIntent | AssetTokenIntent,
        language: int | None = None,
        min_output: AmountLike = "0",
        metadata: dict[str, Any] | None = None,
        chain_name: str | None = None,
    ) -> PreparedWithdrawal:
        """
        Resolve allocations and their checkbooks, then build the message.

        Raises:
            ValidationError: no ids, duplicate ids or a malformed intent.
            NotFoundError: an allocation or checkbook does not exist.
            InvalidStateError: an allocation is not idle, or a checkbook lacks
                its deposit id / chain / commitment after one refetch.
        """
        ids = list(allocation_ids or [])
        if not ids:
            raise ValidationError("At least one allocation id is required", "allocation_ids", step="prepare")
        if len(set(ids)) != len(ids):
            raise ValidationError(f"Duplicate allocation ids: {sorted(ids)}", "allocation_ids", step="prepare")
        if not isinstance(intent, (RawTokenIntent, AssetTokenIntent)):
            raise ValidationError(
                f"Invalid intent type: {type(intent).__name__}. Must be RawToken or AssetToken",
                "intent",
                step="prepare",
            )
        self._log.info(
            f"Preparing withdrawal of {len(ids)} allocations to "
            f"{intent.beneficiary.canonical_hex()} (chain {intent.beneficiary.chain_id}, {intent.type})"
        )

        allocations = [
            await resolve_allocation(self.api, self.allocations, i, self._log, accept=_is_idle) for i in ids
        ]
        for a in allocations:
            if a.status != AllocationStatus.IDLE:
                raise InvalidStateError(
                    f"Allocation {a.id} is {a.status.value}, only idle allocations can be withdrawn",
                    step="prepare",
                    details={"allocation_id": a.id, "status": a.status.value},
                )

        checkbooks: dict[str, Checkbook] = {}
        for a in allocations:
            if not a.checkbook_id:
                raise InvalidStateError(f"Allocation {a.id} has no checkbook_id", step="prepare")
        for checkbook_id in dict.fromkeys(a.checkbook_id for a in allocations):
            required = WITHDRAW_CHECKBOOK_FIELDS
            if any(not a.commitment for a in allocations if a.checkbook_id == checkbook_id):
                required += ("commitment",)
            checkbooks[checkbook_id] = await resolve_checkbook(
                self.api, self.checkbooks, checkbook_id, required, logger=self._log
            )
        if len(checkbooks) > 1:
            self._log.info(f"Cross-deposit withdrawal over checkbooks {sorted(checkbooks)}")

        deposit_info = {
            a.id: DepositInfo(
                local_deposit_id=checkbooks[a.checkbook_id].local_deposit_id,
                slip44_chain_id=checkbooks[a.checkbook_id].slip44_chain_id,
            )
            for a in allocations
        }

        filled = [
            a if a.commitment else a.model_copy(update={"commitment": checkbooks[a.checkbook_id].commitment})
            for a in allocations
        ]
        ordered = sort_allocations_by_id(filled)
        first = ordered[0]
        first_checkbook = checkbooks[first.checkbook_id]

        token_symbol = self._resolve_token_symbol(first_checkbook, first, intent)
        token = first_checkbook.token or first.token
        decimals = token.decimals if token else 18

        lang = self.language if language is None else language
        sign_data = prepare_withdrawal_message(
            ordered,
            intent,
            token_symbol,
            language=lang,
            chain_name=chain_name,
            deposit_info=deposit_info,
            min_output=min_output if min_output not in (None, "") else "0",
            token_decimals=decimals,
        )
        self._log.debug(f"Withdrawal nullifier {sign_data.nullifier} hash {sign_data.message_hash}")
        return PreparedWithdrawal(
            allocations=tuple(ordered),
            intent=intent,
            sign_data=sign_data,
            checkbook_id=first.checkbook_id,
            token_symbol=token_symbol,
            language=lang,
            metadata=metadata,
        )

    def _resolve_token_symbol(
        self, checkbook: Checkbook, allocation: Allocation, intent: RawTokenIntent | AssetTokenIntent
    ) -> str:
        if checkbook.token_symbol:
            return checkbook.token_symbol
        if allocation.token is not None and allocation.token.symbol:
            self._log.warning(f"Checkbook {checkbook.id} has no token symbol; using allocation {allocation.id}'s")
            return allocation.token.symbol
        fallback = intent.token_symbol if isinstance(intent, RawTokenIntent) else intent.asset_token_symbol
        if fallback:
            self._log.warning(f"Checkbook {checkbook.id} has no token symbol; using the intent's")
            return fallback
        raise InvalidStateError(
            f"Cannot determine token symbol for checkbook {checkbook.id}",
            step="prepare",
            details={"checkbook_id": checkbook.id},
        )

    # ------------------------------------------------------------------
    # Sign / submit
    # ------------------------------------------------------------------

    async def sign(self, prepared: PreparedWithdrawal) -> SignedWithdrawal:
        signature = await self.signer.sign_message(prepared.sign_data.message)
        return SignedWithdrawal(prepared=prepared, signature=signature)

    def build_submit_body(self, signed: SignedWithdrawal) -> dict[str, Any]:
        p = signed.prepared
        intent_wire = p.intent.to_wire()
        if not intent_wire.get("tokenSymbol"):
            intent_wire["tokenSymbol"] = p.token_symbol
        body: dict[str, Any] = {
            "checkbookId": p.checkbook_id,
            "allocationIds": list(p.sign_data.allocation_ids),
            "intent": intent_wire,
            "signature": signed.signature,
            "chainId": p.intent.beneficiary.chain_id,
            "message": p.sign_data.message,
            "nullifier": p.sign_data.nullifier,
        }
        if p.metadata:
            body["metadata"] = p.metadata
        return body

    async def submit(self, signed: SignedWithdrawal) -> WithdrawRequest:
        """
        Create the withdraw request. Caches are only touched after success.

        Raises:
            InvalidStateError: the backend reports a conflict (allocations
                already spent or in another request).
        """
        p = signed.prepared
        if not signed.signature:
            raise ValidationError("signature is required", "signature", step="submit")
        ids = list(p.sign_data.allocation_ids)
        self._log.info(f"Submitting withdrawal for allocations {ids}")
        try:
            request = await self.api.submit_withdraw(self.build_submit_body(signed))
        except EnclaveError as e:
            if is_conflict(e):
                raise InvalidStateError(
                    f"Allocations {ids} are already used or pending in another withdrawal",
                    step="submit",
                    details={"allocation_ids": ids},
                ) from e
            self._log.error(f"Withdrawal submit failed for allocations {ids}: {e}")
            raise tag_step(e, "submit")

        self.withdrawals.upsert(request)
        self.allocations.upsert_many(
            a.model_copy(update={"status": AllocationStatus.PENDING, "withdraw_request_id": request.id})
            for a in p.allocations
        )
        self._log.info(f"Created withdraw request {request.id} ({request.raw_status})")
        return request

    async def withdraw(
        self,
        allocation_ids: Sequence[str],
        intent: RawTokenIntent | AssetTokenIntent,
        language: int | None = None,
        min_output: AmountLike = "0",
        metadata: dict[str, Any] | None = None,
    ) -> WithdrawRequest:
        """Full flow: prepare, sign, submit."""
        prepared = await self.prepare(allocation_ids, intent, language, min_output, metadata)
        signed = await self.sign(prepared)
        return await self.submit(signed)

    # ------------------------------------------------------------------
    # Retry / cancel / queries
    # ------------------------------------------------------------------

    async def _load(self, withdraw_id: str, allowed: Callable[[WithdrawStatus | None], bool]) -> WithdrawRequest:
        """Cached request, refetched once when its cached status is not `allowed`."""
        cached = self.withdrawals.get(withdraw_id)
        if cached is not None:
            if allowed(cached.status):
                return cached
            self._log.info(f"Cached withdraw request {withdraw_id} is {cached.raw_status}; refetching once")
        request = await self.api.get_withdraw_request(withdraw_id)
        self.withdrawals.upsert(request)
        return request

    async def retry(self, withdraw_id: str) -> WithdrawRequest:
        """
        Retry a failed request.

        Raises:
            WithdrawStateError: the status does not allow retry. For
                verify_failed the error says the request must be cancelled.
        """
        request = await self._load(withdraw_id, can_retry_withdraw)
        if request.status == WithdrawStatus.VERIFY_FAILED:
            raise WithdrawStateError(
                f"Withdraw request {withdraw_id} is verify_failed: cannot retry, must cancel",
                status=request.raw_status or "verify_failed",
                action="retry",
                step="retry",
                details={"withdraw_id": withdraw_id},
            )
        if not can_retry_withdraw(request.status):
            raise WithdrawStateError(
                f"Withdraw request {withdraw_id} cannot be retried from status {request.raw_status!r}",
                status=request.raw_status or "unknown",
                action="retry",
                step="retry",
                details={"withdraw_id": withdraw_id},
            )
        self._log.info(f"Retrying withdraw request {withdraw_id} ({request.raw_status})")
        try:
            updated = await self.api.retry_withdraw(withdraw_id)
        except EnclaveError as e:
            raise tag_step(e, "retry")
        self.withdrawals.upsert(updated)
        return updated

    async def cancel(self, withdraw_id: str) -> WithdrawRequest:
        """
        Cancel a failed request and release its allocations.

        Raises:
            WithdrawStateError: the status does not allow cancellation.
        """
        request = await self._load(withdraw_id, can_cancel_withdraw)
        if not can_cancel_withdraw(request.status):
            raise WithdrawStateError(
                f"Withdraw request {withdraw_id} cannot be cancelled from status {request.raw_status!r}",
                status=request.raw_status or "unknown",
                action="cancel",
                step="cancel",
                details={"withdraw_id": withdraw_id},
            )
        self._log.info(f"Cancelling withdraw request {withdraw_id} ({request.raw_status})")
        try:
            updated = await self.api.cancel_withdraw(withdraw_id)
        except EnclaveError as e:
            raise tag_step(e, "cancel")
        self.withdrawals.upsert(updated)
        released = [
            a.model_copy(update={"status": AllocationStatus.IDLE, "withdraw_request_id": None})
            for a in self.allocations.by_withdraw_request(withdraw_id)
        ]
        if released:
            self.allocations.upsert_many(released)
        return updated

    async def get_withdraw_stats(self, token_id: str | None = None) -> WithdrawStats:
        """Aggregate counts and amounts; read-only."""
        return await self.api.get_withdraw_stats(token_id)

    async def get_by_nullifier(self, nullifier: str) -> WithdrawRequest:
        cached = self.withdrawals.by_nullifier(nullifier)
        if cached is not None:
            return cached
        request = await self.api.get_withdraw_by_nullifier(nullifier)
        self.withdrawals.upsert(request)
        return request
