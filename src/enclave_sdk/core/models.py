"""
Domain models for the Enclave protocol, and the wire -> domain mapping layer.

The backend speaks snake_case JSON and is inconsistent about which optional
fields it includes (nested `recipient` objects vs. flat `recipient_data`,
`allocation_ids` as a list or as a JSON-encoded string, ...). Every one of
those fallbacks lives in a `from_wire` classmethod in this module; business
logic only ever sees the validated, immutable models below.

All amounts are integer strings in the token's smallest unit. All chain ids
are SLIP-44.
"""

from __future__ import annotations

import json
from typing import Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from enclave_sdk.core.address import UniversalAddress
from enclave_sdk.core.amount import amount_to_int
from enclave_sdk.core.errors import ValidationError
from enclave_sdk.core.hashing import strip_0x
from enclave_sdk.core.status import (
    AllocationStatus,
    CheckbookStatus,
    FrontendWithdrawStatus,
    WithdrawStatus,
    can_cancel_withdraw,
    can_retry_withdraw,
    get_frontend_status,
    is_terminal_status,
    parse_enum,
)


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


def _pick(data: dict[str, Any], *keys: str, default: Any = None) -> Any:
    """First present, non-None value among `keys`."""
    for k in keys:
        v = data.get(k)
        if v is not None:
            return v
    return default


def _amount_str(value: Any, default: str = "0") -> str:
    if value is None or value == "":
        return default
    return str(amount_to_int(value))


def _opt_int(value: Any) -> int | None:
    if value is None or value == "":
        return None
    return int(value)


def _universal(chain_id: Any, data: Any, display: Any = None) -> UniversalAddress | None:
    if chain_id is None or not data:
        return None
    ua = UniversalAddress.from_native(str(data), int(chain_id))
    if display:
        ua = ua.model_copy(update={"display_address": str(display)})
    return ua


def _universal_from_obj(obj: Any) -> UniversalAddress | None:
    if not isinstance(obj, dict):
        return None
    return _universal(
        _pick(obj, "chain_id", "chainId", "slip44_chain_id"),
        _pick(obj, "data", "universal_format", "universalFormat", "address"),
        _pick(obj, "display_address", "displayAddress"),
    )


# ==============================================================================
# Tokens & prices
# ==============================================================================


class Token(_Frozen):
    """Token descriptor attached to a checkbook or allocation."""
    symbol: str
    decimals: int = 18
    id: str | None = None
    name: str | None = None
    chain_id: int | None = None

    @classmethod
    def from_wire(cls, data: dict[str, Any]) -> Token:
        return cls(
            symbol=_pick(data, "symbol", "token_symbol", "tokenSymbol", default=""),
            decimals=int(_pick(data, "decimals", "token_decimals", default=18)),
            id=_opt_str(_pick(data, "id", "token_id", "tokenId", "token_key")),
            name=_pick(data, "name"),
            chain_id=_opt_int(_pick(data, "chain_id", "chainId", "slip44_chain_id")),
        )


class TokenPrice(_Frozen):
    symbol: str
    price: str
    change_24h: str | None = None
    timestamp: int | None = None

    @classmethod
    def from_wire(cls, data: dict[str, Any]) -> TokenPrice:
        change = _pick(data, "change_24h", "change24h")
        return cls(
            symbol=str(_pick(data, "symbol", "token_symbol", "asset_id", default="")),
            price=str(_pick(data, "price", "price_usd", default="0")),
            change_24h=None if change is None else str(change),
            timestamp=_opt_int(_pick(data, "timestamp", "updated_at")),
        )


def _opt_str(v: Any) -> str | None:
    return None if v is None else str(v)


# ==============================================================================
# Checkbooks & allocations
# ==============================================================================


class Checkbook(_Frozen):
    """One on-chain deposit. `local_deposit_id` feeds every hash derived from it."""
    id: str
    local_deposit_id: int | None = None
    slip44_chain_id: int | None = None
    token: Token | None = None
    gross_amount: str = "0"
    allocatable_amount: str = "0"
    commitment: str | None = None
    status: CheckbookStatus | None = None
    raw_status: str | None = None
    owner: UniversalAddress | None = None
    deposit_tx_hash: str | None = None
    created_at: int | None = None
    updated_at: int | None = None

    @property
    def token_symbol(self) -> str | None:
        return self.token.symbol if self.token and self.token.symbol else None

    @classmethod
    def from_wire(cls, data: dict[str, Any]) -> Checkbook:
        raw_status = _pick(data, "status")
        token_obj = data.get("token")
        if isinstance(token_obj, dict):
            token = Token.from_wire(token_obj)
        elif _pick(data, "token_symbol", "tokenSymbol", "token_key"):
            token = Token(
                symbol=_pick(data, "token_symbol", "tokenSymbol", "token_key"),
                decimals=int(_pick(data, "token_decimals", "tokenDecimals", default=18)),
                id=_opt_str(_pick(data, "token_id", "tokenId")),
            )
        else:
            token = None

        owner = _universal_from_obj(data.get("owner")) or _universal(
            _pick(data, "owner_slip44_chain_id", "owner_chain_id"),
            _pick(data, "owner_data", "user_data"),
        )
        return cls(
            id=str(_pick(data, "id", "checkbook_id", "checkbookId")),
            local_deposit_id=_opt_int(_pick(data, "local_deposit_id", "localDepositId")),
            slip44_chain_id=_opt_int(_pick(data, "slip44_chain_id", "slip44ChainId", "chain_id", "chainId")),
            token=token,
            gross_amount=_amount_str(_pick(data, "gross_amount", "grossAmount", "amount")),
            allocatable_amount=_amount_str(_pick(data, "allocatable_amount", "allocatableAmount")),
            commitment=_pick(data, "commitment"),
            status=parse_enum(CheckbookStatus, raw_status),
            raw_status=_opt_str(raw_status),
            owner=owner,
            deposit_tx_hash=_pick(data, "deposit_transaction_hash", "deposit_tx_hash", "depositTxHash"),
            created_at=_opt_int(_pick(data, "created_at", "createdAt")),
            updated_at=_opt_int(_pick(data, "updated_at", "updatedAt")),
        )


class Allocation(_Frozen):
    """One spendable slice of a checkbook. Only `seq` and `amount` are hashed."""
    id: str
    checkbook_id: str
    seq: int
    amount: str
    commitment: str | None = None
    nullifier: str | None = None
    status: AllocationStatus = AllocationStatus.IDLE
    token: Token | None = None
    withdraw_request_id: str | None = None

    @field_validator("seq")
    @classmethod
    def _seq_range(cls, v: int) -> int:
        if not 0 <= v <= 255:
            raise ValidationError(f"allocation seq must be in 0..255, got {v}", "seq")
        return v

    @field_validator("amount", mode="before")
    @classmethod
    def _normalize_amount(cls, v: Any) -> str:
        return str(amount_to_int(v))

    @classmethod
    def from_wire(cls, data: dict[str, Any]) -> Allocation:
        token_obj = data.get("token")
        return cls(
            id=str(_pick(data, "id", "allocation_id")),
            checkbook_id=str(_pick(data, "checkbook_id", "checkbookId", default="")),
            seq=int(_pick(data, "seq", "sequence", default=0)),
            amount=_amount_str(_pick(data, "amount")),
            commitment=_pick(data, "commitment"),
            nullifier=_pick(data, "nullifier"),
            status=parse_enum(AllocationStatus, _pick(data, "status")) or AllocationStatus.IDLE,
            token=Token.from_wire(token_obj) if isinstance(token_obj, dict) else None,
            withdraw_request_id=_opt_str(_pick(data, "withdraw_request_id", "withdrawRequestId")),
        )


class DepositInfo(_Frozen):
    """Per-allocation checkbook context used when rendering cross-deposit withdrawals."""
    local_deposit_id: int
    slip44_chain_id: int


# ==============================================================================
# Intents
# ==============================================================================


class RawTokenIntent(_Frozen):
    """Withdraw the deposited token itself to `beneficiary`."""
    type: Literal["RawToken"] = "RawToken"
    beneficiary: UniversalAddress
    token_symbol: str

    def to_wire(self) -> dict[str, Any]:
        return {
            "type": 0,
            "beneficiaryChainId": self.beneficiary.chain_id,
            "beneficiaryAddress": self.beneficiary.to_hex(prefix=False),
            "tokenSymbol": self.token_symbol,
        }


class AssetTokenIntent(_Frozen):
    """
    Withdraw into a derived asset (yield token etc.).

    `asset_id` is 32 bytes: bytes 0-3 carry the asset's chain id, bytes 4-7
    the adapter id.
    """
    type: Literal["AssetToken"] = "AssetToken"
    beneficiary: UniversalAddress
    asset_id: str
    asset_token_symbol: str

    @field_validator("asset_id")
    @classmethod
    def _asset_id_len(cls, v: str) -> str:
        body = strip_0x(v)
        if len(body) != 64 or any(c not in "0123456789abcdefABCDEF" for c in body):
            raise ValidationError("asset_id must be a 32-byte hex value", "asset_id")
        return "0x" + body.lower()

    def to_wire(self) -> dict[str, Any]:
        return {
            "type": 1,
            "beneficiaryChainId": self.beneficiary.chain_id,
            "beneficiaryAddress": self.beneficiary.to_hex(prefix=False),
            "assetId": self.asset_id,
            "tokenSymbol": self.asset_token_symbol,
        }


Intent = Union[RawTokenIntent, AssetTokenIntent]


def intent_from_wire(data: dict[str, Any], beneficiary: UniversalAddress | None) -> RawTokenIntent | AssetTokenIntent | None:
    """Rebuild an intent from flat withdraw-request columns or a nested `intent` object."""
    nested = data.get("intent") if isinstance(data.get("intent"), dict) else {}
    src = {**data, **nested}
    kind = _pick(src, "intent_type", "type")
    if beneficiary is None:
        beneficiary = _universal(
            _pick(src, "beneficiaryChainId", "beneficiary_chain_id"),
            _pick(src, "beneficiaryAddress", "beneficiary_address"),
        )
    if beneficiary is None or kind is None:
        return None
    if kind in (1, "1", "AssetToken"):
        return AssetTokenIntent(
            beneficiary=beneficiary,
            asset_id=_pick(src, "asset_id", "assetId"),
            asset_token_symbol=_pick(src, "asset_token_symbol", "assetTokenSymbol", "token_symbol", "tokenSymbol", default=""),
        )
    return RawTokenIntent(
        beneficiary=beneficiary,
        token_symbol=_pick(src, "token_symbol", "tokenSymbol", default=""),
    )


# ==============================================================================
# Withdraw requests
# ==============================================================================


class WithdrawRequest(_Frozen):
    """A withdrawal spanning one or more allocations, tracked through four stages."""
    id: str
    status: WithdrawStatus | None = None
    raw_status: str | None = None
    allocation_ids: list[str] = Field(default_factory=list)
    checkbook_id: str | None = None
    amount: str = "0"
    nullifier: str | None = None
    beneficiary: UniversalAddress | None = None
    owner: UniversalAddress | None = None
    intent: Optional[Intent] = None

    proof_status: str | None = None
    execute_status: str | None = None
    payout_status: str | None = None
    hook_status: str | None = None

    execute_tx_hash: str | None = None
    payout_tx_hash: str | None = None
    hook_tx_hash: str | None = None
    on_chain_request_id: str | None = None
    error_message: str | None = None
    created_at: int | None = None
    updated_at: int | None = None

    @property
    def frontend_status(self) -> FrontendWithdrawStatus:
        return get_frontend_status(self.status)

    @property
    def can_retry(self) -> bool:
        return can_retry_withdraw(self.status)

    @property
    def can_cancel(self) -> bool:
        return can_cancel_withdraw(self.status)

    @property
    def is_terminal(self) -> bool:
        return is_terminal_status(self.status)

    @classmethod
    def from_wire(cls, data: dict[str, Any]) -> WithdrawRequest:
        ids = _pick(data, "allocation_ids", "allocationIds", default=[])
        if isinstance(ids, str):
            ids = json.loads(ids) if ids.strip() else []
        allocation_ids = sorted({str(i) for i in ids})

        beneficiary = _universal_from_obj(data.get("recipient")) or _universal_from_obj(
            data.get("beneficiary")
        ) or _universal(
            _pick(data, "recipient_slip44_chain_id", "recipient_chain_id"),
            _pick(data, "recipient_data", "recipient_address"),
        )
        owner = _universal_from_obj(data.get("owner")) or _universal(
            _pick(data, "owner_slip44_chain_id", "owner_chain_id"),
            _pick(data, "owner_data"),
        )
        raw_status = _pick(data, "status")
        return cls(
            id=str(_pick(data, "id", "withdraw_request_id")),
            status=parse_enum(WithdrawStatus, raw_status),
            raw_status=_opt_str(raw_status),
            allocation_ids=allocation_ids,
            checkbook_id=_opt_str(_pick(data, "checkbook_id", "checkbookId")),
            amount=_amount_str(_pick(data, "amount", "total_amount")),
            nullifier=_pick(data, "nullifier", "withdraw_nullifier"),
            beneficiary=beneficiary,
            owner=owner,
            intent=intent_from_wire(data, beneficiary),
            proof_status=_pick(data, "proof_status", "proofStatus"),
            execute_status=_pick(data, "execute_status", "executeStatus"),
            payout_status=_pick(data, "payout_status", "payoutStatus"),
            hook_status=_pick(data, "hook_status", "hookStatus"),
            execute_tx_hash=_pick(data, "execute_tx_hash", "executeTxHash"),
            payout_tx_hash=_pick(data, "payout_tx_hash", "payoutTxHash"),
            hook_tx_hash=_pick(data, "hook_tx_hash", "hookTxHash"),
            on_chain_request_id=_pick(data, "on_chain_request_id", "onChainRequestId", "request_id"),
            error_message=_pick(data, "error_message", "errorMessage", "last_error"),
            created_at=_opt_int(_pick(data, "created_at", "createdAt")),
            updated_at=_opt_int(_pick(data, "updated_at", "updatedAt")),
        )


class WithdrawStats(_Frozen):
    total: int = 0
    pending: int = 0
    completed: int = 0
    failed: int = 0
    total_amount: str = "0"
    completed_amount: str = "0"
    by_status: dict[str, int] = Field(default_factory=dict)

    @classmethod
    def from_wire(cls, data: dict[str, Any]) -> WithdrawStats:
        stats = data.get("stats") if isinstance(data.get("stats"), dict) else data
        by_status = stats.get("by_status") or stats.get("byStatus") or {}
        return cls(
            total=int(_pick(stats, "total", "total_count", "totalCount", default=0)),
            pending=int(_pick(stats, "pending", "pending_count", "pendingCount", default=0)),
            completed=int(_pick(stats, "completed", "completed_count", "completedCount", default=0)),
            failed=int(_pick(stats, "failed", "failed_count", "failedCount", default=0)),
            total_amount=_amount_str(_pick(stats, "total_amount", "totalAmount")),
            completed_amount=_amount_str(_pick(stats, "completed_amount", "completedAmount")),
            by_status={str(k): int(v) for k, v in by_status.items()},
        )


# ==============================================================================
# Formatter outputs
# ==============================================================================


class CommitmentSignData(_Frozen):
    """What the wallet signs to split a checkbook into allocations."""
    message: str
    message_hash: str
    commitment: str
    deposit_id: str
    token_key: str
    chain_id: int
    seqs: list[int]
    amounts: list[str]
    total_amount: str


class WithdrawalSignData(_Frozen):
    """What the wallet signs to withdraw a set of allocations."""
    message: str
    message_hash: str
    nullifier: str
    allocation_ids: list[str]
    total_amount: str
    token_symbol: str
    target_chain: int
    target_address: str
