"""
Withdrawal signing message.

A withdrawal may draw allocations from several checkbooks ("cross-deposit"),
so every allocation line names its own checkbook's local deposit id:

    🔓 Enclave Private Withdrawal

    🪙 Token: USDT
    📊 Allocations: 2 item(s)
      • Deposit 7 #0: 0.4 USDT (Ethereum)
      • Deposit 9 #1: 0.3 USDT (Ethereum)
    💰 Total: 0.7 USDT

    🎯 Target Token: USDT
    👤 To: 0x4da7cf999162ecb79749d0186e5759c7a6bd4477 on Ethereum
    🔗 Network: Ethereum (60)
    📉 Minimum Output: 0 USDT

Allocation ids are sorted before anything else happens; the nullifier comes
from the first id-sorted allocation and its commitment.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

from enclave_sdk.core.amount import amount_to_int, format_display_amount
from enclave_sdk.core.chain import get_chain_name
from enclave_sdk.core.errors import ValidationError
from enclave_sdk.core.hashing import keccak256_hex, strip_0x
from enclave_sdk.core.models import (
    Allocation,
    AssetTokenIntent,
    CommitmentSignData,
    DepositInfo,
    RawTokenIntent,
    WithdrawalSignData,
)
from enclave_sdk.crypto.commitment import AllocationInput, generate_nullifier
from enclave_sdk.formatters.languages import LANG_EN, get_labels


def extract_asset_chain_id(asset_id: str) -> int:
    """Bytes 0-3 of a 32-byte asset id, big-endian."""
    return int(_asset_body(asset_id)[0:8], 16)


def extract_adapter_id(asset_id: str) -> int:
    """Bytes 4-7 of a 32-byte asset id, big-endian."""
    return int(_asset_body(asset_id)[8:16], 16)


def _asset_body(asset_id: str) -> str:
    body = strip_0x(asset_id or "")
    if len(body) != 64:
        raise ValidationError("asset_id must be 32 bytes (64 hex chars)", "asset_id")
    try:
        bytes.fromhex(body)
    except ValueError:
        raise ValidationError("asset_id is not valid hex", "asset_id") from None
    return body


def _to_allocation(a: Any, index: int) -> Allocation:
    if isinstance(a, Allocation):
        return a
    if isinstance(a, Mapping):
        return Allocation.from_wire(dict(a))
    raise ValidationError(f"allocations[{index}] is not an Allocation", "allocations")


def _to_deposit_info(value: Any, allocation_id: str) -> DepositInfo:
    if isinstance(value, DepositInfo):
        return value
    if isinstance(value, Mapping):
        local = value.get("local_deposit_id", value.get("localDepositId"))
        chain = value.get("slip44_chain_id", value.get("slip44ChainId"))
        if local is not None and chain is not None:
            return DepositInfo(local_deposit_id=int(local), slip44_chain_id=int(chain))
    raise ValidationError(
        f"Deposit info for allocation {allocation_id} needs local_deposit_id and slip44_chain_id",
        "deposit_info",
    )


def sort_allocations_by_id(allocations: Iterable[Allocation]) -> list[Allocation]:
    return sorted(allocations, key=lambda a: a.id)


def prepare_withdrawal_message(
    allocations: Iterable[Any],
    intent: RawTokenIntent | AssetTokenIntent,
    token_symbol: str,
    language: int = LANG_EN,
    chain_name: str | None = None,
    deposit_info: Mapping[str, DepositInfo | Mapping[str, Any]] | None = None,
    min_output: int | str = "0",
    token_decimals: int = 18,
    target_decimals: int | None = None,
) -> WithdrawalSignData:
    """
    Build the withdrawal message, its hash and the nullifier.

    Args:
        allocations: Allocation models (or wire dicts) being withdrawn.
        intent: RawTokenIntent or AssetTokenIntent with the beneficiary.
        token_symbol: symbol of the deposited (source) token.
        language: one of the LANG_* codes.
        chain_name: overrides the beneficiary chain's display name.
        deposit_info: allocation id -> {local_deposit_id, slip44_chain_id}.
            Every allocation must have an entry.
        min_output: minimum amount the beneficiary accepts, in target units.
        token_decimals: decimals of the source token.
        target_decimals: decimals of the target token (defaults to source).

    Raises:
        ValidationError: duplicate ids, a missing deposit-info entry, a missing
            commitment on the first allocation, or a malformed intent. All
            checks run before any hashing.
    """
    labels = get_labels(language)
    allocs = [_to_allocation(a, i) for i, a in enumerate(allocations)]
    if not allocs:
        raise ValidationError("At least one allocation is required", "allocations")
    if not token_symbol:
        raise ValidationError("token_symbol is required", "token_symbol")

    ordered = sort_allocations_by_id(allocs)
    ids = [a.id for a in ordered]
    if len(set(ids)) != len(ids):
        raise ValidationError(f"Duplicate allocation ids: {ids}", "allocation_ids")

    if isinstance(intent, RawTokenIntent):
        target_symbol = intent.token_symbol
        if not target_symbol:
            raise ValidationError("RawToken intent requires token_symbol", "intent.token_symbol")
    elif isinstance(intent, AssetTokenIntent):
        target_symbol = intent.asset_token_symbol
        if not target_symbol:
            raise ValidationError("AssetToken intent requires asset_token_symbol", "intent.asset_token_symbol")
        asset_chain = extract_asset_chain_id(intent.asset_id)
        adapter_id = extract_adapter_id(intent.asset_id)
    else:
        raise ValidationError(
            f"Invalid intent type: {type(intent).__name__}. Must be RawToken or AssetToken", "intent"
        )
    beneficiary = intent.beneficiary
    if len(beneficiary.data) != 32:
        raise ValidationError("Beneficiary address must be 32 bytes", "intent.beneficiary")

    info_map = deposit_info or {}
    infos: dict[str, DepositInfo] = {}
    for a in ordered:
        if a.id not in info_map:
            raise ValidationError(
                f"Missing deposit info for allocation {a.id} (checkbook {a.checkbook_id})",
                "deposit_info",
            )
        infos[a.id] = _to_deposit_info(info_map[a.id], a.id)

    first = ordered[0]
    if not first.commitment:
        raise ValidationError(
            f"Allocation {first.id} missing commitment. Cannot generate nullifier.", "commitment"
        )
    min_out = amount_to_int(min_output, "min_output")
    target_dec = token_decimals if target_decimals is None else target_decimals
    total = sum(int(a.amount) for a in ordered)

    lines = [
        f"🔓 {labels.withdraw_title}",
        "",
        f"🪙 {labels.source_token}: {token_symbol}",
        f"📊 {labels.allocations}: {labels.count(len(ordered))}",
    ]
    for a in sorted(ordered, key=lambda a: (a.seq, a.id)):
        info = infos[a.id]
        lines.append(
            f"  • {labels.deposit} {info.local_deposit_id} #{a.seq}: "
            f"{format_display_amount(a.amount, token_decimals, token_symbol)} "
            f"({get_chain_name(info.slip44_chain_id)})"
        )
    lines.append(f"💰 {labels.total}: {format_display_amount(total, token_decimals, token_symbol)}")
    lines.append("")
    if isinstance(intent, AssetTokenIntent):
        lines.append(
            f"🎯 {labels.target_token}: {target_symbol} "
            f"({labels.asset_chain}: {get_chain_name(asset_chain)} #{asset_chain}, "
            f"{labels.adapter} #{adapter_id})"
        )
    else:
        lines.append(f"🎯 {labels.target_token}: {target_symbol}")
    lines += [
        f"👤 {labels.beneficiary}: "
        + labels.address_on(beneficiary.canonical_hex().lower(), get_chain_name(beneficiary.chain_id)),
        f"🔗 {labels.network}: {chain_name or get_chain_name(beneficiary.chain_id)} ({beneficiary.chain_id})",
        f"📉 {labels.min_output}: {format_display_amount(min_out, target_dec, target_symbol)}",
    ]
    message = "\n".join(lines) + "\n"

    nullifier = generate_nullifier(first.commitment, AllocationInput.of(first.seq, first.amount))
    return WithdrawalSignData(
        message=message,
        message_hash=keccak256_hex(message),
        nullifier="0x" + nullifier.hex(),
        allocation_ids=ids,
        total_amount=str(total),
        token_symbol=token_symbol,
        target_chain=beneficiary.chain_id,
        target_address=beneficiary.to_hex(),
    )


def verify_sign_data(data: CommitmentSignData | WithdrawalSignData) -> bool:
    """Check that a sign-data payload is self-consistent (hash matches, ids sorted)."""
    if keccak256_hex(data.message) != data.message_hash:
        return False
    if isinstance(data, WithdrawalSignData):
        return data.allocation_ids == sorted(set(data.allocation_ids))
    return True
