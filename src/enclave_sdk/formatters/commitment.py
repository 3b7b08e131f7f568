"""
Commitment signing message.

Renders the exact text a wallet shows (and signs) when a checkbook is split
into allocations:

    🎯 Enclave Privacy Deposit Confirmation

    🪙 Token: USDT
    📊 Allocations: 3 item(s)
      • #0: 1 USDT
      • #1: 0.5 USDT
      • #2: 2 USDT
    💰 Total: 3.5 USDT

    📝 Deposit ID: 7
    🔗 Network: Ethereum (60)
    👤 Owner: 0x4da7cf999162ecb79749d0186e5759c7a6bd4477 on Ethereum

The message hash is keccak-256 over the UTF-8 bytes of that string, so the
whitespace is load-bearing.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

from enclave_sdk.core.address import UniversalAddress
from enclave_sdk.core.amount import format_display_amount
from enclave_sdk.core.chain import get_chain_name
from enclave_sdk.core.errors import ValidationError
from enclave_sdk.core.hashing import keccak256_hex
from enclave_sdk.core.models import CommitmentSignData
from enclave_sdk.crypto.commitment import (
    AllocationInput,
    deposit_id_to_bytes32,
    generate_commitment,
    validate_allocations,
)
from enclave_sdk.formatters.languages import LANG_EN, get_labels

MAX_DECIMALS = 77


def to_allocation_inputs(allocations: Iterable[Any]) -> list[AllocationInput]:
    """Accept AllocationInput, (seq, amount) tuples, mappings or objects with .seq/.amount."""
    out = []
    for i, a in enumerate(allocations):
        if isinstance(a, AllocationInput):
            out.append(a)
        elif isinstance(a, tuple) and len(a) == 2:
            out.append(AllocationInput.of(a[0], a[1]))
        elif isinstance(a, Mapping):
            if "seq" not in a or "amount" not in a:
                raise ValidationError(f"allocations[{i}] needs seq and amount", "allocations")
            out.append(AllocationInput.of(a["seq"], a["amount"]))
        elif hasattr(a, "seq") and hasattr(a, "amount"):
            out.append(AllocationInput.of(a.seq, a.amount))
        else:
            raise ValidationError(f"allocations[{i}] is not an allocation", "allocations")
    return out


def _display_deposit_id(deposit_id: int | str | bytes, local_deposit_id: int | None) -> int:
    if local_deposit_id is not None:
        return local_deposit_id
    if isinstance(deposit_id, int):
        return deposit_id
    if isinstance(deposit_id, str) and deposit_id.isdigit():
        return int(deposit_id)
    # first 8 bytes as a big-endian u64
    return int.from_bytes(deposit_id_to_bytes32(deposit_id)[:8], "big")


def prepare_commitment_message(
    allocations: Iterable[Any],
    deposit_id: int | str | bytes,
    token_key: str,
    chain_id: int,
    owner_address: UniversalAddress,
    language: int = LANG_EN,
    chain_name: str | None = None,
    local_deposit_id: int | None = None,
    token_decimals: int = 18,
) -> CommitmentSignData:
    """
    Build the commitment message, its hash and the locally derived commitment.

    Args:
        allocations: (seq, amount) items; rendered in seq order.
        deposit_id: hashed deposit id (local deposit id or 0x 32-byte value).
        token_key: token symbol / key; hashed and displayed.
        chain_id: SLIP-44 id of the deposit chain.
        owner_address: universal address of the checkbook owner.
        language: one of the LANG_* codes.
        chain_name: overrides the display name derived from `chain_id`.
        local_deposit_id: shown as "Deposit ID"; derived from `deposit_id` if None.
        token_decimals: decimals used to render amounts.

    Returns:
        CommitmentSignData. Its `commitment` is informational: the backend
        recomputes the authoritative value.

    Raises:
        ValidationError: for any malformed input. Nothing is hashed first.
    """
    labels = get_labels(language)
    if not token_key or not isinstance(token_key, str):
        raise ValidationError("token_key is required", "token_key")
    if not isinstance(chain_id, int) or chain_id < 0:
        raise ValidationError("chain_id must be a non-negative SLIP-44 id", "chain_id")
    if not isinstance(owner_address, UniversalAddress):
        raise ValidationError("owner_address must be a UniversalAddress", "owner_address")
    if not 0 <= token_decimals <= MAX_DECIMALS:
        raise ValidationError("token_decimals out of range", "token_decimals")
    ordered = validate_allocations(to_allocation_inputs(allocations))
    deposit_id_to_bytes32(deposit_id)
    shown_deposit_id = _display_deposit_id(deposit_id, local_deposit_id)
    network = chain_name or get_chain_name(chain_id)
    total = sum(a.amount for a in ordered)

    lines = [
        f"🎯 {labels.commitment_title}",
        "",
        f"🪙 {labels.source_token}: {token_key}",
        f"📊 {labels.allocations}: {labels.count(len(ordered))}",
    ]
    for a in ordered:
        lines.append(f"  • #{a.seq}: {format_display_amount(a.amount, token_decimals, token_key)}")
    lines += [
        f"💰 {labels.total}: {format_display_amount(total, token_decimals, token_key)}",
        "",
        f"📝 {labels.deposit_id}: {shown_deposit_id}",
        f"🔗 {labels.network}: {network} ({chain_id})",
        f"👤 {labels.owner}: "
        + labels.address_on(owner_address.canonical_hex(), get_chain_name(owner_address.chain_id)),
    ]
    message = "\n".join(lines) + "\n"

    commitment = generate_commitment(ordered, owner_address, deposit_id, chain_id, token_key)
    return CommitmentSignData(
        message=message,
        message_hash=keccak256_hex(message),
        commitment="0x" + commitment.hex(),
        deposit_id=str(shown_deposit_id),
        token_key=token_key,
        chain_id=chain_id,
        seqs=[a.seq for a in ordered],
        amounts=[str(a.amount) for a in ordered],
        total_amount=str(total),
    )
