"""
Commitment / nullifier construction.

Byte layouts must match the backend verifier exactly. H is keccak-256 and
every field is fixed-width, concatenated with no separators:

    allocation_hash = H( u8(seq) || be256(amount) )

    commitment      = H( be256(deposit_id)
                       || be32(chain_id)
                       || H(utf8(token_key))
                       || be32(owner.chain_id)
                       || owner.data                      (32 bytes)
                       || allocation_hash[0] || ... || allocation_hash[n-1] )
                         (allocations sorted by seq)

    nullifier       = H( commitment || u8(seq) || be256(amount) )

Allocation seqs within one checkbook are unique, start at 0 and are
consecutive. All functions are pure: no I/O, no shared state.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from enclave_sdk.core.address import UniversalAddress
from enclave_sdk.core.amount import AmountLike, amount_to_bytes32, amount_to_int
from enclave_sdk.core.errors import ValidationError
from enclave_sdk.core.hashing import keccak256, strip_0x

MAX_SEQ = 255
MAX_U32 = 0xFFFFFFFF


@dataclass(frozen=True)
class AllocationInput:
    """A (seq, amount) pair as it enters the hash."""
    seq: int
    amount: int

    @classmethod
    def of(cls, seq: int, amount: AmountLike) -> AllocationInput:
        return cls(seq=seq, amount=amount_to_int(amount))

    def to_bytes(self) -> bytes:
        return bytes([self.seq]) + amount_to_bytes32(self.amount)


def _coerce(allocations: Iterable[AllocationInput | tuple[int, AmountLike]]) -> list[AllocationInput]:
    out = []
    for a in allocations:
        if isinstance(a, AllocationInput):
            out.append(a)
        else:
            seq, amount = a
            out.append(AllocationInput.of(seq, amount))
    return out


def validate_allocations(allocations: Sequence[AllocationInput]) -> list[AllocationInput]:
    """
    Check and sort allocations for hashing.

    Returns:
        The allocations sorted by seq.

    Raises:
        ValidationError: if the list is empty, a seq is outside 0..255,
            seqs repeat, or they are not consecutive from 0.
    """
    if not allocations:
        raise ValidationError("At least one allocation is required", "allocations")
    for i, a in enumerate(allocations):
        if isinstance(a.seq, bool) or not isinstance(a.seq, int) or not 0 <= a.seq <= MAX_SEQ:
            raise ValidationError(f"allocations[{i}].seq must be an integer in 0..{MAX_SEQ}", "seq")
        amount_to_int(a.amount, f"allocations[{i}].amount")

    ordered = sorted(allocations, key=lambda a: a.seq)
    seqs = [a.seq for a in ordered]
    if len(set(seqs)) != len(seqs):
        raise ValidationError(f"Duplicate allocation seq in {seqs}", "seq")
    if seqs != list(range(len(seqs))):
        raise ValidationError(f"Allocation seqs must be consecutive from 0, got {seqs}", "seq")
    return ordered


def _u32(value: int, field: str) -> bytes:
    if not 0 <= value <= MAX_U32:
        raise ValidationError(f"{field} must fit in 32 bits", field)
    return value.to_bytes(4, "big")


def deposit_id_to_bytes32(deposit_id: int | str | bytes) -> bytes:
    """
    Normalize a deposit id to 32 big-endian bytes.

    Ints and decimal strings are treated as the backend's local deposit id;
    0x-prefixed strings as an already-encoded value of up to 32 bytes.
    """
    if isinstance(deposit_id, bytes):
        raw = deposit_id
    elif isinstance(deposit_id, int) and not isinstance(deposit_id, bool):
        if deposit_id < 0:
            raise ValidationError("deposit_id must be non-negative", "deposit_id")
        raw = deposit_id.to_bytes(32, "big")
    elif isinstance(deposit_id, str) and deposit_id.lower().startswith("0x"):
        try:
            raw = bytes.fromhex(strip_0x(deposit_id))
        except ValueError:
            raise ValidationError(f"deposit_id is not valid hex: {deposit_id}", "deposit_id") from None
    elif isinstance(deposit_id, str) and deposit_id.isdigit():
        raw = int(deposit_id).to_bytes(32, "big")
    else:
        raise ValidationError(f"Unsupported deposit_id: {deposit_id!r}", "deposit_id")

    if len(raw) > 32:
        raise ValidationError("deposit_id must be at most 32 bytes", "deposit_id")
    return raw.rjust(32, b"\x00")


def hash_allocation(allocation: AllocationInput) -> bytes:
    return keccak256(allocation.to_bytes())


def hash_token_key(token_key: str) -> bytes:
    if not token_key:
        raise ValidationError("token_key must not be empty", "token_key")
    return keccak256(token_key.encode("utf-8"))


def _commitment_prefix(
    owner: UniversalAddress, deposit_id: int | str | bytes, chain_id: int, token_key: str
) -> bytes:
    return (
        deposit_id_to_bytes32(deposit_id)
        + _u32(chain_id, "chain_id")
        + hash_token_key(token_key)
        + _u32(owner.chain_id, "owner.chain_id")
        + owner.data
    )


def generate_commitment(
    allocations: Iterable[AllocationInput | tuple[int, AmountLike]],
    owner: UniversalAddress,
    deposit_id: int | str | bytes,
    chain_id: int,
    token_key: str,
) -> bytes:
    """
    Compute the commitment binding a checkbook's allocations to its owner.

    Args:
        allocations: (seq, amount) pairs; any order, sorted internally.
        owner: the checkbook owner's universal address.
        deposit_id: local deposit id (int / decimal) or 0x-encoded 32 bytes.
        chain_id: SLIP-44 id of the deposit chain.
        token_key: token identifier string (e.g. "USDT").

    Returns:
        The 32-byte commitment.

    Raises:
        ValidationError: on any malformed input, before hashing.
    """
    ordered = validate_allocations(_coerce(allocations))
    preimage = _commitment_prefix(owner, deposit_id, chain_id, token_key)
    preimage += b"".join(hash_allocation(a) for a in ordered)
    return keccak256(preimage)


def generate_commitment_from_hashes(
    left_hashes: Sequence[bytes],
    current: AllocationInput,
    right_hashes: Sequence[bytes],
    owner: UniversalAddress,
    deposit_id: int | str | bytes,
    chain_id: int,
    token_key: str,
) -> bytes:
    """
    Recompute a commitment from one known allocation plus the hashes of its
    neighbours. Lets a credential holder prove membership of a single
    allocation without learning the other amounts.

    `left_hashes` are the allocation hashes with seq < current.seq, in order.
    """
    if len(left_hashes) != current.seq:
        raise ValidationError(
            f"Expected {current.seq} left hashes for seq {current.seq}, got {len(left_hashes)}",
            "left_hashes",
        )
    for h in (*left_hashes, *right_hashes):
        if len(h) != 32:
            raise ValidationError("Allocation hashes must be 32 bytes", "hashes")
    amount_to_int(current.amount, "current.amount")
    if not 0 <= current.seq <= MAX_SEQ:
        raise ValidationError(f"seq must be in 0..{MAX_SEQ}", "seq")

    preimage = _commitment_prefix(owner, deposit_id, chain_id, token_key)
    preimage += b"".join(left_hashes) + hash_allocation(current) + b"".join(right_hashes)
    return keccak256(preimage)


def _commitment_bytes(commitment: bytes | str) -> bytes:
    if isinstance(commitment, str):
        try:
            commitment = bytes.fromhex(strip_0x(commitment))
        except ValueError:
            raise ValidationError("commitment is not valid hex", "commitment") from None
    if len(commitment) != 32:
        raise ValidationError(f"commitment must be 32 bytes, got {len(commitment)}", "commitment")
    return commitment


def generate_nullifier(commitment: bytes | str, allocation: AllocationInput | tuple[int, AmountLike]) -> bytes:
    """nullifier = H(commitment || u8(seq) || be256(amount))."""
    (alloc,) = _coerce([allocation])
    if not 0 <= alloc.seq <= MAX_SEQ:
        raise ValidationError(f"seq must be in 0..{MAX_SEQ}", "seq")
    return keccak256(_commitment_bytes(commitment) + alloc.to_bytes())


def generate_nullifiers(
    commitment: bytes | str, allocations: Iterable[AllocationInput | tuple[int, AmountLike]]
) -> list[bytes]:
    """One nullifier per allocation, in seq order. The set may be a subset of the checkbook."""
    c = _commitment_bytes(commitment)
    return [generate_nullifier(c, a) for a in sorted(_coerce(allocations), key=lambda a: a.seq)]


def to_hex(digest: bytes) -> str:
    return "0x" + digest.hex()
