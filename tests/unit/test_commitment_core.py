"""
Unit tests for enclave_sdk.crypto.commitment: allocation hashes,
commitments and nullifiers.
"""

import pytest

from enclave_sdk.core.address import UniversalAddress
from enclave_sdk.core.errors import ValidationError
from enclave_sdk.core.hashing import keccak256
from enclave_sdk.crypto.commitment import (
    AllocationInput,
    deposit_id_to_bytes32,
    generate_commitment,
    generate_commitment_from_hashes,
    generate_nullifier,
    generate_nullifiers,
    hash_allocation,
    hash_token_key,
    validate_allocations,
)

OWNER = UniversalAddress.from_evm("0x4da7cf999162ecb79749d0186e5759c7a6bd4477")
DEPOSIT_ID = "0x" + "11" * 32

ALLOCATIONS = [
    AllocationInput(seq=0, amount=10**18),
    AllocationInput(seq=1, amount=5 * 10**17),
    AllocationInput(seq=2, amount=2 * 10**18),
]

# Reference allocation hashes shared with the backend verifier
EXPECTED_ALLOCATION_HASHES = [
    "bba19f7b6bf933f6afced6fc8320b406d457245dd8d0f6132addd8b76b4e8cff",
    "9a142274282368aaaaac27c814c3127cbd6b5ef645e418e29b24dc55d6ded30d",
    "e790ea07431bb49c221f03c9813f37d49ddcd2eabd51b73d2a00f1dfcfa8f87b",
]


def _commit(allocations=ALLOCATIONS, owner=OWNER, deposit_id=DEPOSIT_ID, chain_id=60, token="USDT"):
    return generate_commitment(allocations, owner, deposit_id, chain_id, token)


class TestAllocationHash:
    def test_reference_vectors(self):
        for alloc, expected in zip(ALLOCATIONS, EXPECTED_ALLOCATION_HASHES):
            assert hash_allocation(alloc).hex() == expected

    def test_layout_is_seq_byte_then_be256(self):
        alloc = AllocationInput.of(3, "42")
        assert alloc.to_bytes() == b"\x03" + (42).to_bytes(32, "big")
        assert hash_allocation(alloc) == keccak256(alloc.to_bytes())


class TestCommitment:
    def test_is_32_bytes(self):
        assert len(_commit()) == 32

    def test_preimage_layout(self):
        preimage = (
            bytes.fromhex("11" * 32)
            + (60).to_bytes(4, "big")
            + keccak256(b"USDT")
            + (60).to_bytes(4, "big")
            + OWNER.data
            + b"".join(bytes.fromhex(h) for h in EXPECTED_ALLOCATION_HASHES)
        )
        assert _commit() == keccak256(preimage)

    def test_deterministic(self):
        assert _commit() == _commit()

    def test_input_order_does_not_matter(self):
        assert _commit(list(reversed(ALLOCATIONS))) == _commit()
        assert _commit([(2, 2 * 10**18), (0, 10**18), (1, "500000000000000000")]) == _commit()

    @pytest.mark.parametrize("change", [
        {"allocations": [AllocationInput(0, 10**18 + 1), *ALLOCATIONS[1:]]},
        {"owner": UniversalAddress.from_evm("0x5aAeb6053F3E94C9b9A09f33669435E7Ef1BeAed")},
        {"owner": UniversalAddress.from_evm("0x4da7cf999162ecb79749d0186e5759c7a6bd4477", 714)},
        {"deposit_id": 8},
        {"chain_id": 714},
        {"token": "USDC"},
    ])
    def test_any_input_change_changes_commitment(self, change):
        assert _commit(**change) != _commit()

    def test_integer_and_hex_deposit_ids_agree(self):
        assert _commit(deposit_id=7) == _commit(deposit_id="7") == _commit(deposit_id="0x07")

    def test_from_hashes_matches_full_commitment(self):
        hashes = [hash_allocation(a) for a in ALLOCATIONS]
        rebuilt = generate_commitment_from_hashes(
            hashes[:1], ALLOCATIONS[1], hashes[2:], OWNER, DEPOSIT_ID, 60, "USDT"
        )
        assert rebuilt == _commit()

    def test_from_hashes_checks_left_count(self):
        with pytest.raises(ValidationError, match="left hashes"):
            generate_commitment_from_hashes([], ALLOCATIONS[1], [], OWNER, DEPOSIT_ID, 60, "USDT")


class TestValidation:
    def test_sorted_by_seq(self):
        ordered = validate_allocations([ALLOCATIONS[2], ALLOCATIONS[0], ALLOCATIONS[1]])
        assert [a.seq for a in ordered] == [0, 1, 2]

    def test_empty(self):
        with pytest.raises(ValidationError, match="At least one"):
            validate_allocations([])

    def test_duplicate_seq(self):
        with pytest.raises(ValidationError, match="Duplicate"):
            validate_allocations([AllocationInput(0, 1), AllocationInput(0, 2)])

    def test_gap_in_seq(self):
        with pytest.raises(ValidationError, match="consecutive"):
            validate_allocations([AllocationInput(0, 1), AllocationInput(2, 2)])

    def test_seq_out_of_range(self):
        with pytest.raises(ValidationError, match="0..255"):
            validate_allocations([AllocationInput(256, 1)])

    def test_empty_token_key(self):
        with pytest.raises(ValidationError):
            hash_token_key("")

    def test_chain_id_must_fit_u32(self):
        with pytest.raises(ValidationError):
            _commit(chain_id=2**32)

    def test_deposit_id_normalization(self):
        assert deposit_id_to_bytes32(7) == (7).to_bytes(32, "big")
        assert deposit_id_to_bytes32("0x01") == b"\x00" * 31 + b"\x01"
        with pytest.raises(ValidationError):
            deposit_id_to_bytes32("0x" + "00" * 33)
        with pytest.raises(ValidationError):
            deposit_id_to_bytes32("seven")


class TestNullifier:
    def test_layout(self):
        commitment = _commit()
        expected = keccak256(commitment + b"\x01" + (5 * 10**17).to_bytes(32, "big"))
        assert generate_nullifier(commitment, ALLOCATIONS[1]) == expected

    def test_hex_commitment_accepted(self):
        commitment = _commit()
        assert generate_nullifier("0x" + commitment.hex(), ALLOCATIONS[0]) == generate_nullifier(
            commitment, ALLOCATIONS[0]
        )

    def test_unique_per_allocation(self):
        nullifiers = generate_nullifiers(_commit(), ALLOCATIONS)
        assert len(set(nullifiers)) == 3

    def test_subset_is_seq_ordered(self):
        commitment = _commit()
        subset = generate_nullifiers(commitment, [ALLOCATIONS[2], ALLOCATIONS[0]])
        assert subset == [
            generate_nullifier(commitment, ALLOCATIONS[0]),
            generate_nullifier(commitment, ALLOCATIONS[2]),
        ]

    def test_bound_to_commitment(self):
        other = _commit(token="USDC")
        assert generate_nullifier(other, ALLOCATIONS[0]) != generate_nullifier(_commit(), ALLOCATIONS[0])

    def test_bad_commitment_length(self):
        with pytest.raises(ValidationError, match="32 bytes"):
            generate_nullifier(b"\x00" * 31, ALLOCATIONS[0])
