"""crypto module init"""
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

__all__ = [
    "AllocationInput",
    "deposit_id_to_bytes32",
    "generate_commitment",
    "generate_commitment_from_hashes",
    "generate_nullifier",
    "generate_nullifiers",
    "hash_allocation",
    "hash_token_key",
    "validate_allocations",
]
