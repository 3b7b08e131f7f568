"""keccak-256 helpers shared by the address codec, the commitment core and the formatters."""

from __future__ import annotations

from Crypto.Hash import keccak


def keccak256(data: bytes) -> bytes:
    """Raw 32-byte keccak-256 digest (Ethereum variant, not NIST SHA3)."""
    k = keccak.new(digest_bits=256)
    k.update(data)
    return k.digest()


def keccak256_hex(data: bytes | str) -> str:
    """0x-prefixed keccak-256 of bytes, or of the UTF-8 encoding of a string."""
    if isinstance(data, str):
        data = data.encode("utf-8")
    return "0x" + keccak256(data).hex()


def strip_0x(value: str) -> str:
    return value[2:] if value[:2] in ("0x", "0X") else value


def hex_to_bytes(value: str, expected_len: int | None = None, field: str = "value") -> bytes:
    """
    Decode a hex string (with or without 0x).

    Raises:
        ValueError: on odd length, non-hex characters or a length mismatch.
    """
    raw = bytes.fromhex(strip_0x(value))
    if expected_len is not None and len(raw) != expected_len:
        raise ValueError(f"{field} must be {expected_len} bytes, got {len(raw)}")
    return raw
