"""
Universal address codec: chain-native addresses <-> fixed 32-byte values.

A universal address is (SLIP-44 chain id, 32 data bytes). Addresses narrower
than 32 bytes are right-aligned:

  - EVM chains:  20-byte account, 12 leading zero bytes
  - TRON:        Base58Check(0x41 || 20 bytes), payload right-aligned like EVM
  - Solana:      Base58 32-byte public key, used as-is

The 32-byte value is what the commitment hash and the backend see; the
display address is only for humans.
"""

from __future__ import annotations

import hashlib
import re

import eth_utils
from pydantic import BaseModel, ConfigDict, field_validator

from enclave_sdk.core.chain import (
    SLIP44_ETHEREUM,
    SLIP44_SOLANA,
    SLIP44_TRON,
    get_chain_name,
    is_evm_chain,
)
from enclave_sdk.core.errors import ValidationError
from enclave_sdk.core.hashing import strip_0x

# Base58 alphabet (same as Bitcoin)
_ALPHABET = b"123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"
_ALPHABET_MAP = {char: i for i, char in enumerate(_ALPHABET)}

_EVM_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")
_TRON_PREFIX = 0x41


class AddressError(ValidationError):
    """Raised for addresses that cannot be decoded or normalized."""

    code = "ADDRESS_ERROR"


class UniversalAddress(BaseModel):
    """A chain-tagged, 32-byte address. Immutable."""

    model_config = ConfigDict(frozen=True)

    chain_id: int
    data: bytes
    display_address: str = ""

    @field_validator("data", mode="before")
    @classmethod
    def _coerce_data(cls, v: object) -> bytes:
        if isinstance(v, str):
            try:
                v = bytes.fromhex(strip_0x(v))
            except ValueError:
                raise AddressError(f"Universal address data is not hex: {v!r}", "data") from None
        if not isinstance(v, (bytes, bytearray)):
            raise AddressError("Universal address data must be bytes or hex", "data")
        if len(v) != 32:
            raise AddressError(f"Universal address data must be 32 bytes, got {len(v)}", "data")
        return bytes(v)

    @field_validator("chain_id")
    @classmethod
    def _check_chain(cls, v: int) -> int:
        if v < 0:
            raise AddressError("chain_id must be a non-negative SLIP-44 id", "chain_id")
        return v

    # ------------------------------------------------------------------
    # Constructors
    # ------------------------------------------------------------------

    @classmethod
    def from_evm(cls, address: str, chain_id: int = SLIP44_ETHEREUM) -> UniversalAddress:
        """Right-align a 20-byte EVM address. `chain_id` is SLIP-44."""
        if not is_valid_evm_address(address):
            raise AddressError(f"Invalid EVM address: {address}", "address")
        raw = bytes.fromhex(address[2:])
        return cls(
            chain_id=chain_id,
            data=b"\x00" * 12 + raw,
            display_address=to_checksum_address(address),
        )

    @classmethod
    def from_tron(cls, address: str) -> UniversalAddress:
        raw = _base58check_decode(address)
        if len(raw) != 21 or raw[0] != _TRON_PREFIX:
            raise AddressError(f"Invalid TRON address: {address}", "address")
        return cls(chain_id=SLIP44_TRON, data=b"\x00" * 12 + raw[1:], display_address=address)

    @classmethod
    def from_solana(cls, address: str) -> UniversalAddress:
        try:
            raw = _base58_decode(address)
        except KeyError:
            raise AddressError(f"Invalid Base58 in Solana address: {address}", "address") from None
        if len(raw) != 32:
            raise AddressError(f"Solana address must decode to 32 bytes, got {len(raw)}", "address")
        return cls(chain_id=SLIP44_SOLANA, data=raw, display_address=address)

    @classmethod
    def from_hex(cls, value: str, chain_id: int) -> UniversalAddress:
        """Build from an existing 32-byte universal value (0x optional)."""
        ua = cls(chain_id=chain_id, data=value)
        return ua.model_copy(update={"display_address": ua.native_address()})

    @classmethod
    def from_native(cls, address: str, chain_id: int) -> UniversalAddress:
        """Dispatch on chain family. Accepts a 32-byte hex value for any chain."""
        hex_body = strip_0x(address)
        if len(hex_body) == 64 and all(c in "0123456789abcdefABCDEF" for c in hex_body):
            return cls.from_hex(address, chain_id)
        if chain_id == SLIP44_TRON:
            return cls.from_tron(address)
        if chain_id == SLIP44_SOLANA:
            return cls.from_solana(address)
        if is_evm_chain(chain_id) or _EVM_RE.match(address):
            return cls.from_evm(address, chain_id)
        raise AddressError(
            f"Unsupported address format for chain {chain_id}: {address}", "address"
        )

    # ------------------------------------------------------------------
    # Renderings
    # ------------------------------------------------------------------

    @property
    def chain_name(self) -> str:
        return get_chain_name(self.chain_id)

    @property
    def is_right_aligned_20(self) -> bool:
        return self.data[:12] == b"\x00" * 12

    def to_hex(self, prefix: bool = True) -> str:
        """Full 32-byte value, lowercase."""
        h = self.data.hex()
        return f"0x{h}" if prefix else h

    def canonical_hex(self) -> str:
        """
        Lowercase hex as the verifier renders it in signing messages:
        the low 20 bytes for right-aligned accounts, all 32 bytes otherwise.
        """
        if self.is_right_aligned_20:
            return "0x" + self.data[12:].hex()
        return "0x" + self.data.hex()

    def native_address(self) -> str:
        if self.chain_id == SLIP44_TRON and self.is_right_aligned_20:
            return _base58check_encode(bytes([_TRON_PREFIX]) + self.data[12:])
        if self.chain_id == SLIP44_SOLANA:
            return _base58_encode(self.data)
        if self.is_right_aligned_20:
            return to_checksum_address("0x" + self.data[12:].hex())
        return self.to_hex()

    def __str__(self) -> str:
        return format_universal_address(self)


# ------------------------------------------------------------------
# EVM helpers
# ------------------------------------------------------------------


def is_valid_evm_address(address: str) -> bool:
    return isinstance(address, str) and bool(_EVM_RE.match(address))


def to_checksum_address(address: str) -> str:
    """
    EIP-55 mixed-case checksum encoding.

    Raises:
        AddressError: if the input is not a 20-byte hex address.
    """
    if not is_valid_evm_address(address):
        raise AddressError(f"Invalid EVM address: {address}", "address")
    return eth_utils.to_checksum_address(address.lower())


def address_equals(a: str | None, b: str | None) -> bool:
    if not a or not b:
        return False
    return a.lower() == b.lower()


# ------------------------------------------------------------------
# "chainId:address" string form
# ------------------------------------------------------------------


def format_universal_address(address: UniversalAddress) -> str:
    return f"{address.chain_id}:{address.display_address or address.native_address()}"


def parse_universal_address(value: str) -> UniversalAddress:
    """
    Parse "60:0xabc..." into a UniversalAddress.

    Raises:
        AddressError: if the string is not "<chainId>:<address>".
    """
    chain_part, sep, addr_part = value.partition(":")
    if not sep or not chain_part or not addr_part:
        raise AddressError('Universal address must be in format "chainId:address"', "address")
    try:
        chain_id = int(chain_part, 10)
    except ValueError:
        raise AddressError(f"Invalid chain id in universal address: {chain_part}", "chain_id") from None
    return UniversalAddress.from_native(addr_part, chain_id)


# ------------------------------------------------------------------
# Base58 / Base58Check
# ------------------------------------------------------------------


def _base58_decode(s: str) -> bytes:
    """Decode a Base58-encoded string to bytes."""
    n = 0
    for char in s.encode("ascii"):
        n = n * 58 + _ALPHABET_MAP[char]

    if n == 0:
        result = b""
    else:
        byte_length = (n.bit_length() + 7) // 8
        result = n.to_bytes(byte_length, "big")

    # each leading '1' is a 0x00 byte
    pad_size = 0
    for char in s.encode("ascii"):
        if char == _ALPHABET[0]:
            pad_size += 1
        else:
            break

    return b"\x00" * pad_size + result


def _base58_encode(data: bytes) -> str:
    """Encode bytes to a Base58 string."""
    n = int.from_bytes(data, "big")
    result = []
    while n > 0:
        n, remainder = divmod(n, 58)
        result.append(_ALPHABET[remainder:remainder + 1])
    result.reverse()

    pad_size = 0
    for byte in data:
        if byte == 0:
            pad_size += 1
        else:
            break

    return (b"1" * pad_size + b"".join(result)).decode("ascii")


def _double_sha256(data: bytes) -> bytes:
    return hashlib.sha256(hashlib.sha256(data).digest()).digest()


def _base58check_decode(address: str) -> bytes:
    try:
        raw = _base58_decode(address)
    except (KeyError, UnicodeEncodeError):
        raise AddressError(f"Invalid Base58 encoding: {address}", "address") from None
    if len(raw) < 5:
        raise AddressError(f"Address too short: {len(raw)} bytes", "address")
    payload, checksum = raw[:-4], raw[-4:]
    if _double_sha256(payload)[:4] != checksum:
        raise AddressError(f"Checksum mismatch for address: {address}", "address")
    return payload


def _base58check_encode(payload: bytes) -> str:
    return _base58_encode(payload + _double_sha256(payload)[:4])
