"""
Chain identifiers.

Every wire payload, hash input and signing message uses SLIP-44 coin types.
Chain-native ids (EVM chain ids) appear only at adapter boundaries, e.g. when
a wallet reports the network it is connected to.

Reference: https://github.com/satoshilabs/slips/blob/master/slip-0044.md
"""

from __future__ import annotations

SLIP44_BITCOIN = 0
SLIP44_ETHEREUM = 60
SLIP44_TRON = 195
SLIP44_SOLANA = 501
SLIP44_BSC = 714
SLIP44_POLYGON = 966

UNKNOWN_CHAIN = "Unknown Chain"

# Display names shown in signing messages. Must match the backend verifier.
_CHAIN_NAMES: dict[int, str] = {
    0: "Bitcoin",
    2: "Litecoin",
    60: "Ethereum",
    118: "Cosmos",
    195: "TRON",
    250: "Fantom",
    324: "zkSync Era",
    354: "Polkadot",
    434: "Kusama",
    501: "Solana",
    714: "Binance Smart Chain",
    966: "Polygon",
    8453: "Base",
    9001: "Arbitrum",
    10001: "Optimism",
    43114: "Avalanche",
}

# EVM chain id -> SLIP-44
_NATIVE_TO_SLIP44: dict[int, int] = {
    1: 60,
    56: 714,
    137: 966,
    195: 195,
    42161: 1042161,
    10: 1000010,
    8453: 1008453,
    43114: 9000,
}
_SLIP44_TO_NATIVE: dict[int, int] = {v: k for k, v in _NATIVE_TO_SLIP44.items()}

# SLIP-44 ids whose addresses are 20-byte EVM accounts
_EVM_SLIP44 = frozenset({60, 714, 966, 250, 324, 8453, 9001, 10001, 43114, 9000,
                         1042161, 1000010, 1008453})


def get_chain_name(slip44_chain_id: int) -> str:
    """Return the display name for a SLIP-44 chain id."""
    return _CHAIN_NAMES.get(slip44_chain_id, UNKNOWN_CHAIN)


def native_to_slip44(native_chain_id: int) -> int | None:
    """Map an EVM chain id to its SLIP-44 id, or None when unknown."""
    return _NATIVE_TO_SLIP44.get(native_chain_id)


def slip44_to_native(slip44_chain_id: int) -> int | None:
    return _SLIP44_TO_NATIVE.get(slip44_chain_id)


def is_evm_chain(slip44_chain_id: int) -> bool:
    return slip44_chain_id in _EVM_SLIP44


def supported_chains() -> dict[int, str]:
    return dict(_CHAIN_NAMES)
