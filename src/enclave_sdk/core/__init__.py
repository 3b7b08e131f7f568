"""core module init"""
from enclave_sdk.core.address import (
    AddressError,
    UniversalAddress,
    address_equals,
    is_valid_evm_address,
    parse_universal_address,
    to_checksum_address,
)
from enclave_sdk.core.amount import (
    amount_to_bytes32,
    amount_to_int,
    format_display_amount,
    format_units,
    parse_amount,
)
from enclave_sdk.core.api import EnclaveAPI
from enclave_sdk.core.chain import get_chain_name, is_evm_chain, native_to_slip44, slip44_to_native
from enclave_sdk.core.config import EnclaveConfig
from enclave_sdk.core.errors import (
    APIError,
    AuthError,
    ConfigError,
    EnclaveError,
    EnclaveTimeoutError,
    InsufficientBalanceError,
    InvalidStateError,
    NetworkError,
    NotFoundError,
    SignerError,
    SignerErrorKind,
    ValidationError,
    WebSocketError,
    WithdrawStateError,
)
from enclave_sdk.core.models import (
    Allocation,
    AssetTokenIntent,
    Checkbook,
    RawTokenIntent,
    Token,
    TokenPrice,
    WithdrawRequest,
    WithdrawStats,
)
from enclave_sdk.core.signer import Signer, recover_signer, verify_signature
from enclave_sdk.core.status import AllocationStatus, CheckbookStatus, FrontendWithdrawStatus, WithdrawStatus
from enclave_sdk.core.store import AllocationStore, CheckbookStore, PriceStore, WithdrawalStore

__all__ = [
    "APIError",
    "AddressError",
    "Allocation",
    "AllocationStatus",
    "AllocationStore",
    "AssetTokenIntent",
    "AuthError",
    "Checkbook",
    "CheckbookStatus",
    "CheckbookStore",
    "ConfigError",
    "EnclaveAPI",
    "EnclaveConfig",
    "EnclaveError",
    "EnclaveTimeoutError",
    "FrontendWithdrawStatus",
    "InsufficientBalanceError",
    "InvalidStateError",
    "NetworkError",
    "NotFoundError",
    "PriceStore",
    "RawTokenIntent",
    "Signer",
    "SignerError",
    "SignerErrorKind",
    "Token",
    "TokenPrice",
    "UniversalAddress",
    "ValidationError",
    "WebSocketError",
    "WithdrawRequest",
    "WithdrawStats",
    "WithdrawStateError",
    "WithdrawStatus",
    "WithdrawalStore",
    "address_equals",
    "amount_to_bytes32",
    "amount_to_int",
    "format_display_amount",
    "format_units",
    "get_chain_name",
    "is_evm_chain",
    "is_valid_evm_address",
    "native_to_slip44",
    "parse_amount",
    "parse_universal_address",
    "recover_signer",
    "slip44_to_native",
    "to_checksum_address",
    "verify_signature",
]
