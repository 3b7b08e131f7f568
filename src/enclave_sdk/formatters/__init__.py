"""formatters module init"""
from enclave_sdk.formatters.commitment import prepare_commitment_message
from enclave_sdk.formatters.languages import (
    LANG_EN,
    SUPPORTED_LANGUAGES,
    MessageLabels,
    get_labels,
)
from enclave_sdk.formatters.withdraw import (
    extract_adapter_id,
    extract_asset_chain_id,
    prepare_withdrawal_message,
    verify_sign_data,
)

__all__ = [
    "LANG_EN",
    "SUPPORTED_LANGUAGES",
    "MessageLabels",
    "extract_adapter_id",
    "extract_asset_chain_id",
    "get_labels",
    "prepare_commitment_message",
    "prepare_withdrawal_message",
    "verify_sign_data",
]
