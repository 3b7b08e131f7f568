"""
enclave-sdk: Python client for the Enclave privacy cross-chain transfer protocol.

Usage:
    from enclave_sdk import EnclaveClient, EnclaveConfig, Signer
    from enclave_sdk.formatters import prepare_commitment_message
"""

from enclave_sdk.client import EnclaveClient
from enclave_sdk.core.address import UniversalAddress
from enclave_sdk.core.config import EnclaveConfig
from enclave_sdk.core.errors import EnclaveError
from enclave_sdk.core.models import AssetTokenIntent, RawTokenIntent
from enclave_sdk.core.signer import Signer

__version__ = "0.1.0"
__all__ = [
    "EnclaveClient",
    "EnclaveConfig",
    "EnclaveError",
    "Signer",
    "UniversalAddress",
    "RawTokenIntent",
    "AssetTokenIntent",
]
