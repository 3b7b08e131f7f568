"""
Signer: one async capability for every way a caller can sign.

Three sources are supported:

    signer = Signer.from_private_key("0x...")          # local key, EIP-191 via eth-account
    signer = Signer.from_callback(fn, address="0x...")  # fn(message) -> signature, sync or async
    signer = Signer.from_external(wallet)               # .sign_message() / .get_address()

The signer is always handed the raw message text, never its hash; the
signer applies its own personal-message prefix and hashing.

Failures are classified exactly once, here, into a SignerErrorKind. The
rest of the SDK branches on `error.kind` and never looks at message text.
Private keys never leave this module and are never logged.
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from eth_account import Account
from eth_account.messages import encode_defunct

from enclave_sdk.core.address import UniversalAddress, is_valid_evm_address, to_checksum_address
from enclave_sdk.core.chain import SLIP44_ETHEREUM
from enclave_sdk.core.errors import SignerError, SignerErrorKind
from enclave_sdk.core.hashing import strip_0x


SignCallback = Callable[[str], "str | bytes | Awaitable[str | bytes]"]

# EIP-1193 "User Rejected Request"
EIP1193_USER_REJECTED = 4001
_REJECTION_CODES = {EIP1193_USER_REJECTED, "4001", "ACTION_REJECTED"}
_REJECTION_CLASS_NAMES = {"UserRejectedError", "UserRejectedRequestError", "ActionRejectedError"}


def classify_signer_exception(exc: BaseException) -> SignerErrorKind:
    """
    Map an exception raised by a wallet / callback to a SignerErrorKind.

    Rejection is recognised from structured data only: an EIP-1193 `code`
    of 4001, an ethers-style `code == "ACTION_REJECTED"`, or an exception
    class named like UserRejectedError. Everything else is a signer failure.
    """
    if isinstance(exc, SignerError):
        return exc.kind
    if isinstance(exc, NotImplementedError):
        return SignerErrorKind.UNSUPPORTED
    code = getattr(exc, "code", None)
    if code in _REJECTION_CODES:
        return SignerErrorKind.USER_REJECTED
    for cls in type(exc).__mro__:
        if cls.__name__ in _REJECTION_CLASS_NAMES:
            return SignerErrorKind.USER_REJECTED
    return SignerErrorKind.SIGNER_FAILURE


def _normalize_signature(raw: Any) -> str:
    if isinstance(raw, (bytes, bytearray)):
        body = bytes(raw).hex()
    elif isinstance(raw, str):
        body = strip_0x(raw.strip())
    elif hasattr(raw, "signature"):
        # eth-account SignedMessage
        return _normalize_signature(raw.signature)
    else:
        raise SignerError(
            f"Signer returned {type(raw).__name__}, expected a hex signature",
            SignerErrorKind.INVALID_SIGNATURE,
        )
    try:
        sig = bytes.fromhex(body)
    except ValueError:
        raise SignerError("Signer returned a non-hex signature", SignerErrorKind.INVALID_SIGNATURE) from None
    # 65: secp256k1 r||s||v; 64: ed25519 or compact signatures from non-EVM wallets
    if len(sig) not in (64, 65):
        raise SignerError(
            f"Signature must be 64 or 65 bytes, got {len(sig)}", SignerErrorKind.INVALID_SIGNATURE
        )
    return "0x" + body.lower()


async def _maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


class Signer:
    """
    Unified signer. Construct through the classmethods, not directly.

    Usage:
        signer = Signer.from_private_key(os.environ["PRIVATE_KEY"])
        sig = await signer.sign_message(sign_data.message)
    """

    def __init__(
        self,
        *,
        _account: Any = None,
        _callback: SignCallback | None = None,
        _external: Any = None,
        address: str | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._account = _account
        self._callback = _callback
        self._external = _external
        self._address = address
        self._log = logger or logging.getLogger("enclave_sdk.signer")

    # ------------------------------------------------------------------
    # Constructors
    # ------------------------------------------------------------------

    @classmethod
    def from_private_key(cls, private_key: str, logger: logging.Logger | None = None) -> Signer:
        """
        Local secp256k1 key. Signs EIP-191 personal messages.

        Raises:
            SignerError: UNSUPPORTED if the key cannot be parsed.
        """
        if not private_key or not isinstance(private_key, str):
            raise SignerError("private_key must be a non-empty hex string", SignerErrorKind.UNSUPPORTED)
        key = private_key if private_key.startswith("0x") else "0x" + private_key
        try:
            account = Account.from_key(key)
        except (ValueError, TypeError) as e:
            # the message can echo key material; keep only the type
            raise SignerError(
                f"Failed to initialize signer from private key ({type(e).__name__})",
                SignerErrorKind.UNSUPPORTED,
            ) from None
        return cls(_account=account, address=account.address, logger=logger)

    @classmethod
    def from_callback(
        cls, callback: SignCallback, address: str | None = None, logger: logging.Logger | None = None
    ) -> Signer:
        """
        Delegate signing to `callback(message) -> signature`.

        A callback cannot report its own address, so pass `address` if the
        SDK needs it (commitment owner, login).
        """
        if not callable(callback):
            raise SignerError("callback must be callable", SignerErrorKind.UNSUPPORTED)
        if address is not None and not is_valid_evm_address(address):
            raise SignerError(f"Invalid signer address: {address}", SignerErrorKind.UNSUPPORTED)
        return cls(
            _callback=callback,
            address=to_checksum_address(address) if address else None,
            logger=logger,
        )

    @classmethod
    def from_external(cls, signer: Any, logger: logging.Logger | None = None) -> Signer:
        """Wrap any object exposing `sign_message(message)` and `get_address()`, sync or async."""
        if not callable(getattr(signer, "sign_message", None)):
            raise SignerError(
                f"{type(signer).__name__} has no sign_message()", SignerErrorKind.UNSUPPORTED
            )
        return cls(_external=signer, logger=logger)

    @classmethod
    def coerce(cls, value: Any, address: str | None = None) -> Signer:
        """Build a Signer from a key string, a callable or a signer-like object."""
        if isinstance(value, Signer):
            return value
        if isinstance(value, str):
            return cls.from_private_key(value)
        if hasattr(value, "sign_message"):
            return cls.from_external(value)
        if callable(value):
            return cls.from_callback(value, address)
        raise SignerError(
            f"Cannot build a signer from {type(value).__name__}", SignerErrorKind.UNSUPPORTED
        )

    # ------------------------------------------------------------------
    # Capability
    # ------------------------------------------------------------------

    @property
    def kind(self) -> str:
        if self._account is not None:
            return "private_key"
        if self._callback is not None:
            return "callback"
        return "external"

    async def sign_message(self, message: str) -> str:
        """
        Sign the raw message text.

        Returns:
            0x-prefixed 65-byte signature.

        Raises:
            SignerError: with kind USER_REJECTED, SIGNER_FAILURE, UNSUPPORTED
                or INVALID_SIGNATURE.
        """
        if not message or not isinstance(message, str):
            raise SignerError("message must be a non-empty string", SignerErrorKind.UNSUPPORTED)
        try:
            if self._account is not None:
                raw = self._account.sign_message(encode_defunct(text=message))
            elif self._callback is not None:
                raw = await _maybe_await(self._callback(message))
            else:
                raw = await _maybe_await(self._external.sign_message(message))
        except Exception as e:
            kind = classify_signer_exception(e)
            if kind is SignerErrorKind.USER_REJECTED:
                self._log.info("Signature request rejected by user")
            else:
                self._log.error(f"Signer failed: {type(e).__name__}: {e}")
            raise SignerError(f"Failed to sign message: {e}", kind, step="sign") from e

        signature = _normalize_signature(raw)
        self._log.debug(f"Signed message ({len(message)} chars) sig={signature[:12]}...")
        return signature

    async def get_address(self) -> str:
        """Checksummed EVM address of the signer."""
        if self._address:
            return self._address
        if self._external is None or not callable(getattr(self._external, "get_address", None)):
            raise SignerError(
                "Cannot derive address from a callback signer; pass address= when constructing it",
                SignerErrorKind.UNSUPPORTED,
            )
        try:
            address = await _maybe_await(self._external.get_address())
        except Exception as e:
            raise SignerError(f"Failed to get address: {e}", classify_signer_exception(e)) from e
        if not isinstance(address, str) or not is_valid_evm_address(address):
            raise SignerError(f"Signer returned an invalid address: {address!r}", SignerErrorKind.SIGNER_FAILURE)
        self._address = to_checksum_address(address)
        return self._address

    async def get_universal_address(self, chain_id: int = SLIP44_ETHEREUM) -> UniversalAddress:
        return UniversalAddress.from_evm(await self.get_address(), chain_id)

    def __repr__(self) -> str:
        return f"Signer(kind={self.kind!r}, address={self._address!r})"


def recover_signer(message: str, signature: str) -> str:
    """
    Recover the checksummed address that produced an EIP-191 signature.

    Raises:
        SignerError: INVALID_SIGNATURE if the signature is malformed.
    """
    sig = _normalize_signature(signature)
    try:
        return Account.recover_message(encode_defunct(text=message), signature=sig)
    except (ValueError, TypeError) as e:
        raise SignerError(f"Cannot recover signer: {e}", SignerErrorKind.INVALID_SIGNATURE) from e


def verify_signature(message: str, signature: str, address: str) -> bool:
    try:
        return recover_signer(message, signature).lower() == address.lower()
    except SignerError:
        return False
