"""
Error taxonomy for the Enclave SDK.

Every exception raised by the SDK derives from EnclaveError, which carries a
stable `code`, an optional `step` (prepare / sign / submit / retry / cancel)
and a `details` dict with the identifiers involved. The classes fall into
five groups:

  1. Validation      -- ValidationError, ConfigError
  2. State           -- InvalidStateError, InsufficientBalanceError, NotFoundError
  3. Signer          -- SignerError (tagged with a SignerErrorKind)
  4. Transport       -- NetworkError, APIError, AuthError, WebSocketError,
                        EnclaveTimeoutError
  5. Protocol        -- WithdrawStateError (e.g. verify_failed: cancel, never retry)
"""

from __future__ import annotations

import enum
from typing import Any


class EnclaveError(Exception):
    """Base class for all SDK errors."""

    code = "ENCLAVE_ERROR"

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        step: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.step = step
        self.details = dict(details or {})

    def to_dict(self) -> dict[str, Any]:
        """Serialize for structured logging / bug reports."""
        return {
            "name": type(self).__name__,
            "code": self.code,
            "message": self.message,
            "step": self.step,
            "details": self.details,
        }

    def __str__(self) -> str:
        if self.step:
            return f"[{self.step}] {self.message}"
        return self.message


# ------------------------------------------------------------------
# 1. Validation
# ------------------------------------------------------------------


class ValidationError(EnclaveError):
    """Malformed or missing input. Always user-correctable."""

    code = "VALIDATION_ERROR"

    def __init__(self, message: str, field: str | None = None, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.field = field
        if field is not None:
            self.details.setdefault("field", field)


class ConfigError(ValidationError):
    """Invalid SDK configuration."""

    code = "CONFIG_ERROR"


# ------------------------------------------------------------------
# 2. State preconditions
# ------------------------------------------------------------------


class InvalidStateError(EnclaveError):
    """A checkbook / allocation / withdrawal is not in a state that allows the action."""

    code = "INVALID_STATE"


class InsufficientBalanceError(InvalidStateError):
    code = "INSUFFICIENT_BALANCE"

    def __init__(self, message: str, required: int, available: int, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.required = required
        self.available = available
        self.details.update({"required": str(required), "available": str(available)})


class NotFoundError(EnclaveError):
    code = "NOT_FOUND"

    def __init__(self, resource: str, identifier: str, **kwargs: Any) -> None:
        super().__init__(f"{resource} {identifier} not found", **kwargs)
        self.resource = resource
        self.identifier = identifier
        self.details.update({"resource": resource, "id": identifier})


# ------------------------------------------------------------------
# 3. Signer
# ------------------------------------------------------------------


class SignerErrorKind(str, enum.Enum):
    """Classification produced by the signer adapter. Branch on this, not on message text."""

    USER_REJECTED = "user_rejected"
    SIGNER_FAILURE = "signer_failure"
    UNSUPPORTED = "unsupported"
    INVALID_SIGNATURE = "invalid_signature"


class SignerError(EnclaveError):
    """Raised by the signer adapter. `kind` says whether the user declined or the signer broke."""

    code = "SIGNER_ERROR"

    def __init__(
        self,
        message: str,
        kind: SignerErrorKind = SignerErrorKind.SIGNER_FAILURE,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, **kwargs)
        self.kind = kind
        self.details.setdefault("kind", kind.value)

    @property
    def user_rejected(self) -> bool:
        return self.kind is SignerErrorKind.USER_REJECTED

    @property
    def retryable(self) -> bool:
        """A rejection is a user decision; only signer failures may be retried."""
        return self.kind is SignerErrorKind.SIGNER_FAILURE


# ------------------------------------------------------------------
# 4. Transport
# ------------------------------------------------------------------


class NetworkError(EnclaveError):
    """The backend could not be reached."""

    code = "NETWORK_ERROR"


class APIError(NetworkError):
    """The backend answered with an error status or `success: false`."""

    code = "API_ERROR"

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        endpoint: str | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, **kwargs)
        self.status_code = status_code
        self.endpoint = endpoint
        self.details.update({"status_code": status_code, "endpoint": endpoint})

    @property
    def is_conflict(self) -> bool:
        return self.status_code == 409


class AuthError(APIError):
    code = "AUTH_ERROR"


class WebSocketError(NetworkError):
    code = "WEBSOCKET_ERROR"


class EnclaveTimeoutError(NetworkError):
    code = "TIMEOUT_ERROR"

    def __init__(self, message: str, timeout: float | None = None, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.timeout = timeout
        if timeout is not None:
            self.details.setdefault("timeout", timeout)


# ------------------------------------------------------------------
# 5. Protocol-terminal
# ------------------------------------------------------------------


class WithdrawStateError(InvalidStateError):
    """
    The backend withdrawal status forbids the requested transition.

    `verify_failed` is the canonical case: the proof or nullifier was rejected
    on-chain, so the request cannot be retried and must be cancelled.
    """

    code = "WITHDRAW_STATE"

    def __init__(self, message: str, status: str, action: str, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.status = status
        self.action = action
        self.details.update({"status": status, "action": action})

    @property
    def must_cancel(self) -> bool:
        return self.status == "verify_failed"
