"""
Status vocabularies for checkbooks, allocations and withdraw requests.

The backend tracks a withdrawal through four sub-pipelines rolled into one
status:

  Stage 1 (proof):     created, proving, proof_failed, proof_generated
  Stage 2 (on-chain):  submitting, submit_failed, verify_failed, submitted,
                       execute_confirmed
  Stage 3 (payout):    waiting_for_payout, payout_processing, payout_failed,
                       payout_completed
  Stage 4 (hook):      hook_processing, hook_failed
  Terminal:            completed, completed_with_hook_failed, failed_permanent,
                       cancelled, manually_resolved

submit_failed is transient (RPC / network) and may be retried.
verify_failed means the proof or nullifier was rejected on-chain: it can only
be cancelled.
"""

from __future__ import annotations

import enum


class WithdrawStatus(str, enum.Enum):
    CREATED = "created"
    PROVING = "proving"
    PROOF_FAILED = "proof_failed"
    PROOF_GENERATED = "proof_generated"

    SUBMITTING = "submitting"
    SUBMIT_FAILED = "submit_failed"
    VERIFY_FAILED = "verify_failed"
    SUBMITTED = "submitted"
    EXECUTE_CONFIRMED = "execute_confirmed"

    WAITING_FOR_PAYOUT = "waiting_for_payout"
    PAYOUT_PROCESSING = "payout_processing"
    PAYOUT_FAILED = "payout_failed"
    PAYOUT_COMPLETED = "payout_completed"

    HOOK_PROCESSING = "hook_processing"
    HOOK_FAILED = "hook_failed"

    COMPLETED = "completed"
    COMPLETED_WITH_HOOK_FAILED = "completed_with_hook_failed"
    FAILED_PERMANENT = "failed_permanent"
    CANCELLED = "cancelled"
    MANUALLY_RESOLVED = "manually_resolved"


class FrontendWithdrawStatus(str, enum.Enum):
    PROVING = "proving"
    SUBMITTING = "submitting"
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    FAILED_PERMANENT = "failed_permanent"


class CheckbookStatus(str, enum.Enum):
    PENDING = "pending"
    UNSIGNED = "unsigned"
    READY_FOR_COMMITMENT = "ready_for_commitment"
    GENERATING_PROOF = "generating_proof"
    SUBMITTING_COMMITMENT = "submitting_commitment"
    COMMITMENT_PENDING = "commitment_pending"
    WITH_CHECKBOOK = "with_checkbook"
    PROOF_FAILED = "proof_failed"
    SUBMISSION_FAILED = "submission_failed"
    DELETED = "deleted"


class AllocationStatus(str, enum.Enum):
    IDLE = "idle"
    PENDING = "pending"
    USED = "used"


def parse_enum(enum_cls: type[enum.Enum], value: object) -> enum.Enum | None:
    """Lenient lookup: returns None for unknown or missing values."""
    if value is None:
        return None
    try:
        return enum_cls(str(value).lower())
    except ValueError:
        return None


# ==============================================================================
# Withdraw requests
# ==============================================================================

W = WithdrawStatus
F = FrontendWithdrawStatus

_FRONTEND: dict[WithdrawStatus, FrontendWithdrawStatus] = {
    W.CREATED: F.PROVING,
    W.PROVING: F.PROVING,
    W.PROOF_FAILED: F.FAILED,
    W.PROOF_GENERATED: F.SUBMITTING,
    W.SUBMITTING: F.SUBMITTING,
    W.SUBMIT_FAILED: F.FAILED,
    W.VERIFY_FAILED: F.FAILED_PERMANENT,
    W.SUBMITTED: F.PENDING,
    W.EXECUTE_CONFIRMED: F.PROCESSING,
    W.WAITING_FOR_PAYOUT: F.PROCESSING,
    W.PAYOUT_PROCESSING: F.PROCESSING,
    W.PAYOUT_FAILED: F.FAILED,
    W.PAYOUT_COMPLETED: F.PROCESSING,
    W.HOOK_PROCESSING: F.PROCESSING,
    W.HOOK_FAILED: F.COMPLETED,
    W.COMPLETED: F.COMPLETED,
    W.COMPLETED_WITH_HOOK_FAILED: F.COMPLETED,
    W.FAILED_PERMANENT: F.FAILED_PERMANENT,
    W.CANCELLED: F.FAILED,
    W.MANUALLY_RESOLVED: F.COMPLETED,
}

_STAGE: dict[WithdrawStatus, int] = {
    W.CREATED: 1, W.PROVING: 1, W.PROOF_FAILED: 1,
    W.PROOF_GENERATED: 2, W.SUBMITTING: 2, W.SUBMIT_FAILED: 2,
    W.VERIFY_FAILED: 2, W.SUBMITTED: 2,
    W.EXECUTE_CONFIRMED: 3, W.WAITING_FOR_PAYOUT: 3, W.PAYOUT_PROCESSING: 3,
    W.PAYOUT_FAILED: 3, W.PAYOUT_COMPLETED: 3, W.FAILED_PERMANENT: 3,
    W.HOOK_PROCESSING: 4, W.HOOK_FAILED: 4, W.COMPLETED: 4,
    W.COMPLETED_WITH_HOOK_FAILED: 4, W.MANUALLY_RESOLVED: 4,
    W.CANCELLED: 1,
}

_PROGRESS: dict[WithdrawStatus, int] = {
    W.PROVING: 15,
    W.PROOF_GENERATED: 25,
    W.SUBMITTING: 35,
    W.SUBMITTED: 45,
    W.EXECUTE_CONFIRMED: 50,
    W.WAITING_FOR_PAYOUT: 60,
    W.PAYOUT_PROCESSING: 70,
    W.PAYOUT_COMPLETED: 80,
    W.HOOK_PROCESSING: 90,
    W.COMPLETED: 100,
    W.COMPLETED_WITH_HOOK_FAILED: 100,
    W.MANUALLY_RESOLVED: 100,
}

RETRYABLE_WITHDRAW = frozenset({W.PROOF_FAILED, W.SUBMIT_FAILED})
CANCELLABLE_WITHDRAW = frozenset({W.PROOF_FAILED, W.SUBMIT_FAILED, W.VERIFY_FAILED})
TERMINAL_WITHDRAW = frozenset({
    W.COMPLETED, W.COMPLETED_WITH_HOOK_FAILED, W.FAILED_PERMANENT,
    W.CANCELLED, W.MANUALLY_RESOLVED,
})
FAILED_WITHDRAW = frozenset({
    W.PROOF_FAILED, W.SUBMIT_FAILED, W.VERIFY_FAILED,
    W.PAYOUT_FAILED, W.HOOK_FAILED, W.FAILED_PERMANENT,
})


def get_frontend_status(status: WithdrawStatus | None) -> FrontendWithdrawStatus:
    if status is None:
        return F.FAILED
    return _FRONTEND.get(status, F.FAILED)


def can_retry_withdraw(status: WithdrawStatus | None) -> bool:
    return status in RETRYABLE_WITHDRAW


def can_cancel_withdraw(status: WithdrawStatus | None) -> bool:
    return status in CANCELLABLE_WITHDRAW


def is_terminal_status(status: WithdrawStatus | None) -> bool:
    return status in TERMINAL_WITHDRAW


def is_failed_status(status: WithdrawStatus | None) -> bool:
    return status in FAILED_WITHDRAW


def is_completed_status(status: WithdrawStatus | None) -> bool:
    return status in (W.COMPLETED, W.COMPLETED_WITH_HOOK_FAILED, W.MANUALLY_RESOLVED)


def get_withdraw_stage(status: WithdrawStatus | None) -> int:
    """Pipeline stage 1-4 the request is in (or ended in)."""
    if status is None:
        return 1
    return _STAGE.get(status, 1)


def get_progress_percentage(status: WithdrawStatus | None) -> int:
    if status is None:
        return 0
    if status in _PROGRESS:
        return _PROGRESS[status]
    # failures sit at the floor of their stage
    return {1: 0, 2: 25, 3: 50, 4: 80}[get_withdraw_stage(status)]


def get_retry_action(status: WithdrawStatus | None) -> str | None:
    """
    What the caller should offer the user for a failed request.

    Returns:
        "retry_execute" for submit_failed, "cancel" for proof_failed and
        verify_failed, None when the request waits for manual resolution
        or is not failed at all.
    """
    if status == W.SUBMIT_FAILED:
        return "retry_execute"
    if status in (W.PROOF_FAILED, W.VERIFY_FAILED):
        return "cancel"
    return None


# ==============================================================================
# Checkbooks
# ==============================================================================

C = CheckbookStatus

_COMMITMENT_ALLOWED = frozenset({
    C.READY_FOR_COMMITMENT, C.UNSIGNED, C.WITH_CHECKBOOK, C.GENERATING_PROOF,
    C.SUBMITTING_COMMITMENT, C.SUBMISSION_FAILED, C.PROOF_FAILED,
})


def can_create_commitment(status: CheckbookStatus | None) -> bool:
    return status in _COMMITMENT_ALLOWED


def can_create_allocations(status: CheckbookStatus | None) -> bool:
    return status in (C.READY_FOR_COMMITMENT, C.WITH_CHECKBOOK)


def is_retryable_checkbook_failure(status: CheckbookStatus | None) -> bool:
    return status in (C.PROOF_FAILED, C.SUBMISSION_FAILED)


def is_checkbook_processing(status: CheckbookStatus | None) -> bool:
    return status in (
        C.PENDING, C.UNSIGNED, C.GENERATING_PROOF,
        C.SUBMITTING_COMMITMENT, C.COMMITMENT_PENDING,
    )
