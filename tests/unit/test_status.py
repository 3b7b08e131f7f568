"""
Unit tests for the status vocabularies and the withdrawal state machine helpers.
"""

import pytest

from enclave_sdk.core.status import (
    AllocationStatus,
    CheckbookStatus,
    FrontendWithdrawStatus,
    WithdrawStatus,
    can_cancel_withdraw,
    can_create_allocations,
    can_create_commitment,
    can_retry_withdraw,
    get_frontend_status,
    get_progress_percentage,
    get_retry_action,
    get_withdraw_stage,
    is_checkbook_processing,
    is_completed_status,
    is_failed_status,
    is_retryable_checkbook_failure,
    is_terminal_status,
    parse_enum,
)

W = WithdrawStatus


class TestWithdrawTransitions:
    @pytest.mark.parametrize("status", [W.PROOF_FAILED, W.SUBMIT_FAILED])
    def test_retryable(self, status):
        assert can_retry_withdraw(status)
        assert can_cancel_withdraw(status)

    def test_verify_failed_is_cancel_only(self):
        assert not can_retry_withdraw(W.VERIFY_FAILED)
        assert can_cancel_withdraw(W.VERIFY_FAILED)
        assert get_retry_action(W.VERIFY_FAILED) == "cancel"
        assert get_frontend_status(W.VERIFY_FAILED) is FrontendWithdrawStatus.FAILED_PERMANENT

    @pytest.mark.parametrize("status", [W.PROVING, W.SUBMITTED, W.PAYOUT_FAILED, W.COMPLETED, None])
    def test_not_retryable_or_cancellable(self, status):
        assert not can_retry_withdraw(status)
        assert not can_cancel_withdraw(status)

    def test_retry_actions(self):
        assert get_retry_action(W.SUBMIT_FAILED) == "retry_execute"
        assert get_retry_action(W.PROOF_FAILED) == "cancel"
        assert get_retry_action(W.PAYOUT_FAILED) is None
        assert get_retry_action(W.COMPLETED) is None

    def test_every_status_has_a_frontend_status(self):
        for status in W:
            assert isinstance(get_frontend_status(status), FrontendWithdrawStatus)
        assert get_frontend_status(None) is FrontendWithdrawStatus.FAILED

    def test_terminal(self):
        for status in (W.COMPLETED, W.COMPLETED_WITH_HOOK_FAILED, W.FAILED_PERMANENT,
                       W.CANCELLED, W.MANUALLY_RESOLVED):
            assert is_terminal_status(status)
        assert not is_terminal_status(W.HOOK_FAILED)
        assert not is_terminal_status(W.SUBMIT_FAILED)

    def test_completed_and_failed(self):
        assert is_completed_status(W.MANUALLY_RESOLVED)
        assert not is_completed_status(W.PAYOUT_COMPLETED)
        assert is_failed_status(W.HOOK_FAILED)
        assert not is_failed_status(W.CANCELLED)


class TestStagesAndProgress:
    @pytest.mark.parametrize("status,stage", [
        (W.CREATED, 1), (W.PROOF_FAILED, 1), (W.SUBMITTING, 2), (W.VERIFY_FAILED, 2),
        (W.WAITING_FOR_PAYOUT, 3), (W.HOOK_PROCESSING, 4), (W.COMPLETED, 4), (None, 1),
        # terminal statuses keep the stage they ended in
        (W.CANCELLED, 1), (W.FAILED_PERMANENT, 3), (W.MANUALLY_RESOLVED, 4),
    ])
    def test_stage(self, status, stage):
        assert get_withdraw_stage(status) == stage

    def test_progress_is_monotonic_along_happy_path(self):
        path = [W.PROVING, W.PROOF_GENERATED, W.SUBMITTING, W.SUBMITTED, W.EXECUTE_CONFIRMED,
                W.WAITING_FOR_PAYOUT, W.PAYOUT_PROCESSING, W.PAYOUT_COMPLETED,
                W.HOOK_PROCESSING, W.COMPLETED]
        values = [get_progress_percentage(s) for s in path]
        assert values == sorted(values)
        assert values[-1] == 100

    def test_failures_sit_at_stage_floor(self):
        assert get_progress_percentage(W.PROOF_FAILED) == 0
        assert get_progress_percentage(W.SUBMIT_FAILED) == 25
        assert get_progress_percentage(W.PAYOUT_FAILED) == 50
        assert get_progress_percentage(None) == 0


class TestCheckbookStatus:
    def test_commitment_allowed(self):
        assert can_create_commitment(CheckbookStatus.READY_FOR_COMMITMENT)
        assert can_create_commitment(CheckbookStatus.SUBMISSION_FAILED)
        assert not can_create_commitment(CheckbookStatus.PENDING)
        assert not can_create_commitment(CheckbookStatus.DELETED)
        assert not can_create_commitment(None)

    def test_allocations_allowed(self):
        assert can_create_allocations(CheckbookStatus.WITH_CHECKBOOK)
        assert not can_create_allocations(CheckbookStatus.GENERATING_PROOF)

    def test_processing_and_retryable(self):
        assert is_checkbook_processing(CheckbookStatus.COMMITMENT_PENDING)
        assert not is_checkbook_processing(CheckbookStatus.WITH_CHECKBOOK)
        assert is_retryable_checkbook_failure(CheckbookStatus.PROOF_FAILED)


def test_parse_enum_is_lenient():
    assert parse_enum(WithdrawStatus, "VERIFY_FAILED") is W.VERIFY_FAILED
    assert parse_enum(AllocationStatus, "idle") is AllocationStatus.IDLE
    assert parse_enum(WithdrawStatus, "exploded") is None
    assert parse_enum(WithdrawStatus, None) is None
