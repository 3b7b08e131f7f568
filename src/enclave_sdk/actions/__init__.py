"""actions module init"""
from enclave_sdk.actions.commitment import CommitmentAction, PreparedCommitment, SignedCommitment
from enclave_sdk.actions.withdrawal import PreparedWithdrawal, SignedWithdrawal, WithdrawalAction

__all__ = [
    "CommitmentAction",
    "PreparedCommitment",
    "PreparedWithdrawal",
    "SignedCommitment",
    "SignedWithdrawal",
    "WithdrawalAction",
]
