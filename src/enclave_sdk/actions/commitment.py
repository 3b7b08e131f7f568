"""
CommitmentAction: split a checkbook into allocations.

Three steps, each callable on its own:

    prepared = await action.prepare(checkbook_id, ["1000000", "500000"])
    signed   = await action.sign(prepared)          # wallet prompt
    allocs   = await action.submit(signed)

prepare() does every check before the wallet is involved. submit() sends
the allocations and the signature; the backend recomputes the commitment
through its proof pipeline and its value is the one that is kept. The
locally derived commitment is only compared and logged.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from enclave_sdk.actions.common import is_conflict, resolve_checkbook, tag_step
from enclave_sdk.core.address import UniversalAddress
from enclave_sdk.core.amount import AmountLike, amount_to_int
from enclave_sdk.core.api import EnclaveAPI
from enclave_sdk.core.chain import SLIP44_ETHEREUM, is_evm_chain
from enclave_sdk.core.errors import (
    EnclaveError,
    InsufficientBalanceError,
    InvalidStateError,
    ValidationError,
)
from enclave_sdk.core.hashing import strip_0x
from enclave_sdk.core.models import Allocation, Checkbook, CommitmentSignData
from enclave_sdk.core.signer import Signer
from enclave_sdk.core.status import can_create_commitment
from enclave_sdk.core.store import AllocationStore, CheckbookStore
from enclave_sdk.crypto.commitment import AllocationInput
from enclave_sdk.formatters.commitment import prepare_commitment_message
from enclave_sdk.formatters.languages import LANG_EN


@dataclass(frozen=True)
class PreparedCommitment:
    checkbook: Checkbook
    allocations: tuple[AllocationInput, ...]
    owner: UniversalAddress
    sign_data: CommitmentSignData
    language: int

    @property
    def message(self) -> str:
        return self.sign_data.message


@dataclass(frozen=True)
class SignedCommitment:
    prepared: PreparedCommitment
    signature: str


class CommitmentAction:
    """Orchestrates prepare -> sign -> submit for commitments."""

    def __init__(
        self,
        api: EnclaveAPI,
        checkbooks: CheckbookStore,
        allocations: AllocationStore,
        signer: Signer,
        language: int = LANG_EN,
        submit_timeout: float | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.api = api
        self.checkbooks = checkbooks
        self.allocations = allocations
        self.signer = signer
        self.language = language
        self.submit_timeout = submit_timeout
        self._log = logger or logging.getLogger("enclave_sdk.actions.commitment")

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    async def prepare(
        self,
        checkbook_id: str,
        amounts: Sequence[AmountLike],
        language: int | None = None,
    ) -> PreparedCommitment:
        """
        Validate the request and build the message to sign.

        Allocation seqs are the positions in `amounts` (0, 1, 2, ...).

        Raises:
            ValidationError: empty id / amounts or a malformed amount.
            InvalidStateError: the checkbook cannot take a commitment, or is
                missing its deposit id / chain / token after one refetch.
            InsufficientBalanceError: sum(amounts) > allocatable amount.
        """
        if not checkbook_id:
            raise ValidationError("checkbook_id is required", "checkbook_id", step="prepare")
        if not amounts:
            raise ValidationError("At least one amount is required", "amounts", step="prepare")
        values = []
        for i, a in enumerate(amounts):
            v = amount_to_int(a, f"amounts[{i}]")
            if v == 0:
                raise ValidationError(f"amounts[{i}] must be greater than 0", "amounts", step="prepare")
            values.append(v)

        self._log.info(f"Preparing commitment for checkbook {checkbook_id} ({len(values)} allocations)")
        checkbook = await resolve_checkbook(self.api, self.checkbooks, checkbook_id, logger=self._log)

        if not can_create_commitment(checkbook.status):
            raise InvalidStateError(
                f"Checkbook {checkbook_id} in status {checkbook.raw_status!r} cannot create a commitment",
                step="prepare",
                details={"checkbook_id": checkbook_id, "status": checkbook.raw_status},
            )
        total = sum(values)
        available = int(checkbook.allocatable_amount)
        if total > available:
            raise InsufficientBalanceError(
                f"Allocations total {total} exceeds allocatable amount {available}",
                required=total,
                available=available,
                step="prepare",
                details={"checkbook_id": checkbook_id},
            )

        chain_id = checkbook.slip44_chain_id
        owner_chain = chain_id if is_evm_chain(chain_id) else SLIP44_ETHEREUM
        owner = await self.signer.get_universal_address(owner_chain)
        allocations = tuple(AllocationInput(seq=i, amount=v) for i, v in enumerate(values))
        lang = self.language if language is None else language

        sign_data = prepare_commitment_message(
            allocations,
            deposit_id=checkbook.local_deposit_id,
            token_key=checkbook.token_symbol,
            chain_id=chain_id,
            owner_address=owner,
            language=lang,
            local_deposit_id=checkbook.local_deposit_id,
            token_decimals=checkbook.token.decimals if checkbook.token else 18,
        )
        self._log.debug(f"Commitment message hash {sign_data.message_hash}")
        return PreparedCommitment(
            checkbook=checkbook,
            allocations=allocations,
            owner=owner,
            sign_data=sign_data,
            language=lang,
        )

    async def sign(self, prepared: PreparedCommitment) -> SignedCommitment:
        """Ask the signer to sign the raw message (never the hash)."""
        signature = await self.signer.sign_message(prepared.sign_data.message)
        return SignedCommitment(prepared=prepared, signature=signature)

    def build_submit_body(self, signed: SignedCommitment) -> dict[str, Any]:
        p = signed.prepared
        owner_hex = strip_0x(p.owner.to_hex())
        return {
            "checkbook_id": p.checkbook.id,
            "allocations": [
                {
                    "recipient_chain_id": p.owner.chain_id,
                    "recipient_address": owner_hex,
                    "amount": str(a.amount),
                }
                for a in p.allocations
            ],
            "deposit_id": str(p.checkbook.local_deposit_id),
            "signature": {
                "chain_id": p.owner.chain_id,
                "signature_data": signed.signature,
                "public_key": None,
            },
            "owner_address": {"chain_id": p.owner.chain_id, "address": owner_hex},
            "token_symbol": p.sign_data.token_key,
            "token_decimals": p.checkbook.token.decimals if p.checkbook.token else 18,
            "lang": p.language,
        }

    async def submit(self, signed: SignedCommitment) -> list[Allocation]:
        """
        Send the signed commitment. Caches are only touched after success.

        Raises:
            InvalidStateError: the backend reports a conflict (409).
            APIError / NetworkError: any other backend failure, tagged step="submit".
        """
        p = signed.prepared
        if not signed.signature:
            raise ValidationError("signature is required", "signature", step="submit")
        body = self.build_submit_body(signed)
        self._log.info(f"Submitting commitment for checkbook {p.checkbook.id}")
        try:
            backend_commitment, allocations, checkbook = await self.api.submit_commitment(
                body, timeout=self.submit_timeout
            )
        except EnclaveError as e:
            if is_conflict(e):
                raise InvalidStateError(
                    f"Checkbook {p.checkbook.id} already has a commitment in progress",
                    step="submit",
                    details={"checkbook_id": p.checkbook.id},
                ) from e
            self._log.error(f"Commitment submit failed for checkbook {p.checkbook.id}: {e}")
            raise tag_step(e, "submit")

        local = p.sign_data.commitment.lower()
        if backend_commitment and strip_0x(backend_commitment).lower() != strip_0x(local):
            self._log.warning(
                f"Commitment mismatch for checkbook {p.checkbook.id}: "
                f"local={local} backend={backend_commitment}; keeping backend value"
            )

        if checkbook is not None:
            self.checkbooks.upsert(checkbook)
        elif backend_commitment:
            self.checkbooks.upsert(p.checkbook.model_copy(update={"commitment": backend_commitment}))
        if allocations:
            self.allocations.upsert_many(allocations)
        self._log.info(f"Created {len(allocations)} allocations for checkbook {p.checkbook.id}")
        return allocations

    async def create(
        self,
        checkbook_id: str,
        amounts: Sequence[AmountLike],
        language: int | None = None,
    ) -> list[Allocation]:
        """Full flow: prepare, sign, submit."""
        prepared = await self.prepare(checkbook_id, amounts, language)
        signed = await self.sign(prepared)
        return await self.submit(signed)
