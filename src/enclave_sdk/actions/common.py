"""Shared lookups for the action flows: cache first, then at most one backend refetch."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable

from enclave_sdk.core.api import EnclaveAPI
from enclave_sdk.core.errors import APIError, EnclaveError, InvalidStateError
from enclave_sdk.core.models import Allocation, Checkbook
from enclave_sdk.core.store import AllocationStore, CheckbookStore

CHECKBOOK_FIELDS = ("local_deposit_id", "slip44_chain_id", "token_symbol")


def missing_checkbook_fields(checkbook: Checkbook, required: Iterable[str]) -> list[str]:
    return [f for f in required if getattr(checkbook, f) is None]


async def resolve_checkbook(
    api: EnclaveAPI,
    store: CheckbookStore,
    checkbook_id: str,
    required: Iterable[str] = CHECKBOOK_FIELDS,
    step: str = "prepare",
    logger: logging.Logger | None = None,
) -> Checkbook:
    """
    Return the checkbook with every `required` field present.

    The cache is used when complete. Otherwise the backend is asked once;
    a field still missing after that raises instead of refetching again.

    Raises:
        InvalidStateError: a required field is missing after the refetch.
        NotFoundError / APIError: from the backend fetch.
    """
    log = logger or logging.getLogger("enclave_sdk.actions")
    required = tuple(required)
    checkbook = store.get(checkbook_id)
    if checkbook is not None and not missing_checkbook_fields(checkbook, required):
        return checkbook

    if checkbook is None:
        log.info(f"Checkbook {checkbook_id} not cached; fetching")
    else:
        log.info(
            f"Checkbook {checkbook_id} missing {missing_checkbook_fields(checkbook, required)}; refetching once"
        )
    checkbook = await api.get_checkbook(checkbook_id)
    store.upsert(checkbook)

    missing = missing_checkbook_fields(checkbook, required)
    if missing:
        raise InvalidStateError(
            f"Checkbook {checkbook_id} is missing {', '.join(missing)} after refetch",
            step=step,
            details={"checkbook_id": checkbook_id, "missing": missing},
        )
    return checkbook


async def resolve_allocation(
    api: EnclaveAPI,
    store: AllocationStore,
    allocation_id: str,
    logger: logging.Logger | None = None,
    accept: Callable[[Allocation], bool] | None = None,
) -> Allocation:
    """
    Return the cached allocation, fetching it when absent.

    A cached record rejected by `accept` is refetched once; the caller
    checks the fresh record and raises if it is still unacceptable.
    """
    log = logger or logging.getLogger("enclave_sdk.actions")
    allocation = store.get(allocation_id)
    if allocation is not None:
        if accept is None or accept(allocation):
            return allocation
        log.info(f"Cached allocation {allocation_id} is {allocation.status.value}; refetching once")
    else:
        log.info(f"Allocation {allocation_id} not cached; fetching")
    allocation = await api.get_allocation(allocation_id)
    store.upsert(allocation)
    return allocation


def tag_step(error: EnclaveError, step: str) -> EnclaveError:
    """Attach the flow step to an error raised below the action layer."""
    if error.step is None:
        error.step = step
    return error


def is_conflict(error: Exception) -> bool:
    return isinstance(error, APIError) and error.is_conflict
