"""
Local entity caches.

Each store holds an immutable snapshot (a read-only mapping id -> model).
Every mutation builds a new snapshot, swaps it in, and hands it to the
subscribers, so a reader never observes a half-applied update and nothing
outside the store can mutate it.

Stores are only written after a successful backend response or a realtime
push; the action layer never writes optimistically.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable, Mapping
from types import MappingProxyType
from typing import Any, Generic, TypeVar

from enclave_sdk.core.models import Allocation, Checkbook, TokenPrice, WithdrawRequest
from enclave_sdk.core.status import AllocationStatus, WithdrawStatus

T = TypeVar("T")

Snapshot = Mapping[str, Any]
Listener = Callable[[Snapshot], None]

UPSERT_ACTIONS = frozenset({"created", "updated", "create", "update", "upsert"})
DELETE_ACTIONS = frozenset({"deleted", "delete", "removed"})


class EntityStore(Generic[T]):
    """Immutable-snapshot store keyed by `key(entity)` (default: `entity.id`)."""

    name = "entities"

    def __init__(
        self,
        key: Callable[[T], str] | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._key = key or (lambda e: str(e.id))  # type: ignore[attr-defined]
        self._snapshot: Mapping[str, T] = MappingProxyType({})
        self._listeners: list[Listener] = []
        self._log = logger or logging.getLogger(f"enclave_sdk.store.{self.name}")
        self.last_updated: float | None = None

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @property
    def snapshot(self) -> Mapping[str, T]:
        return self._snapshot

    def get(self, entity_id: str) -> T | None:
        return self._snapshot.get(entity_id)

    def has(self, entity_id: str) -> bool:
        return entity_id in self._snapshot

    def values(self) -> list[T]:
        return list(self._snapshot.values())

    def filter(self, predicate: Callable[[T], bool]) -> list[T]:
        return [e for e in self._snapshot.values() if predicate(e)]

    def find(self, predicate: Callable[[T], bool]) -> T | None:
        return next((e for e in self._snapshot.values() if predicate(e)), None)

    def is_stale(self, threshold: float = 60.0) -> bool:
        return self.last_updated is None or time.time() - self.last_updated > threshold

    def __len__(self) -> int:
        return len(self._snapshot)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def _commit(self, data: dict[str, T]) -> Mapping[str, T]:
        self._snapshot = MappingProxyType(data)
        self.last_updated = time.time()
        for listener in list(self._listeners):
            try:
                listener(self._snapshot)
            except Exception as e:
                self._log.error(f"{self.name} listener failed: {e}")
        return self._snapshot

    def upsert(self, entity: T) -> Mapping[str, T]:
        data = dict(self._snapshot)
        data[self._key(entity)] = entity
        return self._commit(data)

    def upsert_many(self, entities: Iterable[T]) -> Mapping[str, T]:
        data = dict(self._snapshot)
        for e in entities:
            data[self._key(e)] = e
        return self._commit(data)

    def remove(self, entity_id: str) -> Mapping[str, T]:
        if entity_id not in self._snapshot:
            return self._snapshot
        data = dict(self._snapshot)
        del data[entity_id]
        return self._commit(data)

    def replace_all(self, entities: Iterable[T]) -> Mapping[str, T]:
        return self._commit({self._key(e): e for e in entities})

    def clear(self) -> Mapping[str, T]:
        return self._commit({})

    def apply_update(self, update: Any) -> Mapping[str, T]:
        """
        Apply a normalized realtime update (anything with `.action` and `.entity`).

        created / updated upsert the entity, deleted removes it. Unknown
        actions are treated as upserts.
        """
        action = str(getattr(update, "action", "updated") or "updated").lower()
        entity = update.entity
        if action in DELETE_ACTIONS:
            return self.remove(self._key(entity))
        if action not in UPSERT_ACTIONS:
            self._log.debug(f"Unknown update action {action!r}; upserting")
        return self.upsert(entity)

    # ------------------------------------------------------------------
    # Subscribers
    # ------------------------------------------------------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register `listener(snapshot)`. Returns an unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe


class CheckbookStore(EntityStore[Checkbook]):
    name = "checkbooks"

    def by_token(self, symbol: str) -> list[Checkbook]:
        return self.filter(lambda c: c.token_symbol == symbol)

    def by_owner(self, owner_hex: str) -> list[Checkbook]:
        owner_hex = owner_hex.lower()
        return self.filter(lambda c: c.owner is not None and c.owner.canonical_hex() == owner_hex)


class AllocationStore(EntityStore[Allocation]):
    name = "allocations"

    def by_checkbook(self, checkbook_id: str, status: AllocationStatus | None = None) -> list[Allocation]:
        return sorted(
            self.filter(lambda a: a.checkbook_id == checkbook_id and (status is None or a.status == status)),
            key=lambda a: a.seq,
        )

    def by_status(self, status: AllocationStatus) -> list[Allocation]:
        return self.filter(lambda a: a.status == status)

    def by_withdraw_request(self, withdraw_id: str) -> list[Allocation]:
        return self.filter(lambda a: a.withdraw_request_id == withdraw_id)

    def total_amount(self, status: AllocationStatus | None = None) -> int:
        return sum(int(a.amount) for a in self.values() if status is None or a.status == status)


class WithdrawalStore(EntityStore[WithdrawRequest]):
    name = "withdrawals"

    def by_nullifier(self, nullifier: str) -> WithdrawRequest | None:
        n = nullifier.lower()
        return self.find(lambda w: (w.nullifier or "").lower() == n)

    def by_status(self, status: WithdrawStatus) -> list[WithdrawRequest]:
        return self.filter(lambda w: w.status == status)

    def active(self) -> list[WithdrawRequest]:
        return self.filter(lambda w: not w.is_terminal)


class PriceStore(EntityStore[TokenPrice]):
    name = "prices"

    def __init__(self, logger: logging.Logger | None = None) -> None:
        super().__init__(key=lambda p: p.symbol, logger=logger)
