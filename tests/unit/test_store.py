"""
Unit tests for the immutable-snapshot entity stores.
"""

from dataclasses import dataclass

import pytest
from conftest import ADDRESS, allocation_wire, checkbook_wire

from enclave_sdk.core.models import Allocation, Checkbook, TokenPrice, WithdrawRequest
from enclave_sdk.core.status import AllocationStatus, WithdrawStatus
from enclave_sdk.core.store import AllocationStore, CheckbookStore, PriceStore, WithdrawalStore


@dataclass
class Update:
    action: str
    entity: object


def _alloc(allocation_id, checkbook_id="cb-1", seq=0, amount=100, status="idle", withdraw=None):
    return Allocation.from_wire(
        allocation_wire(allocation_id, checkbook_id, seq, amount, status=status, withdraw_request_id=withdraw)
    )


class TestSnapshots:
    def test_snapshot_is_read_only(self):
        store = AllocationStore()
        store.upsert(_alloc("a-1"))
        with pytest.raises(TypeError):
            store.snapshot["a-2"] = _alloc("a-2")

    def test_old_snapshot_is_unchanged_after_write(self):
        store = AllocationStore()
        before = store.upsert(_alloc("a-1"))
        store.upsert(_alloc("a-2", seq=1))
        assert list(before) == ["a-1"]
        assert len(store) == 2

    def test_replace_all_and_clear(self):
        store = AllocationStore()
        store.upsert_many([_alloc("a-1"), _alloc("a-2", seq=1)])
        store.replace_all([_alloc("a-3")])
        assert list(store.snapshot) == ["a-3"]
        store.clear()
        assert len(store) == 0

    def test_remove_missing_is_noop(self):
        store = AllocationStore()
        calls = []
        store.subscribe(calls.append)
        snap = store.remove("nope")
        assert snap == {}
        assert calls == []

    def test_staleness(self):
        store = CheckbookStore()
        assert store.is_stale()
        store.upsert(Checkbook.from_wire(checkbook_wire("cb-1")))
        assert not store.is_stale(threshold=60)


class TestSubscribers:
    def test_listener_receives_new_snapshot(self):
        store = AllocationStore()
        seen = []
        unsubscribe = store.subscribe(lambda snap: seen.append(sorted(snap)))
        store.upsert(_alloc("a-1"))
        unsubscribe()
        store.upsert(_alloc("a-2", seq=1))
        assert seen == [["a-1"]]

    def test_failing_listener_does_not_block_others(self):
        store = AllocationStore()
        seen = []

        def broken(_):
            raise RuntimeError("boom")

        store.subscribe(broken)
        store.subscribe(lambda snap: seen.append(len(snap)))
        store.upsert(_alloc("a-1"))
        assert seen == [1]
        assert store.has("a-1")


class TestRealtimeUpdates:
    def test_created_updated_deleted(self):
        store = AllocationStore()
        store.apply_update(Update("created", _alloc("a-1")))
        store.apply_update(Update("UPDATED", _alloc("a-1", status="pending")))
        assert store.get("a-1").status is AllocationStatus.PENDING
        store.apply_update(Update("deleted", _alloc("a-1")))
        assert not store.has("a-1")

    def test_unknown_action_upserts(self):
        store = AllocationStore()
        store.apply_update(Update("refreshed", _alloc("a-1")))
        assert store.has("a-1")


class TestQueries:
    def test_allocation_queries(self):
        store = AllocationStore()
        store.upsert_many([
            _alloc("a-2", seq=1, amount=200),
            _alloc("a-1", seq=0, amount=100, status="pending", withdraw="w-1"),
            _alloc("b-1", checkbook_id="cb-2", amount=50),
        ])
        assert [a.id for a in store.by_checkbook("cb-1")] == ["a-1", "a-2"]
        assert [a.id for a in store.by_checkbook("cb-1", AllocationStatus.IDLE)] == ["a-2"]
        assert [a.id for a in store.by_withdraw_request("w-1")] == ["a-1"]
        assert store.total_amount() == 350
        assert store.total_amount(AllocationStatus.IDLE) == 250

    def test_checkbook_queries(self):
        store = CheckbookStore()
        store.upsert_many([
            Checkbook.from_wire(checkbook_wire("cb-1")),
            Checkbook.from_wire(checkbook_wire("cb-2", symbol="USDC")),
        ])
        assert [c.id for c in store.by_token("USDC")] == ["cb-2"]
        assert len(store.by_owner(ADDRESS)) == 2

    def test_withdrawal_queries(self):
        store = WithdrawalStore()
        store.upsert_many([
            WithdrawRequest.from_wire({"id": "w-1", "status": "proving", "nullifier": "0xABC"}),
            WithdrawRequest.from_wire({"id": "w-2", "status": "completed"}),
        ])
        assert store.by_nullifier("0xabc").id == "w-1"
        assert store.by_nullifier("0xdef") is None
        assert [w.id for w in store.by_status(WithdrawStatus.COMPLETED)] == ["w-2"]
        assert [w.id for w in store.active()] == ["w-1"]

    def test_prices_keyed_by_symbol(self):
        store = PriceStore()
        store.upsert_many([TokenPrice(symbol="ETH", price="3000"), TokenPrice(symbol="ETH", price="3100")])
        assert len(store) == 1
        assert store.get("ETH").price == "3100"
