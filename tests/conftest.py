"""
Shared fixtures: a well-known test key, an in-memory Enclave backend
served through httpx.MockTransport, and a scriptable realtime server.
"""

from __future__ import annotations

import asyncio
import json
import re

import httpx
import pytest

from enclave_sdk.core.address import UniversalAddress
from enclave_sdk.core.errors import WebSocketError
from enclave_sdk.core.signer import Signer
from enclave_sdk.crypto.commitment import generate_commitment

# Hardhat / Anvil default account #0
PRIVATE_KEY = "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"
ADDRESS = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"

OWNER_EVM = "0x4da7cf999162ecb79749d0186e5759c7a6bd4477"
BENEFICIARY_EVM = "0x5aAeb6053F3E94C9b9A09f33669435E7Ef1BeAed"

ONE = 10**18


def universal_hex(evm_address: str) -> str:
    return "0x" + "00" * 12 + evm_address[2:].lower()


def checkbook_wire(
    checkbook_id: str,
    local_deposit_id: int | None = 7,
    chain_id: int | None = 60,
    symbol: str | None = "USDT",
    allocatable: int = ONE,
    status: str = "ready_for_commitment",
    commitment: str | None = None,
    owner: str = ADDRESS,
) -> dict:
    data = {
        "id": checkbook_id,
        "local_deposit_id": local_deposit_id,
        "slip44_chain_id": chain_id,
        "gross_amount": str(allocatable),
        "allocatable_amount": str(allocatable),
        "status": status,
        "commitment": commitment,
        "owner": {"chain_id": 60, "data": universal_hex(owner)},
    }
    if symbol:
        data["token"] = {"symbol": symbol, "decimals": 18}
    return data


def allocation_wire(
    allocation_id: str,
    checkbook_id: str,
    seq: int,
    amount: int,
    status: str = "idle",
    commitment: str | None = "0x" + "11" * 32,
    withdraw_request_id: str | None = None,
) -> dict:
    return {
        "id": allocation_id,
        "checkbook_id": checkbook_id,
        "seq": seq,
        "amount": str(amount),
        "status": status,
        "commitment": commitment,
        "withdraw_request_id": withdraw_request_id,
    }


def _paged(request: httpx.Request, items: dict, size_param: str = "limit") -> list:
    size = request.url.params.get(size_param)
    if size is None:
        return list(items.values())
    page = int(request.url.params.get("page", 1))
    return list(items.values())[(page - 1) * int(size) : page * int(size)]


class FakeBackend:
    """Routes the REST calls EnclaveAPI makes onto in-memory dicts."""

    def __init__(self) -> None:
        self.checkbooks: dict[str, dict] = {}
        self.allocations: dict[str, dict] = {}
        self.withdraws: dict[str, dict] = {}
        self.calls: list[tuple[str, str, object]] = []
        self.failures: dict[tuple[str, str], tuple[int, dict]] = {}
        self.token = "jwt-test-token"
        self.nonce = "nonce-123"
        self.prices = [{"symbol": "USDT", "price": "1.0001"}, {"symbol": "ETH", "price": "3150.5"}]
        self._next_withdraw = 1
        self._routes = [
            ("GET", r"/api/auth/nonce", self._nonce),
            ("POST", r"/api/auth/login", self._login),
            ("GET", r"/api/checkbooks", self._list_checkbooks),
            ("GET", r"/api/checkbooks/id/(?P<id>[^/]+)", self._get_checkbook),
            ("GET", r"/api/allocations", self._list_allocations),
            ("GET", r"/api/allocations/(?P<id>[^/]+)", self._get_allocation),
            ("POST", r"/api/commitments/submit", self._submit_commitment),
            ("POST", r"/api/withdraws/submit", self._submit_withdraw),
            ("GET", r"/api/my/withdraw-requests", self._list_withdraws),
            ("GET", r"/api/my/withdraw-requests/stats", self._stats),
            ("GET", r"/api/my/withdraw-requests/by-nullifier/(?P<id>[^/]+)", self._by_nullifier),
            ("GET", r"/api/my/withdraw-requests/(?P<id>[^/]+)", self._get_withdraw),
            ("POST", r"/api/my/withdraw-requests/(?P<id>[^/]+)/retry", self._retry),
            ("DELETE", r"/api/my/withdraw-requests/(?P<id>[^/]+)", self._cancel),
            ("GET", r"/api/prices", self._prices),
        ]

    # ------------------------------------------------------------------

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def fail(self, method: str, path: str, status: int, body: dict | None = None) -> None:
        self.failures[(method, path)] = (status, body or {"error": f"forced {status}"})

    def calls_to(self, method: str, path: str) -> list:
        return [body for m, p, body in self.calls if m == method and p == path]

    def handle(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        body = json.loads(request.content) if request.content else None
        self.calls.append((request.method, path, body))
        if (request.method, path) in self.failures:
            status, payload = self.failures[(request.method, path)]
            return httpx.Response(status, json=payload)
        if not path.startswith("/api/auth") and request.headers.get("Authorization") != f"Bearer {self.token}":
            return httpx.Response(401, json={"error": "unauthorized"})
        for method, pattern, fn in self._routes:
            m = re.fullmatch(pattern, path)
            if method == request.method and m:
                return fn(request, body, **m.groupdict())
        return httpx.Response(404, json={"error": f"no route {request.method} {path}"})

    # ------------------------------------------------------------------

    def _nonce(self, request, body):
        return httpx.Response(200, json={
            "nonce": self.nonce,
            "message": f"Sign in to Enclave\nNonce: {self.nonce}",
            "timestamp": 1700000000,
        })

    def _login(self, request, body):
        if not body.get("signature"):
            return httpx.Response(400, json={"error": "missing signature"})
        return httpx.Response(200, json={"token": self.token, "user_address": body["user_address"]})

    def _list_checkbooks(self, request, body):
        return httpx.Response(200, json={"data": _paged(request, self.checkbooks)})

    def _get_checkbook(self, request, body, id):
        if id not in self.checkbooks:
            return httpx.Response(404, json={"error": "checkbook not found"})
        return httpx.Response(200, json={"checkbook": self.checkbooks[id]})

    def _list_allocations(self, request, body):
        return httpx.Response(200, json={"allocations": _paged(request, self.allocations)})

    def _get_allocation(self, request, body, id):
        if id not in self.allocations:
            return httpx.Response(404, json={"error": "allocation not found"})
        return httpx.Response(200, json={"data": self.allocations[id]})

    def _submit_commitment(self, request, body):
        cb = self.checkbooks[body["checkbook_id"]]
        owner = UniversalAddress(
            chain_id=body["owner_address"]["chain_id"], data=body["owner_address"]["address"]
        )
        amounts = [int(a["amount"]) for a in body["allocations"]]
        commitment = "0x" + generate_commitment(
            list(enumerate(amounts)), owner, int(body["deposit_id"]), cb["slip44_chain_id"], body["token_symbol"]
        ).hex()
        created = []
        for seq, amount in enumerate(amounts):
            alloc = allocation_wire(f"{cb['id']}-a{seq}", cb["id"], seq, amount, commitment=None)
            self.allocations[alloc["id"]] = {**alloc, "commitment": commitment}
            created.append(alloc)
        cb.update(status="with_checkbook", commitment=commitment)
        return httpx.Response(200, json={
            "success": True,
            "commitment": commitment,
            "allocations": created,
            "checkbook": cb,
        })

    def _submit_withdraw(self, request, body):
        for aid in body["allocationIds"]:
            if self.allocations[aid]["status"] != "idle":
                return httpx.Response(409, json={"error": f"allocation {aid} not idle"})
        wid = f"w-{self._next_withdraw}"
        self._next_withdraw += 1
        self.withdraws[wid] = {
            "id": wid,
            "status": "created",
            "allocation_ids": body["allocationIds"],
            "checkbook_id": body["checkbookId"],
            "nullifier": body["nullifier"],
            "amount": str(sum(int(self.allocations[a]["amount"]) for a in body["allocationIds"])),
            "recipient": {
                "chain_id": body["intent"]["beneficiaryChainId"],
                "data": body["intent"]["beneficiaryAddress"],
            },
        }
        for aid in body["allocationIds"]:
            self.allocations[aid].update(status="pending", withdraw_request_id=wid)
        return httpx.Response(200, json={"withdrawRequest": {"id": wid}})

    def _list_withdraws(self, request, body):
        return httpx.Response(200, json={"withdrawRequests": _paged(request, self.withdraws, "page_size")})

    def _stats(self, request, body):
        return httpx.Response(200, json={"stats": {
            "total": len(self.withdraws),
            "pending": sum(1 for w in self.withdraws.values() if w["status"] not in ("completed", "cancelled")),
            "completed": sum(1 for w in self.withdraws.values() if w["status"] == "completed"),
            "failed": 0,
            "total_amount": str(sum(int(w["amount"]) for w in self.withdraws.values())),
        }})

    def _by_nullifier(self, request, body, id):
        for w in self.withdraws.values():
            if w["nullifier"] == id:
                return httpx.Response(200, json={"withdrawRequest": w})
        return httpx.Response(404, json={"error": "not found"})

    def _get_withdraw(self, request, body, id):
        if id not in self.withdraws:
            return httpx.Response(404, json={"error": "withdraw request not found"})
        return httpx.Response(200, json={"data": self.withdraws[id]})

    def _retry(self, request, body, id):
        self.withdraws[id]["status"] = "proving"
        return httpx.Response(200, json={"withdrawRequest": self.withdraws[id]})

    def _cancel(self, request, body, id):
        self.withdraws[id]["status"] = "cancelled"
        for aid in self.withdraws[id]["allocation_ids"]:
            self.allocations[aid].update(status="idle", withdraw_request_id=None)
        return httpx.Response(200, json={"withdrawRequest": self.withdraws[id]})

    def _prices(self, request, body):
        return httpx.Response(200, json={"prices": self.prices})


# ------------------------------------------------------------------
# Realtime fakes
# ------------------------------------------------------------------


class FakeTransport:
    """One connection attempt against a FakeRealtimeServer."""

    def __init__(self, server: FakeRealtimeServer, on_message, on_close) -> None:
        self.server = server
        self.on_message = on_message
        self.on_close = on_close
        self.url: str | None = None
        self.sent: list[dict] = []
        self.closed = False

    async def open(self, url: str) -> None:
        self.url = url
        self.server.urls.append(url)
        if self.server.fail_opens > 0:
            self.server.fail_opens -= 1
            raise WebSocketError(f"connection to {url} refused")
        self.server.connections.append(self)

    async def send(self, data: str) -> None:
        if self.closed or self.server.broken:
            raise WebSocketError("connection closed")
        self.sent.append(json.loads(data))

    async def close(self) -> None:
        self.closed = True


class FakeRealtimeServer:
    """Transport factory plus helpers to push frames and drop the connection."""

    def __init__(self) -> None:
        self.urls: list[str] = []
        self.connections: list[FakeTransport] = []
        self.fail_opens = 0
        self.broken = False

    def __call__(self, on_message, on_close) -> FakeTransport:
        return FakeTransport(self, on_message, on_close)

    @property
    def current(self) -> FakeTransport:
        return self.connections[-1]

    def sent(self, msg_type: str | None = None) -> list[dict]:
        frames = [m for c in self.connections for m in c.sent]
        if msg_type is None:
            return frames
        return [m for m in frames if m.get("type") == msg_type or m.get("action") == msg_type]

    async def push(self, frame: dict | str) -> None:
        await self.current.on_message(frame if isinstance(frame, str) else json.dumps(frame))

    async def drop(self, code: int = 1006, reason: str = "") -> None:
        await self.current.on_close(code, reason)


class FakeClock:
    def __init__(self, now: float = 0.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


class FakeSleep:
    """
    Records backoff delays; parks forever on the heartbeat tick.

    Delays listed in `held` wait until `gate` is set.
    """

    def __init__(self) -> None:
        self.delays: list[float] = []
        self.park_at: float | None = None
        self.held: set[float] = set()
        self.gate = asyncio.Event()

    async def __call__(self, delay: float) -> None:
        if delay == self.park_at:
            await asyncio.Event().wait()
        self.delays.append(delay)
        if delay in self.held:
            await self.gate.wait()
        await asyncio.sleep(0)


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def signer() -> Signer:
    return Signer.from_private_key(PRIVATE_KEY)
