"""
EnclaveAPI: async REST client for the Enclave backend.

Every method returns domain models from `enclave_sdk.core.models`; callers
never see wire dicts. Errors are mapped to the SDK taxonomy:

    4xx / 5xx             -> APIError(status_code, endpoint)
    401 / 403             -> AuthError
    {"success": false}    -> APIError
    connect / read error  -> NetworkError
    timeout               -> EnclaveTimeoutError

Idempotent GETs are retried with exponential backoff; POST and DELETE are
never retried.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import httpx

from enclave_sdk.core.address import UniversalAddress
from enclave_sdk.core.errors import (
    APIError,
    AuthError,
    EnclaveError,
    EnclaveTimeoutError,
    NetworkError,
    NotFoundError,
)
from enclave_sdk.core.hashing import strip_0x
from enclave_sdk.core.models import (
    Allocation,
    Checkbook,
    TokenPrice,
    WithdrawRequest,
    WithdrawStats,
)

T = TypeVar("T")

DEFAULT_TIMEOUT = 30.0
RETRYABLE_STATUS = frozenset({408, 429, 500, 502, 503, 504})


def _is_retryable(exc: Exception) -> bool:
    if isinstance(exc, AuthError):
        return False
    if isinstance(exc, APIError):
        return exc.status_code in RETRYABLE_STATUS
    return isinstance(exc, NetworkError)


async def retry_async(
    fn: Callable[[], Awaitable[T]],
    max_attempts: int = 3,
    initial_delay: float = 0.5,
    max_delay: float = 10.0,
    multiplier: float = 2.0,
    should_retry: Callable[[Exception], bool] = _is_retryable,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    logger: logging.Logger | None = None,
) -> T:
    """
    Await `fn()` up to `max_attempts` times with exponential backoff.

    Only exceptions accepted by `should_retry` trigger another attempt; the
    last error is re-raised unchanged.
    """
    log = logger or logging.getLogger("enclave_sdk.api")
    attempt = 0
    while True:
        attempt += 1
        try:
            return await fn()
        except Exception as e:
            if attempt >= max_attempts or not should_retry(e):
                raise
            delay = min(initial_delay * multiplier ** (attempt - 1), max_delay)
            log.warning(f"Attempt {attempt}/{max_attempts} failed ({e}); retrying in {delay:.2f}s")
            await sleep(delay)


def _unwrap(payload: Any, *keys: str) -> Any:
    """Return the first of payload[key] / payload['data'][key] that exists, else payload['data'] / payload."""
    if not isinstance(payload, dict):
        return payload
    for k in keys:
        if k in payload and payload[k] is not None:
            return payload[k]
    data = payload.get("data")
    if isinstance(data, dict):
        for k in keys:
            if k in data and data[k] is not None:
                return data[k]
    return data if data is not None else payload


def _find(payload: Any, key: str) -> Any:
    """payload[key] or payload["data"][key], else None."""
    if not isinstance(payload, dict):
        return None
    if payload.get(key) is not None:
        return payload[key]
    data = payload.get("data")
    return data.get(key) if isinstance(data, dict) else None


def _as_list(payload: Any, *keys: str) -> list[dict[str, Any]]:
    items = _unwrap(payload, *keys)
    if isinstance(items, dict):
        items = items.get("items") or items.get("list") or []
    return [i for i in (items or []) if isinstance(i, dict)]


class EnclaveAPI:
    """
    Async client for the Enclave REST API.

    Usage:
        async with EnclaveAPI("https://api.enclave.example") as api:
            await api.login(owner, nonce["message"], signature)
            checkbooks = await api.list_checkbooks()
    """

    def __init__(
        self,
        base_url: str,
        auth_token: str | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        headers: dict[str, str] | None = None,
        max_retries: int = 3,
        transport: httpx.AsyncBaseTransport | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.max_retries = max_retries
        self._token = auth_token
        self._log = logger or logging.getLogger("enclave_sdk.api")
        base_headers: dict[str, str] = {"Content-Type": "application/json"}
        base_headers.update(headers or {})
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=base_headers,
            timeout=timeout,
            transport=transport,
        )

    # ------------------------------------------------------------------
    # Auth token
    # ------------------------------------------------------------------

    @property
    def auth_token(self) -> str | None:
        return self._token

    def set_auth_token(self, token: str | None) -> None:
        self._token = token
        self._log.debug("Auth token updated" if token else "Auth token cleared")

    @property
    def is_authenticated(self) -> bool:
        return bool(self._token)

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: Any = None,
        timeout: float | None = None,
    ) -> Any:
        headers = {"Authorization": f"Bearer {self._token}"} if self._token else None
        clean_params = {k: v for k, v in (params or {}).items() if v is not None}
        self._log.debug(f"{method} {path} params={clean_params}")
        try:
            response = await self._client.request(
                method,
                path,
                params=clean_params or None,
                json=json,
                headers=headers,
                timeout=timeout if timeout is not None else self.timeout,
            )
        except httpx.TimeoutException as e:
            raise EnclaveTimeoutError(
                f"{method} {path} timed out", timeout=timeout or self.timeout
            ) from e
        except httpx.HTTPError as e:
            raise NetworkError(f"{method} {path} failed: {e}", details={"endpoint": path}) from e

        payload = self._decode(response)
        if response.status_code in (401, 403):
            if response.status_code == 401:
                self._token = None
            raise AuthError(
                self._error_message(payload, "Authentication failed"),
                status_code=response.status_code,
                endpoint=path,
            )
        if response.status_code >= 400:
            raise APIError(
                f"API error {response.status_code} for {path}: {self._error_message(payload, response.text)}",
                status_code=response.status_code,
                endpoint=path,
                details={"response": payload} if isinstance(payload, dict) else None,
            )
        if isinstance(payload, dict) and payload.get("success") is False:
            raise APIError(
                self._error_message(payload, f"Request to {path} was not successful"),
                status_code=response.status_code,
                endpoint=path,
            )
        return payload

    @staticmethod
    def _decode(response: httpx.Response) -> Any:
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError:
            return {"message": response.text}

    @staticmethod
    def _error_message(payload: Any, default: str) -> str:
        if isinstance(payload, dict):
            for key in ("error", "message", "detail"):
                if isinstance(payload.get(key), str) and payload[key]:
                    return payload[key]
        return default

    async def _get(self, path: str, params: dict[str, Any] | None = None) -> Any:
        return await retry_async(
            lambda: self._request("GET", path, params=params),
            max_attempts=self.max_retries,
            logger=self._log,
        )

    async def _post(self, path: str, json: Any = None, timeout: float | None = None) -> Any:
        return await self._request("POST", path, json=json, timeout=timeout)

    async def _delete(self, path: str) -> Any:
        return await self._request("DELETE", path)

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------

    async def get_nonce(self, owner: str | None = None) -> dict[str, str]:
        """Returns {"nonce", "message", "timestamp"}; `message` is what the user signs."""
        data = await self._get("/api/auth/nonce", {"owner": owner})
        if not data.get("nonce"):
            raise APIError("Nonce missing from response", status_code=200, endpoint="/api/auth/nonce")
        return {
            "nonce": str(data["nonce"]),
            "message": str(data.get("message") or data["nonce"]),
            "timestamp": str(data.get("timestamp", "")),
        }

    async def login(self, address: UniversalAddress, message: str, signature: str) -> str:
        """
        Exchange a signed nonce message for a bearer token and store it.

        Raises:
            AuthError: if the backend returns no token.
        """
        data = await self._post("/api/auth/login", {
            "user_address": strip_0x(address.to_hex()),
            "chain_id": address.chain_id,
            "message": message,
            "signature": signature,
        })
        token = data.get("token") if isinstance(data, dict) else None
        if not isinstance(token, str) or not token.strip():
            raise AuthError("Authentication response missing token", status_code=200, endpoint="/api/auth/login")
        self.set_auth_token(token)
        self._log.info(f"Authenticated as {address.canonical_hex()}")
        return token

    # ------------------------------------------------------------------
    # Checkbooks & allocations
    # ------------------------------------------------------------------

    async def list_checkbooks(
        self,
        owner: str | None = None,
        status: str | None = None,
        token_id: str | None = None,
        page: int = 1,
        limit: int = 20,
    ) -> list[Checkbook]:
        data = await self._get("/api/checkbooks", {
            "owner": owner, "status": status, "tokenId": token_id, "page": page, "limit": limit,
        })
        return [Checkbook.from_wire(c) for c in _as_list(data, "checkbooks", "items")]

    async def get_checkbook(self, checkbook_id: str) -> Checkbook:
        data = await self._get(f"/api/checkbooks/id/{checkbook_id}")
        entity = _unwrap(data, "checkbook")
        if not isinstance(entity, dict) or not entity:
            raise NotFoundError("Checkbook", checkbook_id)
        return Checkbook.from_wire(entity)

    async def list_allocations(
        self,
        checkbook_id: str | None = None,
        status: str | None = None,
        token_id: str | None = None,
        owner: str | None = None,
        page: int = 1,
        limit: int = 100,
    ) -> list[Allocation]:
        data = await self._get("/api/allocations", {
            "owner": owner, "checkbookId": checkbook_id, "tokenId": token_id,
            "status": status, "page": page, "limit": limit,
        })
        return [Allocation.from_wire(a) for a in _as_list(data, "allocations", "items")]

    async def get_allocation(self, allocation_id: str) -> Allocation:
        data = await self._get(f"/api/allocations/{allocation_id}")
        entity = _unwrap(data, "allocation")
        if not isinstance(entity, dict) or not entity:
            raise NotFoundError("Allocation", allocation_id)
        return Allocation.from_wire(entity)

    async def submit_commitment(
        self, body: dict[str, Any], timeout: float | None = None
    ) -> tuple[str | None, list[Allocation], Checkbook | None]:
        """
        POST /api/commitments/submit.

        Returns:
            (backend commitment, allocations, updated checkbook or None). The
            root-level commitment is copied onto allocations that lack one.
        """
        data = await self._post("/api/commitments/submit", body, timeout=timeout)
        commitment = _find(data, "commitment")
        allocations = []
        for raw in _as_list(data, "allocations"):
            alloc = Allocation.from_wire(raw)
            if not alloc.commitment and commitment:
                alloc = alloc.model_copy(update={"commitment": commitment})
            allocations.append(alloc)
        cb_raw = _find(data, "checkbook")
        checkbook = Checkbook.from_wire(cb_raw) if isinstance(cb_raw, dict) and cb_raw.get("id") else None
        return commitment, allocations, checkbook

    # ------------------------------------------------------------------
    # Withdrawals
    # ------------------------------------------------------------------

    async def submit_withdraw(self, body: dict[str, Any]) -> WithdrawRequest:
        """
        POST /api/withdraws/submit, then load the created request.

        Once the POST succeeds the request exists. If loading it fails, a
        `created` request is built from the submit body and response instead
        of raising.
        """
        data = await self._post("/api/withdraws/submit", body)
        created = _unwrap(data, "withdrawRequest", "withdraw_request")
        if isinstance(created, dict) and created.get("id"):
            withdraw_id = str(created["id"])
            try:
                return await self.get_withdraw_request(withdraw_id)
            except EnclaveError as e:
                self._log.warning(f"Withdraw request {withdraw_id} created but could not be loaded: {e}")
                return WithdrawRequest.from_wire({
                    "status": "created",
                    "allocation_ids": body.get("allocationIds") or [],
                    "checkbook_id": body.get("checkbookId"),
                    "nullifier": body.get("nullifier"),
                    **created,
                })
        raise APIError(
            "Invalid response from withdraw submit: no request id",
            status_code=200,
            endpoint="/api/withdraws/submit",
        )

    async def get_withdraw_request(self, withdraw_id: str) -> WithdrawRequest:
        data = await self._get(f"/api/my/withdraw-requests/{withdraw_id}")
        entity = _unwrap(data, "withdrawRequest", "withdraw_request")
        if not isinstance(entity, dict) or not entity:
            raise NotFoundError("WithdrawRequest", withdraw_id)
        return WithdrawRequest.from_wire(entity)

    async def get_withdraw_by_nullifier(self, nullifier: str) -> WithdrawRequest:
        data = await self._get(f"/api/my/withdraw-requests/by-nullifier/{nullifier}")
        entity = _unwrap(data, "withdrawRequest", "withdraw_request")
        if not isinstance(entity, dict) or not entity:
            raise NotFoundError("WithdrawRequest", nullifier)
        return WithdrawRequest.from_wire(entity)

    async def list_withdraw_requests(
        self,
        status: str | None = None,
        token_id: str | None = None,
        target_chain: int | None = None,
        page: int = 1,
        limit: int = 50,
    ) -> list[WithdrawRequest]:
        data = await self._get("/api/my/withdraw-requests", {
            "status": status, "tokenId": token_id, "targetChain": target_chain,
            "page": page, "page_size": limit,
        })
        return [WithdrawRequest.from_wire(w) for w in _as_list(data, "withdrawRequests", "withdraw_requests", "items")]

    async def retry_withdraw(self, withdraw_id: str) -> WithdrawRequest:
        data = await self._post(f"/api/my/withdraw-requests/{withdraw_id}/retry")
        entity = _unwrap(data, "withdrawRequest", "withdraw_request")
        if isinstance(entity, dict) and entity.get("id"):
            return WithdrawRequest.from_wire(entity)
        return await self.get_withdraw_request(withdraw_id)

    async def cancel_withdraw(self, withdraw_id: str) -> WithdrawRequest:
        data = await self._delete(f"/api/my/withdraw-requests/{withdraw_id}")
        entity = _unwrap(data, "withdrawRequest", "withdraw_request")
        if not isinstance(entity, dict) or not entity.get("id"):
            raise APIError(
                "Invalid response from cancel: no withdraw request",
                status_code=200,
                endpoint=f"/api/my/withdraw-requests/{withdraw_id}",
            )
        return WithdrawRequest.from_wire(entity)

    async def get_withdraw_stats(self, token_id: str | None = None) -> WithdrawStats:
        data = await self._get("/api/my/withdraw-requests/stats", {"tokenId": token_id})
        stats = _unwrap(data, "stats")
        return WithdrawStats.from_wire(stats if isinstance(stats, dict) else {})

    # ------------------------------------------------------------------
    # Prices
    # ------------------------------------------------------------------

    async def get_prices(self, symbols: list[str] | None = None) -> list[TokenPrice]:
        params = {"symbols": ",".join(symbols)} if symbols else None
        data = await self._get("/api/prices", params)
        return [TokenPrice.from_wire(p) for p in _as_list(data, "prices")]

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    async def __aenter__(self) -> EnclaveAPI:
        return self

    async def __aexit__(self, *_: Any) -> None:
        await self.close()
