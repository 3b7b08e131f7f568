"""
Server -> client message parsing.

Every frame is normalized into one of a small set of immutable message
types before it reaches handlers, so subscribers never see raw dicts:

    PongMessage      heartbeat reply
    SubscriptionAck  (un)subscribe confirmation
    ServerError      backend-reported error
    EntityUpdate     checkbook / allocation / withdrawal / price change
    UnknownMessage   anything else (kept for the `message` event)
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Union

from pydantic import ValidationError as PydanticValidationError

from enclave_sdk.core.errors import EnclaveError, WebSocketError
from enclave_sdk.core.models import Allocation, Checkbook, TokenPrice, WithdrawRequest
from enclave_sdk.realtime.subscriptions import Channel, channel_from_backend

logger = logging.getLogger("enclave_sdk.realtime.messages")


@dataclass(frozen=True)
class PongMessage:
    timestamp: int | None = None
    type: str = "pong"


@dataclass(frozen=True)
class SubscriptionAck:
    channel: Channel | None
    subscribed: bool
    type: str = "subscription"


@dataclass(frozen=True)
class ServerError:
    message: str
    code: str | None = None
    details: Any = None
    type: str = "error"


@dataclass(frozen=True)
class EntityUpdate:
    channel: Channel
    action: str
    entity: Any
    previous: Any = None
    timestamp: int | None = None
    type: str = "update"


@dataclass(frozen=True)
class UnknownMessage:
    raw_type: str | None
    data: dict[str, Any] = field(default_factory=dict)
    type: str = "unknown"


RealtimeMessage = Union[PongMessage, SubscriptionAck, ServerError, EntityUpdate, UnknownMessage]

_ACK_TYPES = {
    "subscribed": True,
    "subscription_confirmed": True,
    "unsubscribed": False,
    "unsubscription_confirmed": False,
}

# update message type -> (channel, key of the entity inside `data`, model)
_UPDATE_TYPES: dict[str, tuple[Channel, str, Any]] = {
    "checkbook_update": (Channel.CHECKBOOKS, "checkbook", Checkbook),
    "checkbook_updated": (Channel.CHECKBOOKS, "checkbook", Checkbook),
    "allocation_update": (Channel.ALLOCATIONS, "allocation", Allocation),
    "allocation_updated": (Channel.ALLOCATIONS, "allocation", Allocation),
    "withdrawal_update": (Channel.WITHDRAWALS, "withdrawal", WithdrawRequest),
    "withdrawal_updated": (Channel.WITHDRAWALS, "withdrawal", WithdrawRequest),
    "withdraw_request_update": (Channel.WITHDRAWALS, "withdrawal", WithdrawRequest),
    "withdraw_request_updated": (Channel.WITHDRAWALS, "withdrawal", WithdrawRequest),
}

_ENTITY_ALIASES = {
    "checkbook": ("checkbook",),
    "allocation": ("allocation",),
    "withdrawal": ("withdrawal", "withdraw_request", "withdrawRequest"),
}


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------


def _decode(raw: str | bytes | dict[str, Any]) -> dict[str, Any]:
    if isinstance(raw, dict):
        return raw
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8", errors="replace")
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as e:
        raise WebSocketError(f"Malformed realtime frame: {e}", details={"raw": raw[:200]}) from e
    if not isinstance(payload, dict):
        raise WebSocketError("Realtime frame is not a JSON object", details={"raw": raw[:200]})
    return payload


def _ack_channel(payload: dict[str, Any]) -> Channel | None:
    data = payload.get("data") if isinstance(payload.get("data"), dict) else {}
    for candidate in (payload.get("sub_type"), payload.get("channel"), data.get("channel"), data.get("type")):
        channel = channel_from_backend(candidate)
        if channel is not None:
            return channel
    return None


def _entity_payload(data: dict[str, Any], key: str) -> dict[str, Any] | None:
    for alias in _ENTITY_ALIASES[key]:
        value = data.get(alias)
        if isinstance(value, dict):
            return value
    return None


def _to_model(model: Any, value: Any) -> Any:
    if not isinstance(value, dict):
        return None
    try:
        return model.from_wire(value)
    except (PydanticValidationError, EnclaveError, ValueError, TypeError) as e:
        logger.debug(f"Could not map {model.__name__} from update: {e}")
        return None


def _parse_entity_update(msg_type: str, payload: dict[str, Any]) -> RealtimeMessage:
    channel, key, model = _UPDATE_TYPES[msg_type]
    data = payload.get("data")
    if not isinstance(data, dict):
        raise WebSocketError(f"{msg_type} without a data object")
    body = _entity_payload(data, key)
    entity = _to_model(model, body)
    if entity is None:
        raise WebSocketError(f"{msg_type} carries no valid {key}", details={"data": data})
    return EntityUpdate(
        channel=channel,
        action=str(data.get("action") or "updated").lower(),
        entity=entity,
        previous=_to_model(model, _entity_payload({key: data.get("previous")}, key)),
        timestamp=payload.get("timestamp"),
    )


def _parse_price_update(payload: dict[str, Any]) -> RealtimeMessage:
    data = payload.get("data")
    if isinstance(data, list):
        items = data
    elif isinstance(data, dict):
        items = data.get("prices") or []
    else:
        items = []
    prices = [p for p in (_to_model(TokenPrice, item) for item in items) if p is not None]
    timestamp = data.get("timestamp") if isinstance(data, dict) else None
    return EntityUpdate(
        channel=Channel.PRICES,
        action="updated",
        entity=prices,
        timestamp=timestamp or payload.get("timestamp"),
    )


# ------------------------------------------------------------------
# Entry point
# ------------------------------------------------------------------


def parse_server_message(raw: str | bytes | dict[str, Any]) -> RealtimeMessage:
    """
    Normalize one server frame.

    Args:
        raw: JSON text, bytes or an already-decoded dict.

    Returns:
        One of the RealtimeMessage types.

    Raises:
        WebSocketError: the frame is not a JSON object, or an update frame
            has no usable entity.
    """
    payload = _decode(raw)
    msg_type = str(payload.get("type") or "").lower()

    if msg_type == "pong":
        return PongMessage(timestamp=payload.get("timestamp"))

    if msg_type in _ACK_TYPES:
        return SubscriptionAck(channel=_ack_channel(payload), subscribed=_ACK_TYPES[msg_type])

    if msg_type == "error":
        data = payload.get("data") if isinstance(payload.get("data"), dict) else {}
        message = data.get("message") or payload.get("message") or payload.get("error") or "Unknown error"
        code = data.get("code") or payload.get("code")
        return ServerError(
            message=str(message),
            code=None if code is None else str(code),
            details=data.get("details"),
        )

    if msg_type in _UPDATE_TYPES:
        return _parse_entity_update(msg_type, payload)

    if msg_type in ("price_update", "prices_update", "price_updated"):
        return _parse_price_update(payload)

    logger.debug(f"Unknown realtime message type {msg_type!r}")
    return UnknownMessage(raw_type=msg_type or None, data=payload)
