"""
Channel subscriptions, keyed by channel name.

The registry is the source of truth for what should be subscribed: it is
filled even while disconnected and replayed after every (re)connect.
"""

from __future__ import annotations

import enum
import logging
import time
from dataclasses import dataclass
from typing import Any

from enclave_sdk.core.errors import ValidationError


class Channel(str, enum.Enum):
    CHECKBOOKS = "checkbooks"
    ALLOCATIONS = "allocations"
    WITHDRAWALS = "withdrawals"
    PRICES = "prices"


# channel -> name the backend uses in subscribe / ack messages
BACKEND_TYPES: dict[Channel, str] = {
    Channel.CHECKBOOKS: "checkbooks",
    Channel.ALLOCATIONS: "allocations",
    Channel.WITHDRAWALS: "withdraw_requests",
    Channel.PRICES: "prices",
}

_FROM_BACKEND: dict[str, Channel] = {
    **{v: k for k, v in BACKEND_TYPES.items()},
    "withdrawals": Channel.WITHDRAWALS,
    "withdraw_request": Channel.WITHDRAWALS,
    "checkbook": Channel.CHECKBOOKS,
    "allocation": Channel.ALLOCATIONS,
    "price": Channel.PRICES,
}


def to_channel(value: Channel | str) -> Channel:
    """Accept a Channel, a channel name or a backend type name."""
    if isinstance(value, Channel):
        return value
    channel = _FROM_BACKEND.get(str(value).lower())
    if channel is None:
        raise ValidationError(f"Unknown channel: {value!r}", "channel")
    return channel


def channel_from_backend(name: Any) -> Channel | None:
    if not name:
        return None
    return _FROM_BACKEND.get(str(name).lower())


@dataclass(frozen=True)
class Subscription:
    channel: Channel
    owner: str | None = None
    token_id: str | None = None
    subscribed_at: float = 0.0

    def same_filters(self, owner: str | None, token_id: str | None) -> bool:
        return self.owner == owner and self.token_id == token_id

    def subscribe_message(self, timestamp: int) -> dict[str, Any]:
        return {
            "action": "subscribe",
            "type": BACKEND_TYPES[self.channel],
            "address": self.owner or "",
            "asset_ids": [self.token_id] if self.token_id else None,
            "timestamp": timestamp,
        }


def unsubscribe_message(channel: Channel, timestamp: int) -> dict[str, Any]:
    return {"action": "unsubscribe", "type": BACKEND_TYPES[channel], "timestamp": timestamp}


class SubscriptionRegistry:
    """Idempotent add / remove keyed by channel."""

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self._subs: dict[Channel, Subscription] = {}
        self._log = logger or logging.getLogger("enclave_sdk.realtime.subscriptions")

    def add(self, channel: Channel | str, owner: str | None = None, token_id: str | None = None) -> bool:
        """Record a subscription. Returns False if an identical one already exists."""
        ch = to_channel(channel)
        existing = self._subs.get(ch)
        if existing is not None and existing.same_filters(owner, token_id):
            return False
        self._subs[ch] = Subscription(ch, owner, token_id, time.time())
        self._log.debug(f"Added subscription: {ch.value}")
        return True

    def remove(self, channel: Channel | str) -> bool:
        """Returns False if the channel was not subscribed."""
        ch = to_channel(channel)
        if self._subs.pop(ch, None) is None:
            return False
        self._log.debug(f"Removed subscription: {ch.value}")
        return True

    def get(self, channel: Channel | str) -> Subscription | None:
        return self._subs.get(to_channel(channel))

    def has(self, channel: Channel | str) -> bool:
        return to_channel(channel) in self._subs

    def all(self) -> list[Subscription]:
        return list(self._subs.values())

    def channels(self) -> list[Channel]:
        return list(self._subs)

    def clear(self) -> None:
        self._subs.clear()

    def __len__(self) -> int:
        return len(self._subs)
