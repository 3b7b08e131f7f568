"""
Unit tests for channel names and the subscription registry.
"""

import pytest

from enclave_sdk.core.errors import ValidationError
from enclave_sdk.realtime.subscriptions import (
    Channel,
    Subscription,
    SubscriptionRegistry,
    channel_from_backend,
    to_channel,
    unsubscribe_message,
)


class TestChannels:
    @pytest.mark.parametrize("value,channel", [
        (Channel.PRICES, Channel.PRICES),
        ("withdrawals", Channel.WITHDRAWALS),
        ("withdraw_requests", Channel.WITHDRAWALS),
        ("Checkbooks", Channel.CHECKBOOKS),
        ("allocation", Channel.ALLOCATIONS),
    ])
    def test_to_channel(self, value, channel):
        assert to_channel(value) is channel

    def test_unknown_channel(self):
        with pytest.raises(ValidationError, match="Unknown channel"):
            to_channel("deposits")
        assert channel_from_backend("deposits") is None
        assert channel_from_backend(None) is None


class TestMessages:
    def test_subscribe_message_uses_backend_type(self):
        sub = Subscription(Channel.WITHDRAWALS, owner="0xabc")
        assert sub.subscribe_message(1700000000000) == {
            "action": "subscribe",
            "type": "withdraw_requests",
            "address": "0xabc",
            "asset_ids": None,
            "timestamp": 1700000000000,
        }

    def test_subscribe_message_with_token_filter(self):
        msg = Subscription(Channel.PRICES, token_id="USDT").subscribe_message(1)
        assert msg["address"] == ""
        assert msg["asset_ids"] == ["USDT"]

    def test_unsubscribe_message(self):
        assert unsubscribe_message(Channel.CHECKBOOKS, 5) == {
            "action": "unsubscribe", "type": "checkbooks", "timestamp": 5,
        }


class TestRegistry:
    def test_add_is_idempotent(self):
        registry = SubscriptionRegistry()
        assert registry.add("checkbooks", owner="0xabc")
        assert not registry.add(Channel.CHECKBOOKS, owner="0xabc")
        assert len(registry) == 1

    def test_changed_filters_replace(self):
        registry = SubscriptionRegistry()
        registry.add("prices", token_id="USDT")
        assert registry.add("prices", token_id="ETH")
        assert registry.get("prices").token_id == "ETH"
        assert len(registry) == 1

    def test_remove(self):
        registry = SubscriptionRegistry()
        registry.add("allocations")
        assert registry.remove("allocations")
        assert not registry.remove("allocations")
        assert not registry.has("allocations")

    def test_listing_and_clear(self):
        registry = SubscriptionRegistry()
        registry.add("checkbooks")
        registry.add("withdraw_requests")
        assert registry.channels() == [Channel.CHECKBOOKS, Channel.WITHDRAWALS]
        assert [s.channel for s in registry.all()] == [Channel.CHECKBOOKS, Channel.WITHDRAWALS]
        registry.clear()
        assert len(registry) == 0
