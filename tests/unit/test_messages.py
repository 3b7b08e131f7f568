"""
Unit tests for realtime frame parsing.
"""

import json

import pytest
from conftest import allocation_wire, checkbook_wire

from enclave_sdk.core.errors import WebSocketError
from enclave_sdk.core.models import Allocation, Checkbook, TokenPrice, WithdrawRequest
from enclave_sdk.core.status import WithdrawStatus
from enclave_sdk.realtime.messages import (
    EntityUpdate,
    PongMessage,
    ServerError,
    SubscriptionAck,
    UnknownMessage,
    parse_server_message,
)
from enclave_sdk.realtime.subscriptions import Channel


def test_pong():
    message = parse_server_message('{"type": "pong", "timestamp": 42}')
    assert message == PongMessage(timestamp=42)


def test_bytes_frame():
    assert isinstance(parse_server_message(b'{"type": "pong"}'), PongMessage)


@pytest.mark.parametrize("frame,channel,subscribed", [
    ({"type": "subscribed", "sub_type": "withdraw_requests"}, Channel.WITHDRAWALS, True),
    ({"type": "subscription_confirmed", "data": {"channel": "checkbooks"}}, Channel.CHECKBOOKS, True),
    ({"type": "unsubscribed", "data": {"type": "prices"}}, Channel.PRICES, False),
    ({"type": "subscribed"}, None, True),
])
def test_acks(frame, channel, subscribed):
    assert parse_server_message(frame) == SubscriptionAck(channel=channel, subscribed=subscribed)


def test_error_frames():
    nested = parse_server_message({"type": "error", "data": {"message": "bad token", "code": 401}})
    assert nested == ServerError(message="bad token", code="401")
    flat = parse_server_message({"type": "error", "error": "rate limited"})
    assert flat.message == "rate limited"
    assert parse_server_message({"type": "error"}).message == "Unknown error"


class TestEntityUpdates:
    def test_checkbook_update(self):
        message = parse_server_message({
            "type": "checkbook_update",
            "timestamp": 7,
            "data": {"action": "UPDATED", "checkbook": checkbook_wire("cb-1", status="with_checkbook")},
        })
        assert isinstance(message, EntityUpdate)
        assert message.channel is Channel.CHECKBOOKS
        assert message.action == "updated"
        assert isinstance(message.entity, Checkbook)
        assert message.entity.raw_status == "with_checkbook"
        assert message.timestamp == 7

    def test_allocation_update_with_previous(self):
        message = parse_server_message({
            "type": "allocation_updated",
            "data": {
                "action": "updated",
                "allocation": allocation_wire("a-1", "cb-1", 0, 10, status="pending"),
                "previous": allocation_wire("a-1", "cb-1", 0, 10),
            },
        })
        assert isinstance(message.entity, Allocation)
        assert message.previous.status.value == "idle"

    @pytest.mark.parametrize("msg_type,key", [
        ("withdrawal_update", "withdrawal"),
        ("withdraw_request_updated", "withdraw_request"),
        ("withdraw_request_update", "withdrawRequest"),
    ])
    def test_withdrawal_aliases(self, msg_type, key):
        message = parse_server_message({
            "type": msg_type,
            "data": {"action": "created", key: {"id": "w-1", "status": "proof_generated"}},
        })
        assert message.channel is Channel.WITHDRAWALS
        assert message.action == "created"
        assert isinstance(message.entity, WithdrawRequest)
        assert message.entity.status is WithdrawStatus.PROOF_GENERATED

    def test_action_defaults_to_updated(self):
        message = parse_server_message({"type": "allocation_update", "data": {"allocation": allocation_wire("a-1", "cb", 0, 1)}})
        assert message.action == "updated"

    def test_missing_entity(self):
        with pytest.raises(WebSocketError, match="no valid allocation"):
            parse_server_message({"type": "allocation_update", "data": {"action": "updated"}})

    def test_invalid_entity(self):
        with pytest.raises(WebSocketError):
            parse_server_message({
                "type": "allocation_update",
                "data": {"allocation": {"id": "a-1", "checkbook_id": "cb", "seq": 999, "amount": "1"}},
            })

    def test_update_without_data(self):
        with pytest.raises(WebSocketError, match="without a data object"):
            parse_server_message({"type": "checkbook_update"})


class TestPriceUpdates:
    def test_list_payload(self):
        message = parse_server_message({
            "type": "price_update",
            "data": [{"symbol": "ETH", "price": "3000"}, "garbage", {"symbol": "USDT", "price": 1}],
        })
        assert message.channel is Channel.PRICES
        assert message.entity == [TokenPrice(symbol="ETH", price="3000"), TokenPrice(symbol="USDT", price="1")]

    def test_nested_payload(self):
        message = parse_server_message({
            "type": "prices_update",
            "data": {"prices": [{"symbol": "ETH", "price": "3000"}], "timestamp": 99},
        })
        assert len(message.entity) == 1
        assert message.timestamp == 99


def test_unknown_type_is_kept():
    frame = {"type": "maintenance", "data": {"eta": 60}}
    message = parse_server_message(json.dumps(frame))
    assert message == UnknownMessage(raw_type="maintenance", data=frame)


@pytest.mark.parametrize("raw", ["not json", "[1, 2]", '"pong"'])
def test_malformed_frames(raw):
    with pytest.raises(WebSocketError):
        parse_server_message(raw)
