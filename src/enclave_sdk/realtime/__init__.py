"""Realtime push updates over WebSocket."""

from enclave_sdk.realtime.client import ConnectionState, RealtimeClient
from enclave_sdk.realtime.messages import (
    EntityUpdate,
    PongMessage,
    RealtimeMessage,
    ServerError,
    SubscriptionAck,
    UnknownMessage,
    parse_server_message,
)
from enclave_sdk.realtime.reconnection import ReconnectionPolicy
from enclave_sdk.realtime.subscriptions import Channel, Subscription, SubscriptionRegistry
from enclave_sdk.realtime.transport import Transport, WebsocketsTransport

__all__ = [
    "Channel",
    "ConnectionState",
    "EntityUpdate",
    "PongMessage",
    "RealtimeClient",
    "RealtimeMessage",
    "ReconnectionPolicy",
    "ServerError",
    "Subscription",
    "SubscriptionAck",
    "SubscriptionRegistry",
    "Transport",
    "UnknownMessage",
    "WebsocketsTransport",
    "parse_server_message",
]
