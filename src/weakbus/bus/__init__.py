"""Weakly referenced in-process message bus."""

from weakbus.bus.keys import RoutingKey, TypeKey
from weakbus.bus.message_bus import MessageBus, MessageBusStats, Subscription, get_default_bus
from weakbus.bus.table import SubscriptionTable

__all__ = [
    "MessageBus",
    "MessageBusStats",
    "RoutingKey",
    "Subscription",
    "SubscriptionTable",
    "TypeKey",
    "get_default_bus",
]
