"""
weakbus

An in-process publish/subscribe message bus that holds subscribers by
weak reference, so subscribing never keeps an object alive.

- MessageBus: register, unregister, publish by key or by payload type
- message_sink / SinkLoader: declarative registration of marked methods
- Messenger: service facade for injection into view models and services
"""

__version__ = "0.1.0"

from weakbus.bus.keys import TypeKey
from weakbus.bus.message_bus import MessageBus, MessageBusStats, Subscription, get_default_bus
from weakbus.core.errors import (
    ArityError,
    IncompatibleHandlerType,
    InvalidSubscriber,
    MessagingError,
)
from weakbus.core.handles import WeakHandle
from weakbus.core.settings import BusSettings
from weakbus.messenger import Messenger, MessengerService
from weakbus.sinks import SinkLoader, message_sink

__all__ = [
    "__version__",
    "ArityError",
    "BusSettings",
    "IncompatibleHandlerType",
    "InvalidSubscriber",
    "MessageBus",
    "MessageBusStats",
    "Messenger",
    "MessengerService",
    "MessagingError",
    "SinkLoader",
    "Subscription",
    "TypeKey",
    "WeakHandle",
    "get_default_bus",
    "message_sink",
]
