"""Core building blocks: errors, weak handles and settings."""

from weakbus.core.errors import (
    ArityError,
    IncompatibleHandlerType,
    InvalidSubscriber,
    MessagingError,
)
from weakbus.core.handles import ReceiverKind, WeakHandle
from weakbus.core.settings import BusSettings

__all__ = [
    "ArityError",
    "BusSettings",
    "IncompatibleHandlerType",
    "InvalidSubscriber",
    "MessagingError",
    "ReceiverKind",
    "WeakHandle",
]
