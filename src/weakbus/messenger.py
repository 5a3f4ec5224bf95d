"""
Messenger service facade.

Bundles the declarative loader and the bus behind one object that view
models and services receive by injection. Without an explicit bus the
process default bus is used.
"""

from collections.abc import Callable
from typing import Any, Protocol, runtime_checkable

import structlog

from weakbus.bus.keys import RoutingKey
from weakbus.bus.message_bus import MessageBus, Subscription, get_default_bus
from weakbus.sinks import SinkLoader, infer_payload_type, payload_parameter

logger = structlog.get_logger()


@runtime_checkable
class MessengerService(Protocol):
    """Messaging surface available to subscribers and producers."""

    def register(self, subscriber: Any) -> list[Subscription]: ...

    def unregister(self, subscriber: Any) -> None: ...

    def register_handler(
        self,
        handler: Callable[[Any], Any],
        key: RoutingKey | None = None,
        payload_type: Any = None,
    ) -> Subscription: ...

    def unregister_handler(
        self,
        handler: Callable[[Any], Any],
        key: RoutingKey | None = None,
        payload_type: Any = None,
    ) -> None: ...

    def publish(self, key: RoutingKey, message: Any) -> bool: ...

    def publish_message(self, message: Any) -> bool: ...

    def publish_async(self, key: RoutingKey, message: Any) -> None: ...

    def publish_message_async(self, message: Any) -> None: ...


class Messenger:
    """
    Default MessengerService backed by a MessageBus.

    Handlers are held weakly when they are bound methods, so registering
    a view model never keeps it alive.
    """

    def __init__(self, bus: MessageBus | None = None) -> None:
        self._bus = bus or get_default_bus()
        self._loader = SinkLoader(self._bus)

    @property
    def bus(self) -> MessageBus:
        return self._bus

    def register(self, subscriber: Any) -> list[Subscription]:
        """Register every ``@message_sink`` method of an object."""
        return self._loader.register(subscriber)

    def unregister(self, subscriber: Any) -> None:
        """Unregister every ``@message_sink`` method of an object."""
        self._loader.unregister(subscriber)

    def register_handler(
        self,
        handler: Callable[[Any], Any],
        key: RoutingKey | None = None,
        payload_type: Any = None,
    ) -> Subscription:
        """
        Register a single handler.

        Args:
            handler: Callable taking exactly one payload argument
            key: Explicit routing key, or None to route by payload type
            payload_type: Payload type; inferred from the handler's
                annotation when omitted

        Raises:
            ArityError: If the handler does not take exactly one argument
        """
        payload_type = self._payload_type(handler, payload_type)
        return self._bus.register(key, payload_type, handler)

    def unregister_handler(
        self,
        handler: Callable[[Any], Any],
        key: RoutingKey | None = None,
        payload_type: Any = None,
    ) -> None:
        """Unregister a handler registered with the same arguments."""
        payload_type = self._payload_type(handler, payload_type)
        self._bus.unregister(key, payload_type, handler)

    def publish(self, key: RoutingKey, message: Any) -> bool:
        """Publish to the handlers under an explicit key."""
        return self._bus.publish(key, message)

    def publish_message(self, message: Any) -> bool:
        """Publish to handlers for the message's type or any of its supertypes."""
        return self._bus.publish_by_type(message)

    def publish_async(self, key: RoutingKey, message: Any) -> None:
        """Fire-and-forget publish under an explicit key."""
        self._bus.publish_async(key, message)

    def publish_message_async(self, message: Any) -> None:
        """Fire-and-forget type-routed publish."""
        self._bus.publish_by_type_async(message)

    @staticmethod
    def _payload_type(handler: Callable[[Any], Any], payload_type: Any) -> Any:
        if payload_type is None:
            return infer_payload_type(handler)
        payload_parameter(handler)
        return payload_type
