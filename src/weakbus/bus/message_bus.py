"""
Weakly referenced pub/sub message bus.

Subscribers are registered under a routing key, either an explicit token or
the payload type itself. Instance-bound subscribers are held weakly: they
stop receiving messages once collected and are pruned lazily by the next
publish or unregister that touches their key.
"""

import threading
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

import anyio
import structlog
from ulid import ULID

from weakbus.bus.keys import RoutingKey, routing_key
from weakbus.bus.table import SubscriptionTable
from weakbus.core.handles import WeakHandle
from weakbus.core.settings import BusSettings

logger = structlog.get_logger()

Endpoint = Callable[[Any], Any]


@dataclass(frozen=True)
class Subscription:
    """Token returned by MessageBus.register. Never keeps the subscriber alive."""

    id: str
    key: RoutingKey
    payload_type: Any
    handle: WeakHandle = field(repr=False, compare=False)
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC), compare=False)


@dataclass
class MessageBusStats:
    """Statistics for the message bus."""

    total_registrations: int = 0
    total_messages_published: int = 0
    total_messages_delivered: int = 0
    total_handles_pruned: int = 0
    total_async_errors: int = 0


class MessageBus:
    """
    In-process pub/sub bus keyed by explicit tokens or payload types.

    Features:
    - Weak subscriber ownership with lazy pruning of collected subscribers
    - Type-routed publishing that reaches handlers for any supertype
    - Registration-order delivery per key
    - Fire-and-forget async publishing on a worker pool

    Synchronous publishing does not catch subscriber errors: the first
    failing subscriber aborts the pass and the error reaches the publisher.
    """

    def __init__(self, settings: BusSettings | None = None) -> None:
        self._settings = settings or BusSettings()
        self._table = SubscriptionTable()
        self._stats = MessageBusStats()
        self._stats_lock = threading.Lock()
        self._executor: ThreadPoolExecutor | None = None
        self._executor_lock = threading.Lock()
        self._log = logger.bind(component="message_bus")

    @property
    def settings(self) -> BusSettings:
        return self._settings

    @property
    def stats(self) -> MessageBusStats:
        return self._stats

    # --- Registration ---

    def register(
        self,
        key: RoutingKey | None,
        payload_type: Any,
        endpoint: Endpoint,
    ) -> Subscription:
        """
        Register an endpoint for messages.

        Args:
            key: Explicit routing key, or None to route by payload type
            payload_type: Type of payload the endpoint accepts
            endpoint: Bound method (held weakly) or other callable (held strongly)

        Returns:
            Subscription token for later unsubscription

        Raises:
            InvalidSubscriber: If the endpoint cannot be weakly wrapped
            IncompatibleHandlerType: If the key holds handlers for an unrelated type
        """
        resolved = routing_key(key, payload_type)
        handle = WeakHandle.for_endpoint(payload_type, endpoint)
        self._table.add(resolved, handle)

        subscription = Subscription(
            id=str(ULID()),
            key=resolved,
            payload_type=payload_type,
            handle=handle,
        )
        with self._stats_lock:
            self._stats.total_registrations += 1

        self._log.debug(
            "registered",
            key=str(resolved),
            subscription_id=subscription.id,
            receiver=handle.receiver_kind.name,
        )
        return subscription

    def unregister(
        self,
        key: RoutingKey | None,
        payload_type: Any,
        endpoint: Endpoint,
    ) -> None:
        """
        Remove an endpoint registered with the same (key, payload_type, endpoint).

        Unknown or already collected endpoints are ignored.
        """
        resolved = routing_key(key, payload_type)
        removed = self._table.remove_matching(resolved, payload_type, endpoint)
        self._log.debug("unregistered", key=str(resolved), count=removed)

    def unsubscribe(self, subscription: Subscription) -> bool:
        """
        Remove exactly the handle behind a subscription token.

        Returns:
            True if the handle was still registered
        """
        removed = self._table.remove_handle(subscription.key, subscription.handle)
        self._log.debug("unsubscribed", subscription_id=subscription.id, removed=removed)
        return removed

    # --- Publishing ---

    def publish(self, key: RoutingKey, payload: Any) -> bool:
        """
        Deliver a payload to every handler registered under a key.

        Handlers run in registration order on the calling thread. An error
        raised by a handler propagates and skips the remaining handlers.

        Returns:
            True if the key had a subscriber list, even if every
            subscriber in it had already been collected
        """
        return self._dispatch(key, payload, isolate=False)

    def publish_by_type(self, payload: Any) -> bool:
        """
        Deliver a payload to handlers routed by its type or any supertype.

        Explicit keys are never considered, even if they are classes.

        Returns:
            True if any matching type key had a subscriber list
        """
        return self._dispatch_by_type(payload, isolate=False)

    def publish_async(self, key: RoutingKey | None, payload: Any) -> None:
        """
        Schedule a publish on the worker pool and return immediately.

        A key of None publishes by payload type. Handler errors are logged
        and dropped; a failing handler does not stop the others.
        """
        with self._executor_lock:
            self._get_executor().submit(self._deliver_quietly, key, payload)

    def publish_by_type_async(self, payload: Any) -> None:
        """Schedule a type-routed publish on the worker pool."""
        self.publish_async(None, payload)

    async def apublish(self, key: RoutingKey | None, payload: Any) -> bool:
        """
        Publish from a coroutine without blocking the event loop.

        The synchronous publish runs on a worker thread; handler errors
        propagate to the awaiting caller.
        """
        if key is None:
            return await anyio.to_thread.run_sync(self.publish_by_type, payload)
        return await anyio.to_thread.run_sync(self.publish, key, payload)

    # --- Lifecycle ---

    def clear(self) -> None:
        """Remove all subscriptions."""
        count = self._table.clear()
        self._log.info("cleared", removed_handles=count)

    def shutdown(self, wait: bool = True) -> None:
        """Stop the async worker pool. A later publish_async starts a new one."""
        with self._executor_lock:
            executor, self._executor = self._executor, None
        if executor is not None:
            executor.shutdown(wait=wait)
            self._log.debug("async_pool_stopped", wait=wait)

    # --- Internals ---

    def _dispatch(
        self,
        key: RoutingKey,
        payload: Any,
        *,
        isolate: bool,
        count_publish: bool = True,
    ) -> bool:
        handles = self._table.snapshot(key)
        if not handles:
            self._log.debug("no_subscribers", key=str(key))
            return False

        delivered = 0
        try:
            for handle in handles:
                receiver = handle.resolve()
                if receiver is None:
                    continue
                if isolate:
                    try:
                        receiver(payload)
                    except Exception:
                        with self._stats_lock:
                            self._stats.total_async_errors += 1
                        self._log.debug("async_handler_failed", key=str(key), exc_info=True)
                        continue
                else:
                    receiver(payload)
                delivered += 1
        finally:
            pruned = self._table.compact(key)
            with self._stats_lock:
                if count_publish:
                    self._stats.total_messages_published += 1
                self._stats.total_messages_delivered += delivered
                self._stats.total_handles_pruned += pruned

        if self._settings.log_deliveries:
            self._log.debug(
                "published",
                key=str(key),
                delivered=delivered,
                total_handlers=len(handles),
            )
        return True

    def _dispatch_by_type(self, payload: Any, *, isolate: bool) -> bool:
        keys = self._table.keys_with_assignable_type_key(type(payload))
        if not keys:
            self._log.debug("no_type_subscribers", payload_type=type(payload).__name__)
            return False

        # One type-routed publish counts once, however many keys it reaches
        with self._stats_lock:
            self._stats.total_messages_published += 1

        result = False
        for key in keys:
            result = self._dispatch(key, payload, isolate=isolate, count_publish=False) or result
        return result

    def _deliver_quietly(self, key: RoutingKey | None, payload: Any) -> None:
        try:
            if key is None:
                self._dispatch_by_type(payload, isolate=True)
            else:
                self._dispatch(key, payload, isolate=True)
        except Exception:
            with self._stats_lock:
                self._stats.total_async_errors += 1
            self._log.debug("async_publish_failed", key=str(key), exc_info=True)

    def _get_executor(self) -> ThreadPoolExecutor:
        # Caller holds _executor_lock so shutdown cannot interleave with submit
        if self._executor is None:
            self._executor = ThreadPoolExecutor(
                max_workers=self._settings.async_workers,
                thread_name_prefix=self._settings.thread_name_prefix,
            )
        return self._executor


_DEFAULT_BUS: MessageBus | None = None
_DEFAULT_LOCK = threading.Lock()


def get_default_bus() -> MessageBus:
    """Get the process-wide bus, creating it on first use."""
    global _DEFAULT_BUS
    with _DEFAULT_LOCK:
        if _DEFAULT_BUS is None:
            _DEFAULT_BUS = MessageBus(BusSettings.from_env())
    return _DEFAULT_BUS
