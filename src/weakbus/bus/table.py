"""
The subscription table shared by all publishers and subscribers.

Maps routing keys to ordered lists of WeakHandles. Every operation runs
under one table-wide lock; callers never hold it while subscriber code runs.
"""

import threading
from collections.abc import Callable, Iterator
from typing import Any

import structlog

from weakbus.bus.keys import RoutingKey, TypeKey, are_compatible
from weakbus.core.errors import IncompatibleHandlerType
from weakbus.core.handles import WeakHandle

logger = structlog.get_logger()


class SubscriptionTable:
    """
    Thread-safe mapping from routing key to registered handles.

    Handles under one key keep registration order and may repeat. A key is
    dropped as soon as its list becomes empty.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._handles: dict[RoutingKey, list[WeakHandle]] = {}
        self._log = logger.bind(component="subscription_table")

    def add(self, key: RoutingKey, handle: WeakHandle) -> None:
        """
        Append a handle under a key.

        Raises:
            IncompatibleHandlerType: If handles already under the key expect
                a payload type unrelated to the new handle's. Every handle is
                checked, so the check does not depend on registration order
        """
        with self._lock:
            handles = self._handles.get(key)
            if handles is None:
                self._handles[key] = [handle]
                return

            for existing in handles:
                if not are_compatible(existing.payload_type, handle.payload_type):
                    raise IncompatibleHandlerType(key, existing.payload_type, handle.payload_type)

            handles.append(handle)

    def remove_matching(
        self,
        key: RoutingKey,
        payload_type: Any,
        method: Callable[..., Any],
    ) -> int:
        """
        Remove every handle under a key created for the given endpoint.

        Stale handles under the key are swept at the same time.

        Returns:
            Number of matching handles removed
        """
        with self._lock:
            handles = self._handles.get(key)
            if handles is None:
                return 0

            kept: list[WeakHandle] = []
            removed = 0
            for handle in handles:
                if handle.matches(payload_type, method):
                    removed += 1
                elif not handle.is_stale():
                    kept.append(handle)

            self._replace(key, kept)
            return removed

    def remove_handle(self, key: RoutingKey, handle: WeakHandle) -> bool:
        """Remove one specific handle by identity."""
        with self._lock:
            handles = self._handles.get(key)
            if handles is None:
                return False

            kept = [h for h in handles if h is not handle]
            found = len(kept) != len(handles)
            self._replace(key, kept)
            return found

    def snapshot(self, key: RoutingKey) -> list[WeakHandle]:
        """Copy the current handle list for a key (empty if absent)."""
        with self._lock:
            return list(self._handles.get(key, ()))

    def compact(self, key: RoutingKey) -> int:
        """
        Drop stale handles under a key.

        Returns:
            Number of handles removed
        """
        with self._lock:
            handles = self._handles.get(key)
            if handles is None:
                return 0

            kept = [h for h in handles if not h.is_stale()]
            pruned = len(handles) - len(kept)
            if pruned:
                self._replace(key, kept)
                self._log.debug("pruned_stale_handles", key=str(key), count=pruned)
            return pruned

    def keys_with_assignable_type_key(self, payload_type: Any) -> list[TypeKey]:
        """Get the type keys whose type accepts payloads of ``payload_type``."""
        with self._lock:
            return [
                key
                for key in self._handles
                if isinstance(key, TypeKey) and key.accepts(payload_type)
            ]

    def clear(self) -> int:
        """Remove all keys. Returns the number of handles dropped."""
        with self._lock:
            count = sum(len(handles) for handles in self._handles.values())
            self._handles.clear()
            return count

    def _replace(self, key: RoutingKey, handles: list[WeakHandle]) -> None:
        # Caller holds the lock. Mutate in place so the list identity is stable.
        if handles:
            self._handles[key][:] = handles
        else:
            del self._handles[key]

    def __len__(self) -> int:
        with self._lock:
            return len(self._handles)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._handles

    def __iter__(self) -> Iterator[RoutingKey]:
        with self._lock:
            return iter(list(self._handles))
