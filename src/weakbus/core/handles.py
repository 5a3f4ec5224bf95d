"""
Weak subscriber handles.

A WeakHandle wraps the receiving endpoint of a subscription so the bus can
call it without keeping the subscriber alive. Bound methods are split into a
weak reference to their owner and the plain function; the owner is re-bound
on every resolve. All other callables are held as static receivers.
"""

import inspect
import types
import weakref
from collections.abc import Callable
from enum import Enum, auto
from typing import Any

from weakbus.core.errors import InvalidSubscriber


class ReceiverKind(Enum):
    """How a handle reaches its receiver."""

    INSTANCE = auto()  # Weakly referenced owner plus function
    STATIC = auto()  # Function held strongly, never stale


def split_endpoint(endpoint: Callable[..., Any]) -> tuple[Any, Callable[..., Any]]:
    """
    Split an endpoint into (owner, function).

    Returns (None, endpoint) for anything that is not a bound method.
    """
    if inspect.ismethod(endpoint):
        return endpoint.__self__, endpoint.__func__
    return None, endpoint


class WeakHandle:
    """
    A single subscription that never owns its instance-bound target.

    The only strong reference a handle keeps is to the function object;
    the owning instance is reachable through a weakref only.
    """

    def __init__(
        self,
        payload_type: Any,
        func: Callable[..., Any],
        owner_ref: "weakref.ref[Any] | None" = None,
    ) -> None:
        self._payload_type = payload_type
        self._func = func
        self._owner_ref = owner_ref

    @classmethod
    def create(
        cls,
        owner: Any,
        payload_type: Any,
        method: Callable[..., Any],
    ) -> "WeakHandle":
        """
        Create a handle from an owner and a method.

        Args:
            owner: Subscriber instance, or None for a static receiver
            payload_type: The message type the receiver expects
            method: Plain function to call (with owner as first argument
                when an owner is given)

        Raises:
            InvalidSubscriber: If the method is not callable, is a bound
                method (with or without an owner), or the owner cannot be
                weakly referenced
        """
        if not callable(method):
            raise InvalidSubscriber(f"Subscriber endpoint {method!r} is not callable")

        if owner is None:
            if inspect.ismethod(method):
                raise InvalidSubscriber(
                    f"Bound method {method.__qualname__} needs its owner; "
                    "use for_endpoint to split it"
                )
            return cls(payload_type, method)

        if inspect.ismethod(method):
            raise InvalidSubscriber(
                f"Expected an unbound function for owner {type(owner).__name__}, "
                f"got bound method {method.__qualname__}"
            )

        try:
            owner_ref = weakref.ref(owner)
        except TypeError as exc:
            raise InvalidSubscriber(
                f"Subscriber of type {type(owner).__name__} does not support weak references"
            ) from exc

        return cls(payload_type, method, owner_ref)

    @classmethod
    def for_endpoint(cls, payload_type: Any, endpoint: Callable[..., Any]) -> "WeakHandle":
        """Create a handle from a bound method or any other callable."""
        owner, func = split_endpoint(endpoint)
        return cls.create(owner, payload_type, func)

    @property
    def payload_type(self) -> Any:
        return self._payload_type

    @property
    def receiver_kind(self) -> ReceiverKind:
        return ReceiverKind.STATIC if self._owner_ref is None else ReceiverKind.INSTANCE

    @property
    def function(self) -> Callable[..., Any]:
        return self._func

    def is_stale(self) -> bool:
        """True iff instance-bound and the owner has been collected."""
        return self._owner_ref is not None and self._owner_ref() is None

    def resolve(self) -> Callable[..., Any] | None:
        """
        Get a callable for the receiver.

        Returns:
            The static function, a method bound to the live owner,
            or None if the owner has been collected
        """
        if self._owner_ref is None:
            return self._func
        owner = self._owner_ref()
        if owner is None:
            return None
        return types.MethodType(self._func, owner)

    def matches(self, payload_type: Any, method: Callable[..., Any]) -> bool:
        """
        Check whether this handle was created for the given endpoint.

        The payload type must be equal and the endpoint must designate the
        same function bound to the same owner. Stale handles never match.
        """
        if payload_type != self._payload_type:
            return False

        owner, func = split_endpoint(method)
        # Builtin bound methods are recreated on every access; compare by equality
        if func != self._func:
            return False

        if self._owner_ref is None:
            return owner is None

        target = self._owner_ref()
        return target is not None and target is owner

    def __repr__(self) -> str:
        name = getattr(self._func, "__qualname__", repr(self._func))
        state = "stale" if self.is_stale() else "live"
        return (
            f"WeakHandle({self.receiver_kind.name.lower()}, {name}, "
            f"payload_type={getattr(self._payload_type, '__name__', self._payload_type)!s}, {state})"
        )
