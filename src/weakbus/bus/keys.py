"""
Routing keys for the message bus.

A routing key is either an explicit hashable token (usually a string) or a
TypeKey naming the payload type a slot carries. Only TypeKeys take part in
type-routed publishing, where a payload reaches every slot keyed by one of
its supertypes.
"""

from collections.abc import Hashable
from dataclasses import dataclass
from typing import Any

RoutingKey = Hashable


@dataclass(frozen=True)
class TypeKey:
    """A routing key identifying the payload type of a slot."""

    payload_type: Any

    def accepts(self, payload_type: Any) -> bool:
        """Check if payloads of the given type are routed to this key."""
        return is_assignable(payload_type, self.payload_type)

    def __str__(self) -> str:
        return f"type:{getattr(self.payload_type, '__qualname__', self.payload_type)}"


def is_assignable(source: Any, target: Any) -> bool:
    """
    Check if a value of type ``source`` can be used where ``target`` is expected.

    Classes are compared with issubclass, so ABCs and runtime-checkable
    protocols work as targets. Anything else (typing constructs, aliases)
    only matches by equality, apart from ``object`` and ``Any`` which
    accept everything.
    """
    if source == target or target is object or target is Any:
        return True
    if isinstance(source, type) and isinstance(target, type):
        try:
            return issubclass(source, target)
        except TypeError:
            return False
    return False


def are_compatible(first: Any, second: Any) -> bool:
    """Check if two payload types are assignable in either direction."""
    return is_assignable(first, second) or is_assignable(second, first)


def routing_key(key: RoutingKey | None, payload_type: Any) -> RoutingKey:
    """Resolve the key a (key, payload_type) pair is stored under."""
    return TypeKey(payload_type) if key is None else key
