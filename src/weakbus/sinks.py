"""
Declarative subscription loading.

Methods marked with ``@message_sink`` are turned into bus registrations when
their owning object is passed to ``SinkLoader.register``. The payload type
comes from the annotation of the sink's single parameter. Objects can also
wire themselves explicitly by implementing ``message_sinks`` and
returning ``(key, payload_type, endpoint)`` triples.

    class Inbox:
        @message_sink()
        def on_order(self, order: Order) -> None: ...

        @message_sink("audit")
        @message_sink("orders")
        def on_any(self, event: Event) -> None: ...
"""

import inspect
import threading
import types
import typing
import weakref
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from enum import Enum, auto
from typing import TYPE_CHECKING, Any

import structlog

from weakbus.bus.keys import RoutingKey
from weakbus.core.errors import ArityError, InvalidSubscriber

if TYPE_CHECKING:
    from weakbus.bus.message_bus import MessageBus, Subscription

logger = structlog.get_logger()

SINK_KEYS_ATTR = "__message_sink_keys__"
EXPLICIT_SINKS_HOOK = "message_sinks"

_POSITIONAL = (
    inspect.Parameter.POSITIONAL_ONLY,
    inspect.Parameter.POSITIONAL_OR_KEYWORD,
)


class SinkKind(Enum):
    """How a sink method binds to its owner."""

    INSTANCE = auto()
    STATIC = auto()
    CLASS = auto()


@dataclass(frozen=True)
class SinkSpec:
    """A message sink discovered on a class."""

    name: str
    keys: tuple[RoutingKey | None, ...]
    payload_type: Any
    kind: SinkKind
    func: Callable[..., Any]

    def bind(self, owner: Any) -> Callable[..., Any]:
        """Get the endpoint for this sink on a given owner."""
        match self.kind:
            case SinkKind.INSTANCE:
                return types.MethodType(self.func, owner)
            case SinkKind.CLASS:
                return types.MethodType(self.func, type(owner))
            case _:
                return self.func


def message_sink(key: Any = None) -> Any:
    """
    Mark a method as a message sink.

    Args:
        key: Explicit routing key, or None to route by the payload type.
            Stack the decorator to register one method under several keys.

    Works on instance methods, static methods and class methods. May also
    be used bare, as ``@message_sink``.
    """
    if isinstance(key, (staticmethod, classmethod)) or inspect.isfunction(key):
        return message_sink(None)(key)

    def decorate(member: Any) -> Any:
        func = member.__func__ if isinstance(member, (staticmethod, classmethod)) else member
        existing = getattr(func, SINK_KEYS_ATTR, ())
        setattr(func, SINK_KEYS_ATTR, (key, *existing))
        return member

    return decorate


def payload_parameter(
    func: Callable[..., Any],
    *,
    skip_first: bool = False,
) -> inspect.Parameter:
    """
    Get the single payload parameter of a sink.

    Args:
        func: Function or bound callable to inspect
        skip_first: Drop the first parameter (self/cls of an unbound function)

    Raises:
        ArityError: If there is not exactly one positional payload parameter
        InvalidSubscriber: If the callable has no inspectable signature
    """
    name = getattr(func, "__qualname__", repr(func))
    try:
        params = list(inspect.signature(func).parameters.values())
    except (TypeError, ValueError) as exc:
        raise InvalidSubscriber(f"Cannot inspect signature of {name}") from exc

    if skip_first:
        params = params[1:]

    if len(params) != 1 or params[0].kind not in _POSITIONAL:
        raise ArityError(name, len(params))
    return params[0]


def infer_payload_type(func: Callable[..., Any], *, skip_first: bool = False) -> Any:
    """
    Get the payload type a sink accepts from its parameter annotation.

    Unannotated parameters accept ``object``.
    """
    param = payload_parameter(func, skip_first=skip_first)
    hints = _type_hints(func)
    annotation = hints.get(param.name, param.annotation)

    if annotation is inspect.Parameter.empty:
        return object
    if isinstance(annotation, str):
        raise InvalidSubscriber(
            f"Cannot resolve payload annotation {annotation!r} of "
            f"{getattr(func, '__qualname__', func)!r}"
        )
    return annotation


def _type_hints(func: Callable[..., Any]) -> dict[str, Any]:
    try:
        return typing.get_type_hints(func)
    except TypeError:
        # Callables without annotations support (partials, builtins)
        return {}
    except NameError as exc:
        raise InvalidSubscriber(
            f"Cannot resolve annotations of {getattr(func, '__qualname__', func)!r}"
        ) from exc


_spec_cache: "weakref.WeakKeyDictionary[type, tuple[SinkSpec, ...]]" = weakref.WeakKeyDictionary()
_spec_lock = threading.Lock()


def sink_specs(cls: type) -> tuple[SinkSpec, ...]:
    """
    Discover the message sinks declared on a class and its bases.

    A method overridden in a subclass is discovered once, from the most
    derived definition. Results are cached per class.
    """
    with _spec_lock:
        cached = _spec_cache.get(cls)
    if cached is not None:
        return cached

    specs: list[SinkSpec] = []
    seen: set[str] = set()
    for klass in cls.__mro__:
        for name, member in vars(klass).items():
            if name in seen:
                continue
            seen.add(name)

            if isinstance(member, staticmethod):
                kind, func = SinkKind.STATIC, member.__func__
            elif isinstance(member, classmethod):
                kind, func = SinkKind.CLASS, member.__func__
            elif inspect.isfunction(member):
                kind, func = SinkKind.INSTANCE, member
            else:
                continue

            keys = getattr(func, SINK_KEYS_ATTR, None)
            if keys is None:
                continue

            specs.append(
                SinkSpec(
                    name=name,
                    keys=tuple(keys),
                    payload_type=infer_payload_type(func, skip_first=kind is not SinkKind.STATIC),
                    kind=kind,
                    func=func,
                )
            )

    result = tuple(specs)
    with _spec_lock:
        _spec_cache[cls] = result
    return result


class SinkLoader:
    """
    Registers an object's message sinks on a bus.

    Unregistration replays exactly the triples used at registration, so
    an object can be registered and unregistered any number of times.
    """

    def __init__(self, bus: "MessageBus") -> None:
        self._bus = bus
        self._log = logger.bind(component="sink_loader")

    def register(self, subscriber: Any) -> list["Subscription"]:
        """
        Register every sink of an object.

        Returns:
            Subscription tokens, one per (sink, key) pair

        Raises:
            ArityError: If a sink does not take exactly one payload parameter
            IncompatibleHandlerType: If a sink's key holds an unrelated type
        """
        subscriptions = [
            self._bus.register(key, payload_type, endpoint)
            for key, payload_type, endpoint in self.triples(subscriber)
        ]
        self._log.debug(
            "subscriber_registered",
            subscriber=type(subscriber).__name__,
            sinks=len(subscriptions),
        )
        return subscriptions

    def unregister(self, subscriber: Any) -> None:
        """Unregister every sink of an object. Missing registrations are ignored."""
        count = 0
        for key, payload_type, endpoint in self.triples(subscriber):
            self._bus.unregister(key, payload_type, endpoint)
            count += 1
        self._log.debug(
            "subscriber_unregistered",
            subscriber=type(subscriber).__name__,
            sinks=count,
        )

    def triples(
        self, subscriber: Any
    ) -> list[tuple[RoutingKey | None, Any, Callable[..., Any]]]:
        """Collect (key, payload_type, endpoint) for every sink of an object."""
        triples: list[tuple[RoutingKey | None, Any, Callable[..., Any]]] = []
        for spec in sink_specs(type(subscriber)):
            endpoint = spec.bind(subscriber)
            for key in spec.keys:
                triples.append((key, spec.payload_type, endpoint))

        triples.extend(_explicit_sinks(subscriber))
        return triples


def _explicit_sinks(
    subscriber: Any,
) -> Iterable[tuple[RoutingKey | None, Any, Callable[..., Any]]]:
    hook = getattr(subscriber, EXPLICIT_SINKS_HOOK, None)
    if hook is None:
        return []

    triples = []
    for key, payload_type, endpoint in hook():
        payload_parameter(endpoint)
        triples.append((key, payload_type, endpoint))
    return triples
