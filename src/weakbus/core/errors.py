"""
Error taxonomy for the weakbus messaging core.

Registration problems are raised synchronously to the caller. Faults raised
by subscribers are never wrapped in these types.
"""


class MessagingError(Exception):
    """Base class for all messaging errors."""


class InvalidSubscriber(MessagingError, TypeError):
    """A subscriber endpoint cannot be turned into a weak handle."""


class IncompatibleHandlerType(MessagingError, ValueError):
    """A handler's payload type conflicts with handlers already under its key."""

    def __init__(self, key: object, existing: object, incoming: object) -> None:
        self.key = key
        self.existing = existing
        self.incoming = incoming
        super().__init__(
            f"Handler for {_type_name(incoming)} is incompatible with existing "
            f"handlers for {_type_name(existing)} under key {key!r}"
        )


class ArityError(MessagingError, TypeError):
    """A message sink does not accept exactly one payload argument."""

    def __init__(self, name: str, count: int) -> None:
        self.name = name
        self.count = count
        super().__init__(
            f"Message sink '{name}' must take exactly one payload parameter, got {count}"
        )


def _type_name(tp: object) -> str:
    return getattr(tp, "__qualname__", None) or repr(tp)
