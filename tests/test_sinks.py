"""Tests for declarative message sink loading."""

import gc

import pytest

from weakbus.bus.message_bus import MessageBus
from weakbus.core.errors import ArityError, InvalidSubscriber
from weakbus.sinks import (
    SinkKind,
    SinkLoader,
    infer_payload_type,
    message_sink,
    payload_parameter,
    sink_specs,
)


class Event:
    pass


class OrderPlaced(Event):
    pass


AUDIT_LOG: list[tuple[str, object]] = []


class Inbox:
    def __init__(self, log: list[tuple[str, object]]) -> None:
        self.log = log

    @message_sink()
    def on_event(self, event: Event) -> None:
        self.log.append(("event", event))

    @message_sink("orders")
    @message_sink("audit")
    def on_keyed(self, event: Event) -> None:
        self.log.append(("keyed", event))

    @message_sink("audit")
    @staticmethod
    def on_audit(event: Event) -> None:
        AUDIT_LOG.append(("static", event))

    def not_a_sink(self, event: Event) -> None:
        self.log.append(("ignored", event))


class PlainSinks:
    @message_sink
    def on_anything(self, payload) -> None:
        pass

    @message_sink("counter")
    @classmethod
    def on_count(cls, value: int) -> None:
        pass


class TwoArguments:
    @message_sink()
    def on_pair(self, first: Event, second: Event) -> None:
        pass


class NoArguments:
    @message_sink("ping")
    def on_ping(self) -> None:
        pass


class UnresolvedAnnotation:
    @message_sink()
    def on_missing(self, payload: "MissingType") -> None:  # noqa: F821
        pass


class ExplicitWiring:
    def __init__(self, log: list[object]) -> None:
        self.log = log

    def handle(self, event: Event) -> None:
        self.log.append(event)

    def message_sinks(self):
        return [("explicit", Event, self.handle)]


class BaseView:
    def __init__(self, log: list[tuple[str, object]]) -> None:
        self.log = log

    @message_sink("refresh")
    def on_refresh(self, payload: str) -> None:
        self.log.append(("base", payload))


class DerivedView(BaseView):
    @message_sink("refresh")
    def on_refresh(self, payload: str) -> None:
        self.log.append(("derived", payload))


@pytest.fixture(autouse=True)
def reset_audit_log() -> None:
    AUDIT_LOG.clear()


class TestMessageSinkDecorator:
    def test_specs_are_discovered(self) -> None:
        specs = {spec.name: spec for spec in sink_specs(Inbox)}
        assert set(specs) == {"on_event", "on_keyed", "on_audit"}

        assert specs["on_event"].keys == (None,)
        assert specs["on_event"].payload_type is Event
        assert specs["on_event"].kind == SinkKind.INSTANCE

        assert specs["on_keyed"].keys == ("orders", "audit")
        assert specs["on_audit"].kind == SinkKind.STATIC

    def test_bare_decorator_and_classmethod(self) -> None:
        specs = {spec.name: spec for spec in sink_specs(PlainSinks)}
        assert specs["on_anything"].keys == (None,)
        assert specs["on_anything"].payload_type is object
        assert specs["on_count"].kind == SinkKind.CLASS
        assert specs["on_count"].payload_type is int

    def test_specs_are_cached(self) -> None:
        assert sink_specs(Inbox) is sink_specs(Inbox)

    def test_override_is_discovered_once(self) -> None:
        specs = sink_specs(DerivedView)
        assert len(specs) == 1
        assert specs[0].func is DerivedView.on_refresh

    def test_two_parameters_rejected(self) -> None:
        with pytest.raises(ArityError) as excinfo:
            sink_specs(TwoArguments)
        assert excinfo.value.count == 2

    def test_no_parameters_rejected(self) -> None:
        with pytest.raises(ArityError):
            sink_specs(NoArguments)

    def test_unresolved_annotation_rejected(self) -> None:
        with pytest.raises(InvalidSubscriber):
            sink_specs(UnresolvedAnnotation)


class TestPayloadInference:
    def test_bound_method(self) -> None:
        inbox = Inbox([])
        assert infer_payload_type(inbox.on_event) is Event

    def test_lambda_defaults_to_object(self) -> None:
        assert infer_payload_type(lambda payload: None) is object

    def test_keyword_only_parameter_rejected(self) -> None:
        def handler(*, payload: Event) -> None:
            pass

        with pytest.raises(ArityError):
            payload_parameter(handler)


class TestSinkLoader:
    def test_register_and_publish(self) -> None:
        bus = MessageBus()
        loader = SinkLoader(bus)
        log: list[tuple[str, object]] = []
        inbox = Inbox(log)

        subscriptions = loader.register(inbox)
        # on_event, on_keyed twice, on_audit
        assert len(subscriptions) == 4

        order = OrderPlaced()
        assert bus.publish_by_type(order)
        assert bus.publish("orders", order)
        assert bus.publish("audit", order)

        assert log == [("event", order), ("keyed", order), ("keyed", order)]
        assert AUDIT_LOG == [("static", order)]

    def test_unregister_mirrors_register(self) -> None:
        bus = MessageBus()
        loader = SinkLoader(bus)
        log: list[tuple[str, object]] = []
        inbox = Inbox(log)

        loader.register(inbox)
        loader.unregister(inbox)

        assert not bus.publish_by_type(Event())
        assert not bus.publish("orders", Event())
        assert not bus.publish("audit", Event())
        assert log == []

    def test_unregister_leaves_other_instances(self) -> None:
        bus = MessageBus()
        loader = SinkLoader(bus)
        log: list[tuple[str, object]] = []
        first = Inbox(log)
        second = Inbox(log)
        loader.register(first)
        loader.register(second)

        loader.unregister(first)

        bus.publish("orders", "x")
        assert log == [("keyed", "x")]

    def test_repeated_unregister_is_harmless(self) -> None:
        bus = MessageBus()
        loader = SinkLoader(bus)
        inbox = Inbox([])
        loader.register(inbox)

        loader.unregister(inbox)
        loader.unregister(inbox)

    def test_registered_object_can_be_collected(self) -> None:
        bus = MessageBus()
        loader = SinkLoader(bus)
        log: list[tuple[str, object]] = []
        inbox = Inbox(log)
        loader.register(inbox)

        del inbox
        gc.collect()

        bus.publish("orders", Event())
        assert log == []

    def test_explicit_wiring(self) -> None:
        bus = MessageBus()
        loader = SinkLoader(bus)
        log: list[object] = []
        wired = ExplicitWiring(log)

        loader.register(wired)
        event = Event()
        assert bus.publish("explicit", event)
        assert log == [event]

        loader.unregister(wired)
        assert not bus.publish("explicit", event)

    def test_derived_override_receives(self) -> None:
        bus = MessageBus()
        loader = SinkLoader(bus)
        log: list[tuple[str, object]] = []
        view = DerivedView(log)

        loader.register(view)
        bus.publish("refresh", "now")

        assert log == [("derived", "now")]

    def test_arity_error_registers_nothing(self) -> None:
        bus = MessageBus()
        loader = SinkLoader(bus)

        with pytest.raises(ArityError):
            loader.register(TwoArguments())
        assert bus.stats.total_registrations == 0
