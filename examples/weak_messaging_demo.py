#!/usr/bin/env python3
"""
Example: Weak Messaging Demo

Demonstrates:
- Declarative registration with @message_sink
- Type-routed publishing reaching base-type handlers
- Subscribers disappearing from the bus once they are collected
- Fire-and-forget async publishing

Subscribing never keeps a view model alive: once the last strong
reference goes away, the bus stops delivering to it.
"""

import gc
import threading

from weakbus import MessageBus, Messenger, message_sink
from weakbus.logging import configure_logging


class Notification:
    def __init__(self, text: str) -> None:
        self.text = text


class Alert(Notification):
    pass


class DashboardViewModel:
    def __init__(self, name: str) -> None:
        self.name = name

    @message_sink()
    def on_notification(self, notification: Notification) -> None:
        kind = type(notification).__name__
        print(f"  [{self.name}] {kind}: {notification.text}")

    @message_sink("status")
    def on_status(self, status: str) -> None:
        print(f"  [{self.name}] status -> {status}")


def main():
    configure_logging("WARNING")

    print("=" * 60)
    print("Weak Messaging Demo")
    print("=" * 60)
    print()

    bus = MessageBus()
    messenger = Messenger(bus)

    # =========================================================================
    # Step 1: Register view models
    # =========================================================================
    print("Step 1: Registering View Models")
    print("-" * 40)

    left = DashboardViewModel("left")
    right = DashboardViewModel("right")
    messenger.register(left)
    messenger.register(right)
    print("  Registered: left, right")
    print()

    # =========================================================================
    # Step 2: Publish by key and by type
    # =========================================================================
    print("Step 2: Publishing")
    print("-" * 40)

    messenger.publish("status", "online")
    messenger.publish_message(Alert("disk almost full"))
    print()

    # =========================================================================
    # Step 3: Drop a subscriber without unregistering it
    # =========================================================================
    print("Step 3: Dropping 'right' Without Unregistering")
    print("-" * 40)

    del right
    gc.collect()

    delivered = messenger.publish("status", "degraded")
    print(f"  Subscriber list existed: {delivered}")
    print(f"  Stale handles pruned: {bus.stats.total_handles_pruned}")
    print()

    # =========================================================================
    # Step 4: Async publish
    # =========================================================================
    print("Step 4: Async Publishing")
    print("-" * 40)

    done = threading.Event()

    def on_line(line: str) -> None:
        print(f"  [worker] {line}")
        done.set()

    messenger.register_handler(on_line, key="log")
    messenger.publish_async("log", "written from the worker pool")
    done.wait(timeout=5)
    bus.shutdown()

    print()
    print("=" * 60)
    print("Example Complete!")
    print("=" * 60)
    print()
    print("Key Concepts Demonstrated:")
    print("  1. Declarative sinks: methods marked once, registered per object")
    print("  2. Covariance: Notification handlers receive Alert messages")
    print("  3. Weak ownership: collected view models are pruned lazily")
    print("  4. Fire-and-forget: async publish never reports errors back")


if __name__ == "__main__":
    main()
