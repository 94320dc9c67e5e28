"""
Notification sinks for registry events.

A sink receives events in emission order. Delivery is fire-and-forget: the
registry does not wait for acknowledgment and does not retry.
"""

from __future__ import annotations

import logging
from typing import Iterator, Protocol, Sequence, runtime_checkable

from .events import RegistryEvent

logger = logging.getLogger(__name__)


@runtime_checkable
class EventSink(Protocol):
    """Anything that can receive registry events."""

    def emit(self, event: RegistryEvent) -> None: ...


class MemorySink:
    """List-backed sink, mostly for tests and in-process observers."""

    def __init__(self) -> None:
        self.events: list[RegistryEvent] = []

    def emit(self, event: RegistryEvent) -> None:
        self.events.append(event)

    def of_type(self, event_type: str) -> list[RegistryEvent]:
        return [e for e in self.events if e.event_type == event_type]

    def __iter__(self) -> Iterator[RegistryEvent]:
        return iter(self.events)

    def __len__(self) -> int:
        return len(self.events)


class FanoutSink:
    """
    Forward each event to several sinks, in the order given.

    A failing sink is logged and skipped; the remaining sinks still receive
    the event.
    """

    def __init__(self, sinks: Sequence[EventSink]):
        self.sinks = list(sinks)

    def emit(self, event: RegistryEvent) -> None:
        for sink in self.sinks:
            try:
                sink.emit(event)
            except Exception:
                logger.exception("sink %s failed for %s (seq=%d)", type(sink).__name__, event.event_type, event.seq)
