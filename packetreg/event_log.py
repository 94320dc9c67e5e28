"""
Append-only JSON Lines event log.

Each line of events.jsonl is one RegistryEvent, written once and never
modified. The log doubles as an EventSink, so a registry can write its
audit trail straight to disk, and it is the source PacketRegistry.restore
replays from.
"""

from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Callable, Iterator, Literal, Sequence

from .events import REWARD_DISTRIBUTED, RegistryEvent


class JsonlEventLog:
    """
    Append-only event log for registry events.

    INVARIANT: This class NEVER modifies existing log lines.
    The only write operations are append() and append_many().
    """

    def __init__(self, path: Path):
        """
        Initialize log.

        Args:
            path: Path to the events.jsonl file (parent created on first write)
        """
        self.path = path

        # Query indexes (lazy-loaded)
        self._events: list[RegistryEvent] = []
        self._by_packet_id: dict[int, list[int]] = {}  # packet_id -> event indices
        self._by_event_type: dict[str, list[int]] = {}  # event_type -> event indices
        self._indexed: bool = False

    def _ensure_dir(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)

    def _ensure_indexed(self) -> None:
        """Build indexes on first use. Safe to call repeatedly."""
        if self._indexed:
            return

        self._events = list(self.iter_events())
        for idx, event in enumerate(self._events):
            self._update_indexes(event, idx)
        self._indexed = True

    def _update_indexes(self, event: RegistryEvent, idx: int) -> None:
        if event.packet_id is not None:
            self._by_packet_id.setdefault(event.packet_id, []).append(idx)
        self._by_event_type.setdefault(event.event_type, []).append(idx)

    def emit(self, event: RegistryEvent) -> None:
        """EventSink entry point."""
        self.append(event)

    def append(self, event: RegistryEvent) -> None:
        """
        Append an event to the log.

        Events are never modified or deleted once written.
        """
        self._ensure_dir()
        with self.path.open("a", encoding="utf-8") as f:
            f.write(event.to_json() + "\n")

        if self._indexed:
            idx = len(self._events)
            self._events.append(event)
            self._update_indexes(event, idx)

    def append_many(self, events: Sequence[RegistryEvent]) -> None:
        """Append multiple events in a single file operation."""
        if not events:
            return
        self._ensure_dir()
        with self.path.open("a", encoding="utf-8") as f:
            for event in events:
                f.write(event.to_json() + "\n")

        if self._indexed:
            start_idx = len(self._events)
            for i, event in enumerate(events):
                self._events.append(event)
                self._update_indexes(event, start_idx + i)

    def iter_events(self) -> Iterator[RegistryEvent]:
        """
        Iterate over all events in the log.

        Events are returned in append order.
        """
        if not self.path.exists():
            return

        with self.path.open("r", encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if line:
                    yield RegistryEvent.from_json(line)

    def query(
        self,
        *,
        packet_id: int | None = None,
        event_type: str | None = None,
        actor: str | None = None,
        since: datetime | None = None,
        until: datetime | None = None,
        where: Callable[[RegistryEvent], bool] | None = None,
        limit: int | None = None,
        order: Literal["asc", "desc"] = "asc",
    ) -> list[RegistryEvent]:
        """
        Query events with composable filters.

        Args:
            packet_id: Filter by packet id
            event_type: Filter by event type
            actor: Filter by actor
            since: Filter events on or after this timestamp
            until: Filter events on or before this timestamp
            where: Custom filter predicate
            limit: Maximum number of events to return
            order: "asc" = append order, "desc" = reverse

        Returns:
            List of matching events in the requested order. With order="desc"
            the limit applies to the newest events.
        """
        self._ensure_indexed()

        candidate_indices: set[int] | None = None

        if packet_id is not None:
            indices = set(self._by_packet_id.get(packet_id, []))
            candidate_indices = indices if candidate_indices is None else candidate_indices & indices

        if event_type is not None:
            indices = set(self._by_event_type.get(event_type, []))
            candidate_indices = indices if candidate_indices is None else candidate_indices & indices

        if candidate_indices is None:
            candidate_indices = set(range(len(self._events)))

        sorted_indices = sorted(candidate_indices, reverse=(order == "desc"))

        results: list[RegistryEvent] = []
        for idx in sorted_indices:
            event = self._events[idx]

            if since is not None and event.timestamp < since:
                continue
            if until is not None and event.timestamp > until:
                continue
            if actor is not None and event.actor != actor:
                continue
            if where is not None and not where(event):
                continue

            results.append(event)
            if limit is not None and len(results) >= limit:
                break

        return results

    def events_for(self, packet_id: int) -> list[RegistryEvent]:
        """All events for one packet, in append order."""
        return self.query(packet_id=packet_id)

    def reward_flow(self, packet_id: int | None = None) -> list[RegistryEvent]:
        """Distribution events, optionally for a single packet."""
        return self.query(packet_id=packet_id, event_type=REWARD_DISTRIBUTED)

    def total_distributed(self, packet_id: int | None = None) -> int:
        """Sum of units moved by distribution events."""
        return sum(int(e.payload.get("reward", 0)) for e in self.reward_flow(packet_id))

    def __len__(self) -> int:
        self._ensure_indexed()
        return len(self._events)
