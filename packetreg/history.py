"""
Packet state projection from the event stream.

Packet records can always be recomputed by folding the registry's events
in emission order. This is how observers rebuild history without querying
the registry, and how PacketRegistry.restore resumes from an event log.
"""

from __future__ import annotations

from typing import Iterable, Sequence

from .events import (
    ADMIN_TRANSFERRED,
    PACKET_ADDED,
    PACKET_VALIDATED,
    REWARD_DISTRIBUTED,
    REWARD_SET,
    RegistryEvent,
)
from .models import Packet


def fold_events(events: Iterable[RegistryEvent]) -> dict[int, Packet]:
    """
    Compute packet state by folding event history.

    Events must be in emission order. The first event seen for a packet
    must be packet.added; registry-level events are skipped.

    Returns:
        Dict mapping packet id to Packet, in registration order
    """
    packets: dict[int, Packet] = {}

    for event in events:
        if event.event_type == ADMIN_TRANSFERRED:
            continue

        packet_id = event.packet_id
        assert packet_id is not None  # enforced by RegistryEvent

        if event.event_type == PACKET_ADDED:
            if packet_id in packets:
                raise ValueError(f"Packet {packet_id} added twice (seq={event.seq})")
            packets[packet_id] = _packet_from_added(event)
            continue

        packet = packets.get(packet_id)
        if packet is None:
            raise ValueError(f"First event for packet {packet_id} must be {PACKET_ADDED}, got {event.event_type}")
        _apply_event(packet, event)

    return packets


def _packet_from_added(event: RegistryEvent) -> Packet:
    payload = event.payload
    return Packet(
        id=int(event.packet_id or 0),
        owner=payload["owner"],
        name=payload.get("name", ""),
        data_type=payload.get("data_type", ""),
        data_hash=payload["data_hash"],
        created_at=event.timestamp,
    )


def _apply_event(packet: Packet, event: RegistryEvent) -> None:
    """Apply a single event to update packet state."""
    payload = event.payload

    if event.event_type == PACKET_VALIDATED:
        packet.validated = bool(payload["is_valid"])
        if not packet.validated:
            packet.reward = 0

    elif event.event_type == REWARD_SET:
        packet.reward = int(payload["reward"])

    elif event.event_type == REWARD_DISTRIBUTED:
        packet.total_rewarded += int(payload["reward"])


def administrator_from_events(events: Iterable[RegistryEvent], default: str) -> str:
    """Replay admin.transferred events on top of the deployment administrator."""
    administrator = default
    for event in events:
        if event.event_type == ADMIN_TRANSFERRED:
            administrator = event.payload["current"]
    return administrator


def packet_timeline(events: Sequence[RegistryEvent], packet_id: int) -> list[RegistryEvent]:
    """Events for one packet, in emission order."""
    return [e for e in events if e.packet_id == packet_id]
