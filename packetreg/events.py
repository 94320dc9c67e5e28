"""
Immutable notification records for the packet registry.

Every successful state change produces exactly one RegistryEvent. The event
stream is an append-only audit log: packet history and reward flow can be
rebuilt from it without reading registry state (see history.py).
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any, Mapping

# Event type constants
PACKET_ADDED = "packet.added"
PACKET_VALIDATED = "packet.validated"
REWARD_SET = "reward.set"
REWARD_DISTRIBUTED = "reward.distributed"

# Registry-level event types
ADMIN_TRANSFERRED = "admin.transferred"

# All valid event types
EVENT_TYPES = frozenset({
    PACKET_ADDED,
    PACKET_VALIDATED,
    REWARD_SET,
    REWARD_DISTRIBUTED,
    ADMIN_TRANSFERRED,
})

# Events that describe a single packet and must carry its id
PACKET_EVENT_TYPES = frozenset({
    PACKET_ADDED,
    PACKET_VALIDATED,
    REWARD_SET,
    REWARD_DISTRIBUTED,
})

# Required payload fields for each event type (extra keys are allowed)
EVENT_PAYLOAD_FIELDS = {
    PACKET_ADDED: {
        "owner": "Account that owns the packet",
        "data_hash": "Content fingerprint (dedup key)",
        "data_type": "Free-form data type label",
        "name": "Free-form packet name",
    },
    PACKET_VALIDATED: {
        "id": "Packet id",
        "is_valid": "New validation flag",
    },
    REWARD_SET: {
        "id": "Packet id",
        "reward": "New pending per-distribution reward",
    },
    REWARD_DISTRIBUTED: {
        "id": "Packet id",
        "reward": "Units transferred to the owner by this distribution",
    },
    ADMIN_TRANSFERRED: {
        "previous": "Administrator before the transfer",
        "current": "Administrator after the transfer",
    },
}


@dataclass(frozen=True)
class RegistryEvent:
    """
    Immutable event emitted by the registry.

    Events are append-only - once emitted, they are never modified.
    `seq` is assigned by the emitting registry and increases by one per event.
    The payload is copied into a read-only mapping on construction, since
    every sink and subscriber receives the same instance.
    """

    event_type: str  # One of EVENT_TYPES
    packet_id: int | None  # None for registry-level events
    timestamp: datetime
    actor: str  # caller identity that triggered the change
    seq: int = 0

    # Event-specific payload (see EVENT_PAYLOAD_FIELDS)
    payload: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        """Validate event structure."""
        if self.event_type not in EVENT_TYPES:
            raise ValueError(f"Invalid event_type: {self.event_type}")
        if self.event_type in PACKET_EVENT_TYPES and self.packet_id is None:
            raise ValueError(f"{self.event_type} requires a packet_id")
        missing = sorted(set(EVENT_PAYLOAD_FIELDS[self.event_type]) - set(self.payload))
        if missing:
            raise ValueError(f"{self.event_type} payload missing fields: {', '.join(missing)}")
        object.__setattr__(self, "payload", MappingProxyType(dict(self.payload)))

    def to_dict(self) -> dict[str, Any]:
        """Serialize to JSON-compatible dict."""
        result: dict[str, Any] = {
            "seq": self.seq,
            "event_type": self.event_type,
            "timestamp": self.timestamp.isoformat(),
            "actor": self.actor,
        }
        if self.packet_id is not None:
            result["packet_id"] = self.packet_id
        if self.payload:
            result["payload"] = dict(self.payload)
        return result

    def to_json(self) -> str:
        """Serialize to JSON string (single line)."""
        return json.dumps(self.to_dict(), separators=(",", ":"))

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RegistryEvent:
        """Reconstruct from JSON dict."""
        return cls(
            event_type=data["event_type"],
            packet_id=data.get("packet_id"),
            timestamp=datetime.fromisoformat(data["timestamp"]),
            actor=data["actor"],
            seq=int(data.get("seq", 0)),
            payload=data.get("payload", {}),
        )

    @classmethod
    def from_json(cls, line: str) -> RegistryEvent:
        """Parse from JSON string."""
        return cls.from_dict(json.loads(line))


def create_event(
    event_type: str,
    packet_id: int | None,
    actor: str,
    *,
    payload: Mapping[str, Any] | None = None,
    seq: int = 0,
    timestamp: datetime | None = None,
) -> RegistryEvent:
    """
    Factory function for creating events.

    Ensures consistent timestamp handling and validation.
    """
    return RegistryEvent(
        event_type=event_type,
        packet_id=packet_id,
        timestamp=timestamp or datetime.now(timezone.utc),
        actor=actor,
        seq=seq,
        payload=payload or {},
    )
