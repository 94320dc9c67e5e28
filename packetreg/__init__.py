"""
Packet registry with validation and reward distribution.

Records data packets submitted by an administrator, deduplicates them by
content hash, tracks a validation and reward lifecycle per packet, and pays
rewards to packet owners through an external unit ledger.

- Two independent roles: administrator and reward pool
- One event per successful state change (append-only audit stream)
- State can be rebuilt from the event stream alone
"""

__version__ = "0.1.0"

from .auth import AccessPolicy
from .errors import (
    ConfigError,
    EventLogCorrupt,
    EventLogWriteError,
    OnlyAdministrator,
    OnlyRewardPool,
    PacketAlreadyExists,
    PacketNotFound,
    PacketNotValid,
    RegistryError,
    RewardMustBeNonZero,
    Unauthorized,
)
from .event_log import JsonlEventLog
from .events import (
    ADMIN_TRANSFERRED,
    PACKET_ADDED,
    PACKET_VALIDATED,
    REWARD_DISTRIBUTED,
    REWARD_SET,
    RegistryEvent,
)
from .history import fold_events
from .ledger import InMemoryUnitLedger, UnitLedger
from .models import Packet, compute_data_hash
from .registry import PacketRegistry
from .sinks import EventSink, FanoutSink, MemorySink

__all__ = [
    "__version__",
    # Registry
    "PacketRegistry",
    "Packet",
    "compute_data_hash",
    # Authorization
    "AccessPolicy",
    # Events
    "RegistryEvent",
    "PACKET_ADDED",
    "PACKET_VALIDATED",
    "REWARD_SET",
    "REWARD_DISTRIBUTED",
    "ADMIN_TRANSFERRED",
    "EventSink",
    "MemorySink",
    "FanoutSink",
    "JsonlEventLog",
    "fold_events",
    # Ledger
    "UnitLedger",
    "InMemoryUnitLedger",
    # Errors
    "RegistryError",
    "Unauthorized",
    "OnlyAdministrator",
    "OnlyRewardPool",
    "PacketAlreadyExists",
    "PacketNotFound",
    "RewardMustBeNonZero",
    "PacketNotValid",
    "ConfigError",
    "EventLogWriteError",
    "EventLogCorrupt",
]
