"""
Exception taxonomy for the packet registry.

Every rejected request raises a RegistryError subclass before any state is
touched. The `kind` attribute groups classes into the five failure kinds
callers branch on (Unauthorized, DuplicateKey, NotFound, InvalidAmount,
InvalidState).
"""

from __future__ import annotations


class RegistryError(ValueError):
    """Base class for all registry failures."""

    kind = "RegistryError"


class Unauthorized(RegistryError):
    """Caller does not hold the role an operation requires."""

    kind = "Unauthorized"
    role = ""

    def __init__(self, caller: str):
        self.caller = caller
        super().__init__(f"{caller!r} is not the {self.role}")


class OnlyAdministrator(Unauthorized):
    role = "administrator"


class OnlyRewardPool(Unauthorized):
    role = "reward pool"


class PacketAlreadyExists(RegistryError):
    kind = "DuplicateKey"

    def __init__(self, data_hash: str, packet_id: int):
        self.data_hash = data_hash
        self.packet_id = packet_id
        super().__init__(f"Packet already exists for hash {data_hash!r} (id={packet_id})")


class PacketNotFound(RegistryError):
    kind = "NotFound"

    def __init__(self, key: int | str):
        self.key = key
        super().__init__(f"Packet not found: {key!r}")


class RewardMustBeNonZero(RegistryError):
    kind = "InvalidAmount"

    def __init__(self, amount: int, packet_id: int | None = None):
        self.amount = amount
        self.packet_id = packet_id
        where = f" (packet {packet_id})" if packet_id is not None else ""
        super().__init__(f"Reward must be a positive amount, got {amount}{where}")


class PacketNotValid(RegistryError):
    kind = "InvalidState"

    def __init__(self, packet_id: int):
        self.packet_id = packet_id
        super().__init__(f"Packet {packet_id} is not validated")


class ConfigError(RegistryError):
    kind = "Config"


class EventLogWriteError(RegistryError):
    """The registry's journal could not record an event; the change was not committed."""

    kind = "Persistence"

    def __init__(self, event_type: str, seq: int, cause: Exception):
        self.event_type = event_type
        self.seq = seq
        self.cause = cause
        super().__init__(f"could not record {event_type} (seq={seq}): {cause}")


class EventLogCorrupt(RegistryError):
    """A stored event log cannot be replayed into registry state."""

    kind = "Persistence"

    def __init__(self, path: object, cause: Exception):
        self.path = path
        self.cause = cause
        super().__init__(f"event log {path} cannot be replayed: {cause}")
