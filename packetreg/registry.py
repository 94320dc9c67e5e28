"""
Packet registry: registration, validation, reward assignment and distribution.

The registry is a single-writer state machine. Every operation that changes
state holds the registry lock from its role check until its event has been
emitted, so other threads never observe a partial update.

Events go to two places. The journal (if any) is written before a change is
applied, and a failed write aborts the operation. The sink and subscribers
are notified after the change and never fail it.

Lifecycle of a packet:

    register -> validated <-> not validated
                    |
                 reward set (validated only)
                    |
                 distribute (repeatable, pulls funds through the UnitLedger)
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone
from typing import Any, Callable, Iterable

from .auth import AccessPolicy
from .errors import (
    EventLogCorrupt,
    EventLogWriteError,
    PacketAlreadyExists,
    PacketNotFound,
    PacketNotValid,
    RegistryError,
    RewardMustBeNonZero,
)
from .event_log import JsonlEventLog
from .events import (
    ADMIN_TRANSFERRED,
    PACKET_ADDED,
    PACKET_VALIDATED,
    REWARD_DISTRIBUTED,
    REWARD_SET,
    RegistryEvent,
    create_event,
)
from .history import administrator_from_events, fold_events
from .ledger import UnitLedger
from .models import Packet
from .sinks import EventSink

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]
Subscriber = Callable[[RegistryEvent], None]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class PacketRegistry:
    def __init__(
        self,
        ledger: UnitLedger,
        reward_pool: str,
        administrator: str,
        *,
        sink: EventSink | None = None,
        journal: EventSink | None = None,
        clock: Clock | None = None,
    ):
        """
        Initialize an empty registry.

        Args:
            ledger: Unit ledger the registry is an approved spender on
            reward_pool: Account that funds rewards and may trigger distribution
            administrator: Initial administrator (the deploying account)
            sink: Notification sink; fire-and-forget, failures are logged
            journal: Durable record written before each change is committed;
                a failed write aborts the operation with EventLogWriteError
            clock: Source of timestamps (defaults to UTC now)
        """
        self.ledger = ledger
        self.policy = AccessPolicy(administrator, reward_pool)
        self.sink = sink
        self.journal = journal
        self.clock = clock or _utc_now
        self.deployed_at = self.clock()

        self._lock = threading.RLock()
        self._packets: dict[int, Packet] = {}
        self._by_hash: dict[str, int] = {}
        self._next_id = 1
        self._next_seq = 1
        self._subscribers: list[Subscriber] = []

    @classmethod
    def from_event_log(
        cls,
        ledger: UnitLedger,
        reward_pool: str,
        administrator: str,
        log: JsonlEventLog,
        *,
        sink: EventSink | None = None,
        clock: Clock | None = None,
    ) -> PacketRegistry:
        """
        Rebuild a registry from its log and keep journaling to the same log.

        Raises:
            EventLogCorrupt: If the log cannot be parsed or replayed
        """
        registry = cls(ledger, reward_pool, administrator, sink=sink, journal=log, clock=clock)
        try:
            registry.restore(log.iter_events())
        except (ValueError, KeyError, TypeError) as e:
            raise EventLogCorrupt(log.path, e) from e
        return registry

    # -------------------------------------------------------------------------
    # Read surface (open to any caller)
    # -------------------------------------------------------------------------

    @property
    def administrator(self) -> str:
        return self.policy.administrator

    @property
    def reward_pool(self) -> str:
        return self.policy.reward_pool

    @property
    def packet_count(self) -> int:
        return len(self._packets)

    @property
    def next_id(self) -> int:
        return self._next_id

    def find_by_hash(self, data_hash: str) -> Packet | None:
        with self._lock:
            packet_id = self._by_hash.get(data_hash)
            if packet_id is None:
                return None
            return self._packets[packet_id].copy()

    def lookup_by_hash(self, data_hash: str) -> Packet:
        packet = self.find_by_hash(data_hash)
        if packet is None:
            raise PacketNotFound(data_hash)
        return packet

    def get_packet(self, packet_id: int) -> Packet | None:
        with self._lock:
            packet = self._packets.get(packet_id)
            return packet.copy() if packet is not None else None

    def packets(self) -> list[Packet]:
        """All packets in id order."""
        with self._lock:
            return [self._packets[i].copy() for i in sorted(self._packets)]

    # -------------------------------------------------------------------------
    # Administrator operations
    # -------------------------------------------------------------------------

    def register_packet(
        self,
        caller: str,
        owner: str,
        name: str,
        data_hash: str,
        data_type: str,
    ) -> Packet:
        with self._lock:
            self.policy.require_administrator(caller)
            existing = self._by_hash.get(data_hash)
            if existing is not None:
                raise PacketAlreadyExists(data_hash, existing)

            packet = Packet(
                id=self._next_id,
                owner=owner,
                name=name,
                data_type=data_type,
                data_hash=data_hash,
                created_at=self.clock(),
            )
            event = self._record(
                PACKET_ADDED,
                packet.id,
                caller,
                {"owner": owner, "data_hash": data_hash, "data_type": data_type, "name": name},
                timestamp=packet.created_at,
            )

            self._packets[packet.id] = packet
            self._by_hash[data_hash] = packet.id
            self._next_id += 1

            logger.debug("registered packet %d for %s (hash=%s)", packet.id, owner, data_hash)
            self._publish(event)
            return packet.copy()

    def set_validated(self, caller: str, packet_id: int, is_valid: bool) -> Packet:
        with self._lock:
            self.policy.require_administrator(caller)
            packet = self._require_packet(packet_id)

            is_valid = bool(is_valid)
            event = self._record(PACKET_VALIDATED, packet_id, caller, {"id": packet_id, "is_valid": is_valid})

            packet.validated = is_valid
            if not is_valid:
                # Revoking validity always clears the pending reward; the
                # accumulated total is history and stays.
                packet.reward = 0

            logger.debug("packet %d validated=%s", packet_id, is_valid)
            self._publish(event)
            return packet.copy()

    def set_reward(self, caller: str, packet_id: int, amount: int) -> Packet:
        with self._lock:
            self.policy.require_administrator(caller)
            if amount <= 0:
                raise RewardMustBeNonZero(amount, packet_id)
            packet = self._require_packet(packet_id)
            if not packet.validated:
                raise PacketNotValid(packet_id)

            event = self._record(REWARD_SET, packet_id, caller, {"id": packet_id, "reward": amount})
            packet.reward = amount

            logger.debug("packet %d reward=%d", packet_id, amount)
            self._publish(event)
            return packet.copy()

    def transfer_administration(self, caller: str, new_administrator: str) -> None:
        with self._lock:
            self.policy.require_administrator(caller)
            if not new_administrator:
                raise ValueError("new administrator is required")

            previous = self.policy.administrator
            event = self._record(ADMIN_TRANSFERRED, None, caller, {"previous": previous, "current": new_administrator})
            self.policy.transfer_administration(caller, new_administrator)

            logger.info("administrator transferred from %s to %s", previous, new_administrator)
            self._publish(event)

    # -------------------------------------------------------------------------
    # Reward-pool operations
    # -------------------------------------------------------------------------

    def distribute_packet_reward(self, caller: str, packet_id: int) -> bool:
        """
        Pay the packet's current reward from the pool to its owner.

        Repeatable: each successful call transfers the reward again and adds
        it to total_rewarded.

        Returns:
            True if the ledger moved the funds, False if it declined. A
            declined transfer changes nothing and emits nothing.

        Raises:
            EventLogWriteError: The ledger moved the funds but the journal
                could not record it. total_rewarded is left unchanged, so the
                caller must reconcile with the ledger before retrying.
        """
        with self._lock:
            self.policy.require_reward_pool(caller)
            packet = self._require_packet(packet_id)
            if not packet.validated:
                raise PacketNotValid(packet_id)
            if packet.reward <= 0:
                raise RewardMustBeNonZero(packet.reward, packet_id)

            reward = packet.reward
            if not self.ledger.transfer_authorized(self.reward_pool, packet.owner, reward):
                logger.warning(
                    "ledger declined transfer of %d from %s to %s for packet %d",
                    reward,
                    self.reward_pool,
                    packet.owner,
                    packet_id,
                )
                return False

            try:
                event = self._record(REWARD_DISTRIBUTED, packet_id, caller, {"id": packet_id, "reward": reward})
            except EventLogWriteError:
                logger.error(
                    "ledger moved %d from %s to %s for packet %d but the distribution was not recorded",
                    reward,
                    self.reward_pool,
                    packet.owner,
                    packet_id,
                )
                raise
            packet.total_rewarded += reward

            logger.debug("packet %d distributed %d (total=%d)", packet_id, reward, packet.total_rewarded)
            self._publish(event)
            return True

    # -------------------------------------------------------------------------
    # Events
    # -------------------------------------------------------------------------

    def subscribe(self, callback: Subscriber) -> None:
        """Call `callback` with every event emitted from now on."""
        with self._lock:
            self._subscribers.append(callback)

    def restore(self, events: Iterable[RegistryEvent]) -> None:
        """
        Load state by replaying previously emitted events.

        Nothing is emitted and no funds move. The id sequence and event
        sequence resume after the highest values seen.
        """
        events = list(events)
        with self._lock:
            if self._packets or self._next_seq != 1:
                raise RegistryError("restore requires an empty registry")

            packets = fold_events(events)
            self._packets = packets
            self._by_hash = {p.data_hash: p.id for p in packets.values()}
            self._next_id = max(packets, default=0) + 1
            self._next_seq = max((e.seq for e in events), default=0) + 1

            administrator = administrator_from_events(events, self.policy.administrator)
            self.policy = AccessPolicy(administrator, self.policy.reward_pool)

        logger.debug("restored %d packets from %d events", len(packets), len(events))

    def _record(
        self,
        event_type: str,
        packet_id: int | None,
        actor: str,
        payload: dict[str, Any],
        *,
        timestamp: datetime | None = None,
    ) -> RegistryEvent:
        """
        Build the next event and write it to the journal.

        Called before the state change is applied. If the journal write
        fails, nothing has been committed and the sequence is not advanced.
        """
        event = create_event(
            event_type,
            packet_id,
            actor,
            payload=payload,
            seq=self._next_seq,
            timestamp=timestamp or self.clock(),
        )
        if self.journal is not None:
            try:
                self.journal.emit(event)
            except OSError as e:
                raise EventLogWriteError(event_type, event.seq, e) from e
        self._next_seq += 1
        return event

    def _publish(self, event: RegistryEvent) -> None:
        """Fire-and-forget delivery to the sink and subscribers."""
        if self.sink is not None:
            try:
                self.sink.emit(event)
            except Exception:
                logger.exception("event sink failed for %s (seq=%d)", event.event_type, event.seq)

        for callback in self._subscribers:
            try:
                callback(event)
            except Exception:
                logger.exception("subscriber failed for %s (seq=%d)", event.event_type, event.seq)

    def _require_packet(self, packet_id: int) -> Packet:
        packet = self._packets.get(packet_id)
        if packet is None:
            raise PacketNotFound(packet_id)
        return packet
