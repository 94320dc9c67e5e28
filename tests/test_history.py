from __future__ import annotations

from pathlib import Path

import pytest

from packetreg.errors import EventLogCorrupt, RegistryError
from packetreg.event_log import JsonlEventLog
from packetreg.events import PACKET_ADDED, PACKET_VALIDATED, REWARD_SET, create_event
from packetreg.history import administrator_from_events, fold_events, packet_timeline
from packetreg.ledger import InMemoryUnitLedger
from packetreg.registry import PacketRegistry
from packetreg.sinks import MemorySink

ADMIN = "acct:admin"
ALICE = "acct:alice"
POOL = "acct:pool"
REGISTRY_ACCOUNT = "acct:registry"


def _drive(registry: PacketRegistry) -> None:
    a = registry.register_packet(ADMIN, ALICE, "a", "h1", "csv")
    b = registry.register_packet(ADMIN, "acct:bob", "b", "h2", "json")
    registry.set_validated(ADMIN, a.id, True)
    registry.set_reward(ADMIN, a.id, 100)
    registry.distribute_packet_reward(POOL, a.id)
    registry.distribute_packet_reward(POOL, a.id)
    registry.set_validated(ADMIN, a.id, False)
    registry.set_validated(ADMIN, b.id, True)
    registry.set_reward(ADMIN, b.id, 7)


def test_fold_matches_live_state(registry: PacketRegistry, sink: MemorySink) -> None:
    _drive(registry)

    folded = fold_events(sink.events)

    assert list(folded) == [1, 2]
    assert [folded[i] for i in folded] == registry.packets()
    assert folded[1].total_rewarded == 200
    assert folded[1].reward == 0
    assert folded[2].reward == 7


def test_fold_rejects_orphan_event() -> None:
    event = create_event(PACKET_VALIDATED, 5, ADMIN, payload={"id": 5, "is_valid": True})
    with pytest.raises(ValueError, match="must be packet.added"):
        fold_events([event])


def test_packet_timeline(registry: PacketRegistry, sink: MemorySink) -> None:
    _drive(registry)
    timeline = packet_timeline(sink.events, 2)
    assert [e.event_type for e in timeline] == ["packet.added", PACKET_VALIDATED, REWARD_SET]


def test_administrator_from_events(registry: PacketRegistry, sink: MemorySink) -> None:
    registry.transfer_administration(ADMIN, "acct:second")
    registry.transfer_administration("acct:second", "acct:third")
    assert administrator_from_events(sink.events, ADMIN) == "acct:third"
    assert administrator_from_events([], ADMIN) == ADMIN


def test_restore_resumes_sequences(tmp_path: Path, units: InMemoryUnitLedger) -> None:
    log = JsonlEventLog(tmp_path / "events.jsonl")
    first = PacketRegistry.from_event_log(units.as_spender(REGISTRY_ACCOUNT), POOL, ADMIN, log)
    _drive(first)
    first.transfer_administration(ADMIN, "acct:next")

    second = PacketRegistry.from_event_log(
        units.as_spender(REGISTRY_ACCOUNT), POOL, ADMIN, JsonlEventLog(log.path)
    )

    assert second.packets() == first.packets()
    assert second.administrator == "acct:next"
    assert second.next_id == 3
    assert second.lookup_by_hash("h2").id == 2

    packet = second.register_packet("acct:next", ALICE, "c", "h3", "csv")
    assert packet.id == 3
    seqs = [e.seq for e in JsonlEventLog(log.path).iter_events()]
    assert seqs == list(range(1, len(seqs) + 1))


def test_restore_does_not_emit_or_pay(units: InMemoryUnitLedger, sink: MemorySink) -> None:
    source = MemorySink()
    registry = PacketRegistry(units.as_spender(REGISTRY_ACCOUNT), POOL, ADMIN, sink=source)
    _drive(registry)
    balance = units.balance_of(ALICE)

    replica = PacketRegistry(units.as_spender(REGISTRY_ACCOUNT), POOL, ADMIN, sink=sink)
    replica.restore(source.events)

    assert len(sink) == 0
    assert units.balance_of(ALICE) == balance


def test_restore_rejects_non_empty(registry: PacketRegistry, sink: MemorySink) -> None:
    registry.register_packet(ADMIN, ALICE, "a", "h1", "csv")
    with pytest.raises(RegistryError, match="empty registry"):
        registry.restore(sink.events)


def test_from_event_log_rejects_duplicate_ids(tmp_path: Path, units: InMemoryUnitLedger) -> None:
    log = JsonlEventLog(tmp_path / "events.jsonl")
    added = {"owner": ALICE, "data_hash": "h1", "data_type": "csv", "name": "a"}
    log.append_many([
        create_event(PACKET_ADDED, 1, ADMIN, seq=1, payload=added),
        create_event(PACKET_ADDED, 1, ADMIN, seq=2, payload={**added, "data_hash": "h2"}),
    ])

    with pytest.raises(EventLogCorrupt, match="added twice") as excinfo:
        PacketRegistry.from_event_log(units.as_spender(REGISTRY_ACCOUNT), POOL, ADMIN, log)
    assert excinfo.value.path == log.path
