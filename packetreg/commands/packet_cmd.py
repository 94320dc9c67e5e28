"""
Packet registry CLI commands.

Every command runs inside a session: the state directory lock is held while
the registry is replayed from events.jsonl, changed, journaled and (for
distributions) while ledger.json is saved.
"""

from __future__ import annotations

import json
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator

from rich.console import Console
from rich.table import Table

from ..config import RegistryConfig
from ..errors import EventLogCorrupt, RegistryError
from ..event_log import JsonlEventLog
from ..events import (
    ADMIN_TRANSFERRED,
    PACKET_ADDED,
    PACKET_VALIDATED,
    REWARD_DISTRIBUTED,
    REWARD_SET,
    RegistryEvent,
)
from ..ledger import InMemoryUnitLedger
from ..locking import state_lock
from ..models import Packet, hash_file
from ..registry import PacketRegistry


class _Session:
    """Registry restored from the event log plus the local unit ledger."""

    def __init__(self, config: RegistryConfig):
        self.config = config
        self.log = JsonlEventLog(config.event_log_path)
        self.units = InMemoryUnitLedger.load(config.ledger_path)
        self.registry = PacketRegistry.from_event_log(
            self.units.as_spender(config.registry_account),
            config.reward_pool,
            config.administrator,
            self.log,
        )

    def save_ledger(self) -> None:
        self.units.save(self.config.ledger_path)


@contextmanager
def _session(config: RegistryConfig) -> Iterator[_Session]:
    with state_lock(config.state_dir):
        yield _Session(config)


def _packet_table(title: str, packets: list[Packet]) -> Table:
    table = Table(title=title)
    table.add_column("id", style="cyan", no_wrap=True)
    table.add_column("name")
    table.add_column("owner", style="magenta")
    table.add_column("type")
    table.add_column("validated")
    table.add_column("reward", justify="right")
    table.add_column("total_rewarded", justify="right")
    table.add_column("data_hash", style="dim")

    for p in packets:
        table.add_row(
            str(p.id),
            p.name,
            p.owner,
            p.data_type,
            "yes" if p.validated else "no",
            str(p.reward),
            str(p.total_rewarded),
            (p.data_hash[:12] + "…") if len(p.data_hash) > 12 else p.data_hash,
        )
    return table


def _format_event_details(event: RegistryEvent) -> str:
    payload = event.payload
    if event.event_type == PACKET_ADDED:
        return f"owner={payload.get('owner')} hash={payload.get('data_hash')} type={payload.get('data_type')}"
    if event.event_type == PACKET_VALIDATED:
        return f"is_valid={payload.get('is_valid')}"
    if event.event_type in (REWARD_SET, REWARD_DISTRIBUTED):
        return f"reward={payload.get('reward')}"
    if event.event_type == ADMIN_TRANSFERRED:
        return f"{payload.get('previous')} -> {payload.get('current')}"
    return json.dumps(dict(payload), sort_keys=True)


def _events_table(title: str, events: list[RegistryEvent]) -> Table:
    table = Table(title=title)
    table.add_column("seq", style="dim", justify="right")
    table.add_column("Timestamp", style="dim")
    table.add_column("Event Type", style="cyan")
    table.add_column("packet")
    table.add_column("actor", style="magenta")
    table.add_column("Details")

    for event in events:
        table.add_row(
            str(event.seq),
            event.timestamp.strftime("%Y-%m-%d %H:%M:%S"),
            event.event_type,
            str(event.packet_id) if event.packet_id is not None else "",
            event.actor,
            _format_event_details(event),
        )
    return table


def run_register(
    config: RegistryConfig,
    caller: str,
    owner: str,
    name: str,
    data_type: str,
    *,
    data_hash: str | None = None,
    file: Path | None = None,
) -> int:
    err = Console(stderr=True)
    if (data_hash is None) == (file is None):
        err.print("Error: pass exactly one of --hash or --file", style="bold red")
        return 1
    if file is not None:
        data_hash = hash_file(file)
    assert data_hash is not None

    try:
        with _session(config) as session:
            packet = session.registry.register_packet(caller, owner, name, data_hash, data_type)
    except RegistryError as e:
        err.print(str(e), style="bold red")
        return 1

    Console().print(f"registered: packet {packet.id} ({packet.data_hash})", style="green")
    return 0


def run_validate(config: RegistryConfig, caller: str, packet_id: int, *, is_valid: bool = True) -> int:
    err = Console(stderr=True)
    try:
        with _session(config) as session:
            packet = session.registry.set_validated(caller, packet_id, is_valid)
    except RegistryError as e:
        err.print(str(e), style="bold red")
        return 1

    state = "validated" if packet.validated else "invalidated"
    Console().print(f"{state}: packet {packet.id}", style="green")
    return 0


def run_set_reward(config: RegistryConfig, caller: str, packet_id: int, amount: int) -> int:
    err = Console(stderr=True)
    try:
        with _session(config) as session:
            packet = session.registry.set_reward(caller, packet_id, amount)
    except RegistryError as e:
        err.print(str(e), style="bold red")
        return 1

    Console().print(f"reward set: packet {packet.id} -> {packet.reward}", style="green")
    return 0


def run_distribute(config: RegistryConfig, caller: str, packet_id: int) -> int:
    """
    Distribute once. Exit code 2 means the ledger declined the transfer.

    ledger.json is saved only after the distribution event is in the log.
    """
    err = Console(stderr=True)
    try:
        with _session(config) as session:
            paid = session.registry.distribute_packet_reward(caller, packet_id)
            if paid:
                session.save_ledger()
            packet = session.registry.get_packet(packet_id)
    except RegistryError as e:
        err.print(str(e), style="bold red")
        return 1

    if not paid:
        err.print(
            f"ledger declined transfer for packet {packet_id} (check pool balance and allowance)",
            style="yellow",
        )
        return 2

    assert packet is not None
    Console().print(
        f"distributed: packet {packet.id} reward={packet.reward} total={packet.total_rewarded}",
        style="green",
    )
    return 0


def run_show(config: RegistryConfig, data_hash: str, *, output_json: bool = False) -> int:
    err = Console(stderr=True)
    try:
        with _session(config) as session:
            packet = session.registry.lookup_by_hash(data_hash)
    except RegistryError as e:
        err.print(str(e), style="bold red")
        return 1

    if output_json:
        print(json.dumps(packet.to_dict(), indent=2, sort_keys=True))
        return 0

    Console().print(_packet_table(f"Packet {packet.id}", [packet]))
    return 0


def run_list(config: RegistryConfig, *, validated_only: bool = False, output_json: bool = False) -> int:
    try:
        with _session(config) as session:
            packets = session.registry.packets()
    except RegistryError as e:
        Console(stderr=True).print(str(e), style="bold red")
        return 1

    if validated_only:
        packets = [p for p in packets if p.validated]

    if output_json:
        print(json.dumps([p.to_dict() for p in packets], indent=2))
        return 0

    console = Console()
    console.print(_packet_table("Packets", packets))
    console.print(f"\nPackets: {len(packets)} total")
    return 0


def run_history(config: RegistryConfig, packet_id: int, *, output_json: bool = False) -> int:
    """Show the audit trail for one packet."""
    err = Console(stderr=True)
    try:
        with _session(config) as session:
            if session.registry.get_packet(packet_id) is None:
                err.print(f"Packet not found: {packet_id}", style="bold red")
                return 1
            events = session.log.events_for(packet_id)
            distributed = session.log.total_distributed(packet_id)
    except RegistryError as e:
        err.print(str(e), style="bold red")
        return 1

    if output_json:
        print(json.dumps([e.to_dict() for e in events], indent=2))
        return 0

    console = Console()
    console.print(_events_table(f"History: packet {packet_id}", events))
    console.print(f"\nEvents: {len(events)} total")
    console.print(f"Distributed: {distributed}")
    return 0


def run_events(
    config: RegistryConfig,
    *,
    packet_id: int | None = None,
    event_type: str | None = None,
    last_n: int | None = None,
    output_json: bool = False,
) -> int:
    log = JsonlEventLog(config.event_log_path)
    try:
        with state_lock(config.state_dir):
            events = log.query(packet_id=packet_id, event_type=event_type)
    except (ValueError, KeyError) as e:
        Console(stderr=True).print(str(EventLogCorrupt(log.path, e)), style="bold red")
        return 1

    if last_n is not None and last_n > 0:
        events = events[-last_n:]

    if output_json:
        data: list[dict[str, Any]] = [e.to_dict() for e in events]
        print(json.dumps(data, indent=2))
        return 0

    console = Console()
    console.print(_events_table("Events", events))
    console.print(f"\nEvents: {len(events)} total")
    return 0
