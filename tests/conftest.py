"""Pytest configuration and fixtures."""

from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from packetreg.config import RegistryConfig
from packetreg.ledger import InMemoryUnitLedger
from packetreg.registry import PacketRegistry
from packetreg.sinks import MemorySink

ADMIN = "acct:admin"
POOL = "acct:pool"
REGISTRY_ACCOUNT = "acct:registry"
ALICE = "acct:alice"
MALLORY = "acct:mallory"


class StepClock:
    """Deterministic clock advancing one second per call."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2026, 1, 1, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        current = self.now
        self.now = current + timedelta(seconds=1)
        return current


@pytest.fixture
def units() -> InMemoryUnitLedger:
    """Ledger with a funded pool that has approved the registry account."""
    ledger = InMemoryUnitLedger()
    ledger.mint(POOL, 10_000)
    ledger.approve(POOL, REGISTRY_ACCOUNT, 10_000)
    return ledger


@pytest.fixture
def sink() -> MemorySink:
    return MemorySink()


@pytest.fixture
def registry(units: InMemoryUnitLedger, sink: MemorySink) -> PacketRegistry:
    return PacketRegistry(
        units.as_spender(REGISTRY_ACCOUNT),
        POOL,
        ADMIN,
        sink=sink,
        clock=StepClock(),
    )


@pytest.fixture
def config(tmp_path: Path) -> RegistryConfig:
    """Config pointing at a fresh state dir under tmp_path."""
    return RegistryConfig(
        administrator=ADMIN,
        reward_pool=POOL,
        registry_account=REGISTRY_ACCOUNT,
        state_dir=tmp_path / ".packetreg",
    )
