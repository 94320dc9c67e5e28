"""
Unit ledger interface consumed by the registry.

The registry never holds balances itself. It asks a UnitLedger to move
reward units from the reward pool to a packet owner, acting as a
pre-approved spender of the pool's balance.

InMemoryUnitLedger is a deterministic stand-in used by tests and the local
CLI. It keeps balances and spender allowances and can be saved to a JSON
file between CLI invocations.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

logger = logging.getLogger(__name__)


@runtime_checkable
class UnitLedger(Protocol):
    """All-or-nothing authorized transfer from one account to another."""

    def transfer_authorized(self, source: str, destination: str, amount: int) -> bool:
        """Move `amount` units; return False (and change nothing) if declined."""
        ...


class InMemoryUnitLedger:
    """Balances plus allowances, keyed by account identifier."""

    def __init__(
        self,
        balances: dict[str, int] | None = None,
        allowances: dict[str, dict[str, int]] | None = None,
    ):
        self.balances: dict[str, int] = dict(balances or {})
        # owner -> spender -> remaining allowance
        self.allowances: dict[str, dict[str, int]] = {
            owner: dict(spenders) for owner, spenders in (allowances or {}).items()
        }
        self.frozen: set[str] = set()

    def balance_of(self, account: str) -> int:
        return self.balances.get(account, 0)

    def allowance(self, owner: str, spender: str) -> int:
        return self.allowances.get(owner, {}).get(spender, 0)

    def mint(self, account: str, amount: int) -> None:
        """Credit units out of thin air (local funding only)."""
        if amount <= 0:
            raise ValueError("amount must be positive")
        self.balances[account] = self.balance_of(account) + amount

    def approve(self, owner: str, spender: str, amount: int) -> None:
        """Set (not add to) how much `spender` may move out of `owner`."""
        if amount < 0:
            raise ValueError("allowance cannot be negative")
        self.allowances.setdefault(owner, {})[spender] = amount

    def freeze(self, account: str) -> None:
        self.frozen.add(account)

    def transfer_from(self, spender: str, source: str, destination: str, amount: int) -> bool:
        """
        Move units on behalf of `source`, consuming `spender`'s allowance.

        Returns False without changing anything when the source is frozen,
        the allowance is short, or the balance is short.
        """
        if amount <= 0:
            return False
        if source in self.frozen:
            logger.debug("transfer declined: %s is frozen", source)
            return False
        if self.allowance(source, spender) < amount:
            logger.debug("transfer declined: allowance %s->%s below %d", source, spender, amount)
            return False
        if self.balance_of(source) < amount:
            logger.debug("transfer declined: balance of %s below %d", source, amount)
            return False

        self.allowances[source][spender] -= amount
        self.balances[source] -= amount
        self.balances[destination] = self.balance_of(destination) + amount
        return True

    def as_spender(self, spender: str) -> SpenderLedger:
        """View of this ledger that performs transfers as `spender`."""
        return SpenderLedger(self, spender)

    def to_dict(self) -> dict[str, Any]:
        return {
            "balances": dict(sorted(self.balances.items())),
            "allowances": {o: dict(sorted(s.items())) for o, s in sorted(self.allowances.items())},
            "frozen": sorted(self.frozen),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> InMemoryUnitLedger:
        ledger = cls(
            balances={k: int(v) for k, v in data.get("balances", {}).items()},
            allowances={
                owner: {s: int(a) for s, a in spenders.items()}
                for owner, spenders in data.get("allowances", {}).items()
            },
        )
        ledger.frozen = set(data.get("frozen", []))
        return ledger

    @classmethod
    def load(cls, path: Path) -> InMemoryUnitLedger:
        """Load from a JSON file; a missing file gives an empty ledger."""
        if not path.exists():
            return cls()
        return cls.from_dict(json.loads(path.read_text(encoding="utf-8")))

    def save(self, path: Path) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(self.to_dict(), indent=2) + "\n", encoding="utf-8")


class SpenderLedger:
    """UnitLedger adapter binding an InMemoryUnitLedger to one spender."""

    def __init__(self, ledger: InMemoryUnitLedger, spender: str):
        self.ledger = ledger
        self.spender = spender

    def transfer_authorized(self, source: str, destination: str, amount: int) -> bool:
        return self.ledger.transfer_from(self.spender, source, destination, amount)
