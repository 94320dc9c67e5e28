"""Local unit-ledger commands (funding and allowances for the reward pool)."""

from __future__ import annotations

from rich.console import Console

from ..config import RegistryConfig
from ..ledger import InMemoryUnitLedger
from ..locking import state_lock


def run_ledger_fund(config: RegistryConfig, account: str, amount: int) -> int:
    err = Console(stderr=True)
    with state_lock(config.state_dir):
        units = InMemoryUnitLedger.load(config.ledger_path)
        try:
            units.mint(account, amount)
        except ValueError as e:
            err.print(str(e), style="bold red")
            return 1
        units.save(config.ledger_path)
    Console().print(f"{account} balance={units.balance_of(account)}")
    return 0


def run_ledger_approve(config: RegistryConfig, owner: str, spender: str | None, amount: int) -> int:
    """Set an allowance; the spender defaults to the configured registry account."""
    err = Console(stderr=True)
    spender = spender or config.registry_account
    with state_lock(config.state_dir):
        units = InMemoryUnitLedger.load(config.ledger_path)
        try:
            units.approve(owner, spender, amount)
        except ValueError as e:
            err.print(str(e), style="bold red")
            return 1
        units.save(config.ledger_path)
    Console().print(f"allowance {owner} -> {spender}={units.allowance(owner, spender)}")
    return 0


def run_ledger_balance(config: RegistryConfig, account: str) -> int:
    with state_lock(config.state_dir):
        units = InMemoryUnitLedger.load(config.ledger_path)
    console = Console()
    console.print(f"{account} balance={units.balance_of(account)}")
    allowance = units.allowance(account, config.registry_account)
    if allowance:
        console.print(f"  allowance to {config.registry_account}={allowance}", style="dim")
    return 0
