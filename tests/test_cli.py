"""
Tests for the packetreg CLI.

run_* functions are exercised directly with capsys; the click wiring
(config discovery, --as, exit codes) through CliRunner.
"""

from __future__ import annotations

import json
import threading
from pathlib import Path

import pytest
from click.testing import CliRunner

from packetreg.cli import cli
from packetreg.commands.ledger_cmd import run_ledger_approve, run_ledger_balance, run_ledger_fund
from packetreg.commands.packet_cmd import (
    run_distribute,
    run_events,
    run_history,
    run_list,
    run_register,
    run_set_reward,
    run_show,
    run_validate,
)
from packetreg.config import RegistryConfig
from packetreg.event_log import JsonlEventLog
from packetreg.events import PACKET_ADDED, RegistryEvent, create_event
from packetreg.ledger import InMemoryUnitLedger
from packetreg.locking import state_lock
from packetreg.models import compute_data_hash

ADMIN = "acct:admin"
ALICE = "acct:alice"
MALLORY = "acct:mallory"
POOL = "acct:pool"
REGISTRY_ACCOUNT = "acct:registry"


@pytest.fixture
def funded_config(config: RegistryConfig) -> RegistryConfig:
    assert run_ledger_fund(config, POOL, 1_000) == 0
    assert run_ledger_approve(config, POOL, None, 1_000) == 0
    return config


@pytest.fixture
def rewarded_config(funded_config: RegistryConfig) -> RegistryConfig:
    assert run_register(funded_config, ADMIN, ALICE, "weather", "csv", data_hash="h1") == 0
    assert run_validate(funded_config, ADMIN, 1) == 0
    assert run_set_reward(funded_config, ADMIN, 1, 100) == 0
    return funded_config


def test_register_and_show(config: RegistryConfig, capsys) -> None:
    assert run_register(config, ADMIN, ALICE, "weather", "csv", data_hash="h1") == 0
    assert "registered: packet 1" in capsys.readouterr().out

    assert run_show(config, "h1", output_json=True) == 0
    data = json.loads(capsys.readouterr().out)
    assert data["id"] == 1
    assert data["owner"] == ALICE
    assert data["validated"] is False


def test_register_from_file(config: RegistryConfig, tmp_path: Path, capsys) -> None:
    data_file = tmp_path / "data.csv"
    data_file.write_text("a,b\n1,2\n", encoding="utf-8")

    assert run_register(config, ADMIN, ALICE, "weather", "csv", file=data_file) == 0
    capsys.readouterr()
    assert run_show(config, compute_data_hash("a,b\n1,2\n"), output_json=True) == 0
    assert json.loads(capsys.readouterr().out)["id"] == 1


def test_register_needs_one_source(config: RegistryConfig, capsys) -> None:
    assert run_register(config, ADMIN, ALICE, "weather", "csv") == 1
    assert "exactly one of --hash or --file" in capsys.readouterr().err


def test_register_duplicate(config: RegistryConfig, capsys) -> None:
    run_register(config, ADMIN, ALICE, "weather", "csv", data_hash="h1")
    assert run_register(config, ADMIN, ALICE, "again", "csv", data_hash="h1") == 1
    assert "already exists" in capsys.readouterr().err


def test_unauthorized_caller(config: RegistryConfig, capsys) -> None:
    assert run_register(config, MALLORY, ALICE, "weather", "csv", data_hash="h1") == 1
    assert "not the administrator" in capsys.readouterr().err
    assert not config.event_log_path.exists()


def test_show_missing(config: RegistryConfig, capsys) -> None:
    assert run_show(config, "nope") == 1
    assert "Packet not found" in capsys.readouterr().err


def test_reward_requires_validation(funded_config: RegistryConfig, capsys) -> None:
    run_register(funded_config, ADMIN, ALICE, "weather", "csv", data_hash="h1")
    assert run_set_reward(funded_config, ADMIN, 1, 100) == 1
    assert "not validated" in capsys.readouterr().err


def test_distribute_persists_across_invocations(rewarded_config: RegistryConfig, capsys) -> None:
    assert run_distribute(rewarded_config, POOL, 1) == 0
    assert run_distribute(rewarded_config, POOL, 1) == 0
    assert "total=200" in capsys.readouterr().out

    units = InMemoryUnitLedger.load(rewarded_config.ledger_path)
    assert units.balance_of(ALICE) == 200
    assert units.balance_of(POOL) == 800

    assert run_validate(rewarded_config, ADMIN, 1, is_valid=False) == 0
    capsys.readouterr()
    assert run_show(rewarded_config, "h1", output_json=True) == 0
    data = json.loads(capsys.readouterr().out)
    assert data["reward"] == 0
    assert data["total_rewarded"] == 200


def test_distribute_declined(config: RegistryConfig, capsys) -> None:
    run_register(config, ADMIN, ALICE, "weather", "csv", data_hash="h1")
    run_validate(config, ADMIN, 1)
    run_set_reward(config, ADMIN, 1, 100)
    capsys.readouterr()

    assert run_distribute(config, POOL, 1) == 2
    assert "ledger declined" in capsys.readouterr().err
    assert JsonlEventLog(config.event_log_path).reward_flow() == []


def test_distribute_wrong_caller(rewarded_config: RegistryConfig, capsys) -> None:
    assert run_distribute(rewarded_config, ADMIN, 1) == 1
    assert "not the reward pool" in capsys.readouterr().err


def test_history_and_events(rewarded_config: RegistryConfig, capsys) -> None:
    run_distribute(rewarded_config, POOL, 1)
    capsys.readouterr()

    assert run_history(rewarded_config, 1, output_json=True) == 0
    events = json.loads(capsys.readouterr().out)
    assert [e["event_type"] for e in events] == [
        "packet.added",
        "packet.validated",
        "reward.set",
        "reward.distributed",
    ]

    assert run_history(rewarded_config, 1) == 0
    output = capsys.readouterr().out
    assert "Events: 4 total" in output
    assert "Distributed: 100" in output

    assert run_events(rewarded_config, event_type="reward.set", output_json=True) == 0
    assert len(json.loads(capsys.readouterr().out)) == 1

    assert run_events(rewarded_config, last_n=2) == 0
    assert "Events: 2 total" in capsys.readouterr().out


def test_history_missing_packet(config: RegistryConfig, capsys) -> None:
    assert run_history(config, 5) == 1
    assert "Packet not found: 5" in capsys.readouterr().err


def test_list(rewarded_config: RegistryConfig, capsys) -> None:
    run_register(rewarded_config, ADMIN, ALICE, "other", "json", data_hash="h2")
    capsys.readouterr()

    assert run_list(rewarded_config, output_json=True) == 0
    assert [p["id"] for p in json.loads(capsys.readouterr().out)] == [1, 2]

    assert run_list(rewarded_config, validated_only=True) == 0
    assert "Packets: 1 total" in capsys.readouterr().out


def test_ledger_commands(config: RegistryConfig, capsys) -> None:
    assert run_ledger_fund(config, POOL, 0) == 1
    assert run_ledger_fund(config, POOL, 50) == 0
    assert run_ledger_approve(config, POOL, None, 20) == 0
    capsys.readouterr()

    assert run_ledger_balance(config, POOL) == 0
    output = capsys.readouterr().out
    assert f"{POOL} balance=50" in output
    assert f"allowance to {REGISTRY_ACCOUNT}=20" in output


def _failing_append(self: JsonlEventLog, event: RegistryEvent) -> None:
    raise OSError("disk full")


def test_distribute_log_failure_keeps_ledger(
    rewarded_config: RegistryConfig, monkeypatch: pytest.MonkeyPatch, capsys
) -> None:
    capsys.readouterr()
    monkeypatch.setattr(JsonlEventLog, "append", _failing_append)
    assert run_distribute(rewarded_config, POOL, 1) == 1
    assert "reward.distributed" in capsys.readouterr().err
    monkeypatch.undo()

    units = InMemoryUnitLedger.load(rewarded_config.ledger_path)
    assert units.balance_of(ALICE) == 0
    assert units.balance_of(POOL) == 1_000

    assert run_show(rewarded_config, "h1", output_json=True) == 0
    assert json.loads(capsys.readouterr().out)["total_rewarded"] == 0


def test_register_log_failure_is_reported(
    config: RegistryConfig, monkeypatch: pytest.MonkeyPatch, capsys
) -> None:
    monkeypatch.setattr(JsonlEventLog, "append", _failing_append)
    assert run_register(config, ADMIN, ALICE, "weather", "csv", data_hash="h1") == 1
    assert "packet.added" in capsys.readouterr().err
    monkeypatch.undo()

    assert run_list(config, output_json=True) == 0
    assert json.loads(capsys.readouterr().out) == []


def test_concurrent_registrations_get_distinct_ids(config: RegistryConfig, capsys) -> None:
    results: list[int] = []

    def register(n: int) -> None:
        results.append(run_register(config, ADMIN, ALICE, f"p{n}", "csv", data_hash=f"h{n}"))

    threads = [threading.Thread(target=register, args=(n,)) for n in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    capsys.readouterr()

    assert results == [0] * 8
    assert run_list(config, output_json=True) == 0
    packets = json.loads(capsys.readouterr().out)
    assert [p["id"] for p in packets] == list(range(1, 9))
    assert {p["data_hash"] for p in packets} == {f"h{n}" for n in range(8)}


def test_writer_waits_for_state_lock(config: RegistryConfig, capsys) -> None:
    results: list[int] = []
    writer = threading.Thread(
        target=lambda: results.append(run_register(config, ADMIN, ALICE, "w", "csv", data_hash="h1"))
    )

    with state_lock(config.state_dir):
        writer.start()
        writer.join(timeout=0.3)
        assert writer.is_alive()
        assert not config.event_log_path.exists()

    writer.join()
    assert results == [0]


def test_corrupt_log_is_reported(config: RegistryConfig, capsys) -> None:
    added = {"owner": ALICE, "data_hash": "h1", "data_type": "csv", "name": "a"}
    JsonlEventLog(config.event_log_path).append_many([
        create_event(PACKET_ADDED, 1, ADMIN, seq=1, payload=added),
        create_event(PACKET_ADDED, 1, ADMIN, seq=2, payload={**added, "data_hash": "h2"}),
    ])

    assert run_list(config) == 1
    assert "replayed" in capsys.readouterr().err
    assert run_register(config, ADMIN, ALICE, "weather", "csv", data_hash="h3") == 1
    assert "replayed" in capsys.readouterr().err


def test_unreadable_log_line_is_reported(config: RegistryConfig, capsys) -> None:
    config.event_log_path.parent.mkdir(parents=True)
    config.event_log_path.write_text("not json\n", encoding="utf-8")

    assert run_events(config) == 1
    assert "replayed" in capsys.readouterr().err
    assert run_show(config, "h1") == 1
    assert "replayed" in capsys.readouterr().err


# -----------------------------------------------------------------------------
# click wiring
# -----------------------------------------------------------------------------


def _write_config(tmp_path: Path) -> Path:
    path = tmp_path / "packetreg.toml"
    path.write_text(
        f'administrator = "{ADMIN}"\n'
        f'reward_pool = "{POOL}"\n'
        f'registry_account = "{REGISTRY_ACCOUNT}"\n',
        encoding="utf-8",
    )
    return path


def test_cli_lifecycle(tmp_path: Path) -> None:
    cfg = str(_write_config(tmp_path))
    runner = CliRunner()

    def run(*args: str):
        return runner.invoke(cli, ["-c", cfg, *args], env={"PACKETREG_CALLER": None})

    assert run("ledger", "fund", POOL, "500").exit_code == 0
    assert run("ledger", "approve", POOL, "500").exit_code == 0
    result = run("--as", ADMIN, "register", ALICE, "weather", "--hash", "h1", "--type", "csv")
    assert result.exit_code == 0, result.output
    assert run("--as", ADMIN, "validate", "1").exit_code == 0
    assert run("--as", ADMIN, "reward", "1", "50").exit_code == 0
    assert run("--as", POOL, "distribute", "1").exit_code == 0

    result = run("show", "h1", "--json")
    assert result.exit_code == 0
    assert json.loads(result.output)["total_rewarded"] == 50

    result = run("--as", ADMIN, "validate", "1", "--revoke")
    assert result.exit_code == 0
    assert json.loads(run("show", "h1", "--json").output)["reward"] == 0


def test_cli_requires_caller_for_writes(tmp_path: Path) -> None:
    cfg = str(_write_config(tmp_path))
    result = CliRunner().invoke(
        cli, ["-c", cfg, "register", ALICE, "w", "--hash", "h1", "--type", "csv"], env={"PACKETREG_CALLER": None}
    )
    assert result.exit_code == 2
    assert "Caller identity required" in result.output


def test_cli_caller_from_env(tmp_path: Path) -> None:
    cfg = str(_write_config(tmp_path))
    result = CliRunner().invoke(
        cli, ["-c", cfg, "register", ALICE, "w", "--hash", "h1", "--type", "csv"], env={"PACKETREG_CALLER": ADMIN}
    )
    assert result.exit_code == 0, result.output


def test_cli_missing_config(tmp_path: Path) -> None:
    result = CliRunner().invoke(cli, ["-c", str(tmp_path / "nope.toml"), "list"])
    assert result.exit_code == 1
    assert "config not found" in result.output


def test_cli_init(tmp_path: Path) -> None:
    target = tmp_path / "packetreg.toml"
    result = CliRunner().invoke(
        cli, ["init", "--administrator", ADMIN, "--reward-pool", POOL, "--path", str(target)]
    )
    assert result.exit_code == 0, result.output
    assert target.exists()

    result = CliRunner().invoke(cli, ["-c", str(target), "list", "--json"])
    assert result.exit_code == 0
    assert json.loads(result.output) == []
