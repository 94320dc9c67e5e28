"""CLI entrypoint for packetreg."""

import logging
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler

from . import __version__
from .config import CONFIG_FILENAME, RegistryConfig, find_config, load_config
from .errors import ConfigError
from .events import EVENT_TYPES


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def _config(ctx: click.Context) -> RegistryConfig:
    return ctx.obj["config"]


def _caller(ctx: click.Context) -> str:
    caller = ctx.obj.get("caller")
    if not caller:
        raise click.UsageError("Caller identity required. Pass --as ACCOUNT or set PACKETREG_CALLER.")
    return caller


@click.group()
@click.version_option(__version__, prog_name="packetreg")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help=f"Path to {CONFIG_FILENAME} (defaults to the nearest one above the working directory)",
)
@click.option(
    "--as",
    "caller",
    envvar="PACKETREG_CALLER",
    default=None,
    metavar="ACCOUNT",
    help="Account identity performing the operation",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default=None,
    help="Override the configured log level",
)
@click.pass_context
def cli(ctx: click.Context, config_path: Path | None, caller: str | None, log_level: str | None) -> None:
    """packetreg - Data packet registry with validation and reward payouts.

    Register packets, validate them, set rewards, and distribute rewards
    from the reward pool to packet owners.
    """
    ctx.ensure_object(dict)
    ctx.obj["caller"] = caller

    if ctx.invoked_subcommand == "init":
        _configure_logging((log_level or "WARNING").upper())
        return

    if config_path is None:
        config_path = find_config(Path.cwd())
        if config_path is None:
            raise click.ClickException(
                f"{CONFIG_FILENAME} not found. Pass --config PATH or run `packetreg init`."
            )

    try:
        config = load_config(config_path)
    except ConfigError as e:
        raise click.ClickException(str(e)) from e

    _configure_logging((log_level or config.log_level).upper())
    ctx.obj["config"] = config


@cli.command()
@click.option("--administrator", required=True, help="Initial administrator account")
@click.option("--reward-pool", required=True, help="Reward pool account")
@click.option("--registry-account", default="registry", show_default=True, help="Spender identity on the ledger")
@click.option(
    "--path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=Path(CONFIG_FILENAME),
    show_default=True,
    help="Where to write the config file",
)
def init(administrator: str, reward_pool: str, registry_account: str, path: Path) -> None:
    """Write a packetreg.toml template."""
    from .config import write_config_template

    try:
        write_config_template(
            path,
            administrator=administrator,
            reward_pool=reward_pool,
            registry_account=registry_account,
        )
    except ConfigError as e:
        raise click.ClickException(str(e)) from e
    click.echo(f"wrote {path}")


# -----------------------------------------------------------------------------
# Packet lifecycle
# -----------------------------------------------------------------------------


@cli.command()
@click.argument("owner")
@click.argument("name")
@click.option("--hash", "data_hash", default=None, help="Content fingerprint of the packet data")
@click.option(
    "--file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="Hash this file (sha256) instead of passing --hash",
)
@click.option("--type", "data_type", required=True, help="Data type label")
@click.pass_context
def register(
    ctx: click.Context,
    owner: str,
    name: str,
    data_hash: str | None,
    file: Path | None,
    data_type: str,
) -> None:
    """Register a packet for OWNER (administrator only).

    Examples:

        packetreg --as acct:admin register acct:alice weather --hash abc123 --type csv

        packetreg --as acct:admin register acct:alice weather --file data.csv --type csv
    """
    from .commands.packet_cmd import run_register

    sys.exit(run_register(_config(ctx), _caller(ctx), owner, name, data_type, data_hash=data_hash, file=file))


@cli.command()
@click.argument("packet_id", type=int)
@click.option("--revoke", is_flag=True, help="Mark the packet invalid (clears its pending reward)")
@click.pass_context
def validate(ctx: click.Context, packet_id: int, revoke: bool) -> None:
    """Set the validation flag of a packet (administrator only)."""
    from .commands.packet_cmd import run_validate

    sys.exit(run_validate(_config(ctx), _caller(ctx), packet_id, is_valid=not revoke))


@cli.command()
@click.argument("packet_id", type=int)
@click.argument("amount", type=int)
@click.pass_context
def reward(ctx: click.Context, packet_id: int, amount: int) -> None:
    """Set the per-distribution reward of a validated packet (administrator only)."""
    from .commands.packet_cmd import run_set_reward

    sys.exit(run_set_reward(_config(ctx), _caller(ctx), packet_id, amount))


@cli.command()
@click.argument("packet_id", type=int)
@click.pass_context
def distribute(ctx: click.Context, packet_id: int) -> None:
    """Pay a packet's reward to its owner (reward pool only).

    Exits 2 if the ledger declined the transfer; nothing is recorded then.
    """
    from .commands.packet_cmd import run_distribute

    sys.exit(run_distribute(_config(ctx), _caller(ctx), packet_id))


# -----------------------------------------------------------------------------
# Queries
# -----------------------------------------------------------------------------


@cli.command()
@click.argument("data_hash")
@click.option("--json", "output_json", is_flag=True, help="Output as JSON")
@click.pass_context
def show(ctx: click.Context, data_hash: str, output_json: bool) -> None:
    """Look up a packet by its data hash."""
    from .commands.packet_cmd import run_show

    sys.exit(run_show(_config(ctx), data_hash, output_json=output_json))


@cli.command("list")
@click.option("--validated", "validated_only", is_flag=True, help="Only validated packets")
@click.option("--json", "output_json", is_flag=True, help="Output as JSON")
@click.pass_context
def list_packets(ctx: click.Context, validated_only: bool, output_json: bool) -> None:
    """List registered packets."""
    from .commands.packet_cmd import run_list

    sys.exit(run_list(_config(ctx), validated_only=validated_only, output_json=output_json))


@cli.command()
@click.argument("packet_id", type=int)
@click.option("--json", "output_json", is_flag=True, help="Output as JSON")
@click.pass_context
def history(ctx: click.Context, packet_id: int, output_json: bool) -> None:
    """Show the event history of one packet."""
    from .commands.packet_cmd import run_history

    sys.exit(run_history(_config(ctx), packet_id, output_json=output_json))


@cli.command()
@click.option("--packet", "packet_id", type=int, default=None, help="Only events for this packet")
@click.option("--type", "event_type", type=click.Choice(sorted(EVENT_TYPES)), default=None, help="Only this event type")
@click.option("--last", "last_n", type=int, default=None, help="Show only the last N events")
@click.option("--json", "output_json", is_flag=True, help="Output as JSON")
@click.pass_context
def events(
    ctx: click.Context,
    packet_id: int | None,
    event_type: str | None,
    last_n: int | None,
    output_json: bool,
) -> None:
    """Read the registry event log.

    Examples:

        packetreg events --last 10

        packetreg events --type reward.distributed --json
    """
    from .commands.packet_cmd import run_events

    sys.exit(
        run_events(
            _config(ctx),
            packet_id=packet_id,
            event_type=event_type,
            last_n=last_n,
            output_json=output_json,
        )
    )


# -----------------------------------------------------------------------------
# Local unit ledger
# -----------------------------------------------------------------------------


@cli.group()
def ledger() -> None:
    """Fund accounts and manage allowances on the local unit ledger."""


@ledger.command("fund")
@click.argument("account")
@click.argument("amount", type=int)
@click.pass_context
def ledger_fund(ctx: click.Context, account: str, amount: int) -> None:
    """Credit AMOUNT units to ACCOUNT."""
    from .commands.ledger_cmd import run_ledger_fund

    sys.exit(run_ledger_fund(_config(ctx), account, amount))


@ledger.command("approve")
@click.argument("owner")
@click.argument("amount", type=int)
@click.option("--spender", default=None, help="Spender account (defaults to the registry account)")
@click.pass_context
def ledger_approve(ctx: click.Context, owner: str, amount: int, spender: str | None) -> None:
    """Allow the registry to move up to AMOUNT units out of OWNER."""
    from .commands.ledger_cmd import run_ledger_approve

    sys.exit(run_ledger_approve(_config(ctx), owner, spender, amount))


@ledger.command("balance")
@click.argument("account")
@click.pass_context
def ledger_balance(ctx: click.Context, account: str) -> None:
    """Show the balance of ACCOUNT."""
    from .commands.ledger_cmd import run_ledger_balance

    sys.exit(run_ledger_balance(_config(ctx), account))


def main() -> None:
    """Main entrypoint."""
    cli()


if __name__ == "__main__":
    main()
