"""CLI entry point for buildmode.

Invoked as::

    buildmode [OPTIONS] COMMAND [ARGS]...

or, during development::

    python -m buildmode.cli.main

Commands
--------
- version          — Show version information
- config validate  — Load a settings file and report rejected entries
- policy check     — Classify one item against a settings file
- snapshot list    — List persisted sessions, cooldowns and pending restores
- snapshot show    — Show one persisted session
"""
from __future__ import annotations

import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, NoReturn

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

if TYPE_CHECKING:
    from buildmode.config import Settings
    from buildmode.session.serializer import SnapshotDocument

console = Console()


def _fail(message: str) -> NoReturn:
    console.print(f"[red]{escape(message)}[/red]")
    sys.exit(1)


def _load_settings_or_exit(path: str | None) -> Settings:
    """Load settings from ``path`` (defaults when None), exiting on error."""
    from buildmode.config import Settings, SettingsError, load_settings

    if path is None:
        return Settings()
    try:
        return load_settings(path)
    except SettingsError as exc:
        _fail(str(exc))


def _read_catalog(path: str) -> list[str]:
    """Return the item types listed in ``path``, skipping blanks and # comments."""
    try:
        lines = Path(path).read_text(encoding="utf-8").splitlines()
    except OSError as exc:
        _fail(f"Cannot read catalog {path}: {exc}")
    return [
        line.strip()
        for line in lines
        if line.strip() and not line.lstrip().startswith("#")
    ]


def _format_remaining(seconds: int) -> str:
    if seconds < 0:
        return "unlimited"
    minutes, secs = divmod(seconds, 60)
    return f"{minutes:02d}:{secs:02d}"


def _format_timestamp(epoch_ms: int) -> str:
    moment = datetime.fromtimestamp(epoch_ms / 1000, tz=timezone.utc)
    return moment.strftime("%Y-%m-%d %H:%M:%S UTC")


# ---------------------------------------------------------------------------
# Root group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(package_name="buildmode")
@click.option(
    "--log-level",
    default="WARNING",
    show_default=True,
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    help="Logging verbosity.",
)
def cli(log_level: str) -> None:
    """Time-boxed build sessions with state snapshots"""
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format="%(levelname)s %(name)s: %(message)s",
    )


@cli.command(name="version")
def version_command() -> None:
    """Show version information."""
    from buildmode import __version__

    console.print(f"[bold]buildmode[/bold] v{__version__}")


# ---------------------------------------------------------------------------
# config
# ---------------------------------------------------------------------------


@cli.group(name="config")
def config_group() -> None:
    """Configuration commands."""


@config_group.command(name="validate")
@click.argument("path", type=click.Path(dir_okay=False))
@click.option(
    "--catalog",
    "catalog_path",
    default=None,
    type=click.Path(exists=True, dir_okay=False),
    help="File listing known item types, one per line; unknown entries are rejected.",
)
def config_validate(path: str, catalog_path: str | None) -> None:
    """Load the settings file at PATH and report rejected policy entries.

    Without --catalog only the identifier syntax is checked.  Exits with
    status 1 if the file cannot be loaded or any entry was rejected.
    """
    from buildmode.policy.engine import PolicyEngine

    settings = _load_settings_or_exit(path)
    catalog = _read_catalog(catalog_path) if catalog_path else None
    engine = PolicyEngine.from_settings(settings, catalog=catalog)
    config = engine.config

    table = Table(title="Build-mode settings", show_lines=False)
    table.add_column("Setting", style="bold cyan")
    table.add_column("Value")
    table.add_row("restriction-mode", config.mode.value)
    table.add_row("blacklist", str(len(config.blacklist)))
    table.add_row("whitelist", str(len(config.whitelist)))
    table.add_row("build-duration-minutes", str(settings.build_duration_minutes))
    table.add_row("cooldown-minutes", str(settings.cooldown_minutes))
    table.add_row("check-interval-seconds", str(settings.check_interval_seconds))
    table.add_row("storage", settings.storage)
    table.add_row(
        "catalog",
        f"{len(catalog)} item type(s)" if catalog is not None else "[dim]not checked[/dim]",
    )
    console.print(table)

    if config.errors:
        console.print(f"\n[yellow]{len(config.errors)} rejected entries:[/yellow]")
        for error in config.errors:
            console.print(f"  [red]✗[/red] {escape(repr(error.entry))}: {escape(error.reason)}")
        sys.exit(1)
    console.print("\n[green]Configuration OK[/green]")


# ---------------------------------------------------------------------------
# policy
# ---------------------------------------------------------------------------


@cli.group(name="policy")
def policy_group() -> None:
    """Item policy commands."""


@policy_group.command(name="check")
@click.argument("path", type=click.Path(dir_okay=False))
@click.argument("item_type")
@click.option(
    "--enchant",
    "enchants",
    multiple=True,
    metavar="NAME=LEVEL",
    help="Enchantment carried by the item (repeatable).",
)
@click.option("--name", "display_name", default=None, help="Custom display name.")
@click.option("--lore", multiple=True, help="Lore line (repeatable).")
def policy_check(
    path: str,
    item_type: str,
    enchants: tuple[str, ...],
    display_name: str | None,
    lore: tuple[str, ...],
) -> None:
    """Classify ITEM_TYPE against the policy in the settings file at PATH."""
    from buildmode.policy.engine import PolicyEngine
    from buildmode.session.state import ItemStack

    enchantments: dict[str, int] = {}
    for raw in enchants:
        name, sep, level = raw.partition("=")
        if not sep or not name:
            _fail(f"Invalid --enchant value {raw!r}; expected NAME=LEVEL")
        try:
            enchantments[name] = int(level)
        except ValueError:
            _fail(f"Invalid enchantment level in {raw!r}")

    settings = _load_settings_or_exit(path)
    engine = PolicyEngine.from_settings(settings)
    item = ItemStack(
        type=item_type,
        enchantments=enchantments,
        display_name=display_name,
        lore=list(lore),
    )
    if engine.is_legal(item):
        console.print(f"[green]LEGAL[/green] {item_type}")
    else:
        console.print(f"[red]ILLEGAL[/red] {item_type}")
        sys.exit(3)


# ---------------------------------------------------------------------------
# snapshot
# ---------------------------------------------------------------------------


@cli.group(name="snapshot")
@click.option(
    "--config",
    "config_path",
    default=None,
    type=click.Path(dir_okay=False),
    help="Settings file naming the storage backend.",
)
@click.pass_context
def snapshot_group(ctx: click.Context, config_path: str | None) -> None:
    """Inspect persisted build sessions."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path


def _load_document(ctx: click.Context) -> SnapshotDocument:
    """Read the snapshot named by the group's ``--config``, exiting on error."""
    from buildmode.config import make_backend
    from buildmode.session.repository import PersistenceIOError, SnapshotRepository
    from buildmode.session.serializer import SnapshotSerializer

    settings = _load_settings_or_exit(ctx.obj["config_path"])
    repository = SnapshotRepository(
        make_backend(settings),
        SnapshotSerializer(settings.storage_format),
    )
    try:
        return repository.load()
    except PersistenceIOError as exc:
        _fail(str(exc))


@snapshot_group.command(name="list")
@click.pass_context
def snapshot_list(ctx: click.Context) -> None:
    """List persisted sessions with their remaining time."""
    from buildmode.host import system_clock

    document = _load_document(ctx)
    now = system_clock()

    if not document.sessions:
        console.print("[yellow]No persisted sessions.[/yellow]")
    else:
        table = Table(title="Persisted sessions", show_lines=False)
        table.add_column("User", style="cyan")
        table.add_column("Prior mode", style="green")
        table.add_column("Items", justify="right")
        table.add_column("Remaining", justify="right")
        for user_id, session in document.sessions.items():
            remaining = session.remaining_ms(now)
            if remaining is None:
                remaining_text = _format_remaining(-1)
            elif remaining == 0:
                remaining_text = "[red]expired[/red]"
            else:
                remaining_text = _format_remaining(remaining // 1000)
            table.add_row(
                user_id,
                session.prior_mode.value,
                str(session.saved_state.item_count()),
                remaining_text,
            )
        console.print(table)

    console.print(
        f"\n[dim]{len(document.cooldowns)} cooldown record(s), "
        f"{len(document.pending)} pending restore(s), "
        f"{len(document.skipped)} skipped record(s).[/dim]"
    )


@snapshot_group.command(name="show")
@click.argument("user_id")
@click.option("--json-output", is_flag=True, help="Output raw JSON instead of formatted view.")
@click.pass_context
def snapshot_show(ctx: click.Context, user_id: str, json_output: bool) -> None:
    """Show the persisted session of USER_ID."""
    document = _load_document(ctx)
    session = document.sessions.get(user_id)
    if session is None:
        _fail(f"No persisted session for {user_id}")

    if json_output:
        console.print_json(session.model_dump_json(indent=2))
        return

    table = Table(title=f"Session {user_id}", show_lines=True)
    table.add_column("Field", style="bold cyan")
    table.add_column("Value")
    table.add_row("start_time", _format_timestamp(session.start_time))
    table.add_row(
        "end_time",
        "unlimited" if session.end_time is None else _format_timestamp(session.end_time),
    )
    table.add_row("prior_mode", session.prior_mode.value)
    state = session.saved_state
    table.add_row("inventory", str(sum(1 for slot in state.primary if slot is not None)))
    table.add_row("armor", str(sum(1 for slot in state.armor if slot is not None)))
    table.add_row("offhand", state.offhand.type if state.offhand else "-")
    last_end = document.cooldowns.get(user_id)
    if last_end is not None:
        table.add_row("last_session_end", _format_timestamp(last_end))
    console.print(table)


if __name__ == "__main__":
    cli()
