"""Lock inspection commands."""

from pathlib import Path

import typer

from ..config import load_config, resolve_config_path
from ..constants import EXIT_BAD_INPUT
from ..core import ExclusiveRegion
from ..errors import ConfigError, LockUnavailable
from ..output import get_output_context

lock_app = typer.Typer(help="Inspect the host-wide backup lock")


@lock_app.command("status")
def lock_status(
    lock_name: str | None = typer.Option(
        None,
        "--lock-name",
        "-l",
        help="Lock identifier (defaults to the configured one)",
    ),
    config_file: Path | None = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to dbzip.toml",
    ),
) -> None:
    """Show whether a backup currently holds the lock."""
    ctx = get_output_context()

    try:
        config = load_config(resolve_config_path(config_file))
    except ConfigError as e:
        ctx.error(str(e))
        raise typer.Exit(EXIT_BAD_INPUT) from None

    region = ExclusiveRegion(
        lock_name or config.lock.name,
        namespace=config.lock.namespace,
        lock_dir=config.lock.directory,
    )
    try:
        status = region.status()
    except LockUnavailable as e:
        ctx.error(str(e))
        raise typer.Exit(EXIT_BAD_INPUT) from None

    if ctx.json_mode:
        ctx.print_json(status.model_dump(mode="json"))
        return

    ctx.console.print(f"[bold]Lock:[/bold] {status.name}")
    ctx.console.print(f"[bold]File:[/bold] {status.lock_path}")
    if not status.held:
        ctx.console.print("[green]Free[/green]")
        return

    ctx.console.print("[yellow]Held[/yellow]")
    if status.owner is not None:
        ctx.console.print(
            f"  by pid {status.owner.pid} on {status.owner.host} "
            f"since {status.owner.acquired_at.strftime('%Y-%m-%d %H:%M:%S')}"
        )
