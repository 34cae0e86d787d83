"""Init command implementation."""

from pathlib import Path

import typer

from ..config import write_config_template
from ..constants import CONFIG_FILE_NAME, EXIT_FAILED
from ..output import get_output_context


def init(
    path: Path = typer.Option(
        Path(CONFIG_FILE_NAME),
        "--path",
        "-p",
        help="Where to write the config template",
    ),
    force: bool = typer.Option(False, "--force", help="Overwrite an existing config"),
) -> None:
    """Write a dbzip.toml config template."""
    ctx = get_output_context()

    if path.exists() and not force:
        ctx.print(f"[yellow]Config already exists:[/yellow] {path}")
        ctx.print_json({"config": str(path), "created": False})
        return

    try:
        write_config_template(path)
    except OSError as e:
        ctx.error(f"Could not write {path}: {e}")
        raise typer.Exit(EXIT_FAILED) from None

    ctx.print(f"[green]Created config template:[/green] {path}")
    ctx.print_json({"config": str(path), "created": True})
