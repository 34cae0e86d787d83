"""dbzip CLI: serialized, verified, compressed database backups."""

from pathlib import Path

import typer

from . import __version__
from .commands import backup, init, lock_app
from .logging import configure_logging
from .output import OutputContext, set_output_context


def _version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"dbzip {__version__}")
        raise typer.Exit()


app = typer.Typer(
    name="dbzip",
    help="Back up a database, compress and verify the archive, then delete the original",
    no_args_is_help=True,
)


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
    verbose: int = typer.Option(
        0,
        "--verbose",
        "-v",
        count=True,
        help="Increase verbosity (-v shows backup progress, -vv adds timestamps)",
    ),
    quiet: bool = typer.Option(
        False,
        "--quiet",
        "-q",
        help="Only log warnings and errors",
    ),
    json_output: bool = typer.Option(
        False,
        "--json",
        help="Output in JSON format for automation",
    ),
    no_color: bool = typer.Option(
        False,
        "--no-color",
        help="Disable colored output",
    ),
    log_file: Path | None = typer.Option(
        None,
        "--log-file",
        help="Also append log records to this file",
    ),
) -> None:
    """dbzip - serialized, verified, compressed backups."""
    console = configure_logging(
        verbosity=verbose,
        quiet=quiet,
        no_color=no_color,
        log_file=log_file,
    )
    set_output_context(OutputContext(console=console, json_mode=json_output))


app.command()(backup)
app.command()(init)
app.add_typer(lock_app, name="lock")


if __name__ == "__main__":
    app()
