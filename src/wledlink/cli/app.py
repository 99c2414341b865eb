from __future__ import annotations

from typing import Annotated

import typer

from wledlink.utils.logging import setup_logging

from .commands import config as config_cmd
from .commands.control import register as register_control
from .commands.devices import register as register_devices
from .commands.discover import register as register_discover
from .commands.info import register as register_info
from .commands.init import register as register_init
from .commands.mock import register as register_mock
from .commands.watch import register as register_watch

app = typer.Typer(
    help="wledlink - keep track of and talk to WLED devices", no_args_is_help=True
)

app.add_typer(config_cmd.app, name="config")

register_init(app)
register_discover(app)
register_devices(app)
register_info(app)
register_watch(app)
register_control(app)
register_mock(app)


@app.callback(invoke_without_command=True)
def main(
    version: Annotated[
        bool,
        typer.Option("--version", "-v", help="Show version and exit"),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", help="Enable debug logging"),
    ] = False,
) -> None:
    """wledlink CLI."""
    setup_logging(verbose=verbose)

    if version:
        from importlib.metadata import version as get_version

        typer.echo(f"wledlink version {get_version('wledlink')}")
        raise typer.Exit()
