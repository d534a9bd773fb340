import os
from typing import Annotated, Any

import typer
from rich import box
from rich.console import Console
from rich.table import Table

from drvcheck import app_config, context
from drvcheck.config import ENV_PREFIX, OPTIONS, Configuration, describe

app = typer.Typer(
    help="Inspect the drvcheck settings in effect",
    no_args_is_help=True,
)

console = Console()
err_console = Console(stderr=True)


def _render(value: Any) -> str:
    """Display a value the way it would be written in a yaml config file."""
    if value is None:
        return "[dim]unset[/dim]"
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


@app.command()
def show(
    option: Annotated[
        str | None,
        typer.Argument(help="Name of the option to show. All if not specified."),
    ] = None,
) -> None:
    """
    Show the options in effect, with what each of them does.
    """
    options = app_config["options"]

    if option:
        if option not in OPTIONS:
            err_console.print(f"[red]Unknown option '{option}'.[/red]")
            err_console.print(f"Valid options: {', '.join(OPTIONS)}")
            raise typer.Exit(code=1)

        console.print(f"{option} = {_render(options[option])}")
        console.print(f"[dim]{describe(option)}[/dim]")
        return

    table = Table("Option", "Value", "Description", box=box.SIMPLE_HEAD)

    for name in OPTIONS:
        table.add_row(name, _render(options[name]), describe(name))

    console.print(table)


@app.command()
def source() -> None:
    """
    Show where the settings come from.

    Displays the configuration file loaded, if any, and the
    environment variables overriding individual options.
    """
    override = os.environ.get("DRVCHECK_CONFIG_FILE")

    if context.confpath:
        console.print(f"Configuration loaded from: {context.confpath}")
    elif override:
        console.print(
            f"DRVCHECK_CONFIG_FILE points to {override}, which was not loaded."
        )
    else:
        console.print("No configuration loaded, using defaults.")

    env_lines = [
        f"{key}={value}"
        for key, value in sorted(os.environ.items())
        if key.startswith(ENV_PREFIX)
        and key.removeprefix(ENV_PREFIX).lower() in OPTIONS
    ]

    if env_lines:
        console.print()
        console.print("Options overridden from the environment:\n")
        for line in env_lines:
            console.print(f"  {line}")
        console.print()


@app.command()
def diff() -> None:
    """
    Show the options changed from their defaults.
    """
    defaults = Configuration.DEFAULTS["options"]
    current = app_config["options"]

    changed = [name for name in OPTIONS if current.get(name) != defaults[name]]

    if not changed:
        console.print("All options are at their default values.")
        return

    table = Table(
        "Option",
        "Default",
        "Current",
        box=box.SIMPLE_HEAD,
        title="Options changed from defaults",
    )

    for name in changed:
        table.add_row(
            name,
            f"[yellow]{_render(defaults[name])}[/yellow]",
            f"[green]{_render(current.get(name))}[/green]",
        )

    console.print(table)

    if current.get("auto_install"):
        console.print(
            "[bold]auto_install[/bold] is on: the (a) choice installs the "
            "driver silently and the computer restarts when it is done."
        )
