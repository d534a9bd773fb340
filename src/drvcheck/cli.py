import logging
from typing import Annotated

from invoke import Context as InvokeContext
from rich.console import Console
from typer import Context, Exit, Option, Typer

from drvcheck import __version__, app_config
from drvcheck.catalog import RemoteCatalogClient
from drvcheck.commands import config
from drvcheck.data import State
from drvcheck.inspector import LocalDriverInspector
from drvcheck.installer import Installer
from drvcheck.orchestrator import UpdateOrchestrator, exit_code

banner = f"Display Driver Check version {__version__}"

app = Typer(
    no_args_is_help=False,
)

app.add_typer(config.app, name="config")

console = Console()
err_console = Console(stderr=True)


def build_orchestrator(auto_install: bool | None = None) -> UpdateOrchestrator:
    """
    Assemble an orchestrator from the current configuration.

    :param auto_install: Override for the auto_install option
    """
    options = app_config["options"]
    user_agent = f"drvcheck/{__version__}"

    if auto_install is None:
        auto_install = bool(options["auto_install"])

    return UpdateOrchestrator(
        inspector=LocalDriverInspector(smi_path=options["smi_path"]),
        catalog=RemoteCatalogClient(timeout=options["timeout"], user_agent=user_agent),
        installer=Installer(
            download_dir=options["download_dir"],
            filename=options["installer_filename"],
            timeout=options["download_timeout"],
            user_agent=user_agent,
            console=console,
        ),
        cx=InvokeContext(),
        console=console,
        err_console=err_console,
        allow_auto_install=auto_install,
    )


def _run_check(auto_install: bool | None = None) -> None:
    logger = logging.getLogger(__name__)
    logger.info("Starting driver check")

    console.print(banner)

    orchestrator = build_orchestrator(auto_install)
    state = orchestrator.run()

    logger.info("Driver check finished in state %s", state.name)

    if state is State.FAILED and app_config["options"]["pause_on_error"]:
        try:
            console.input("\nPress Enter...")
        except EOFError:
            logger.debug("No input to wait on, exiting right away")

    raise Exit(code=exit_code(state))


@app.callback(invoke_without_command=True)
def cli(ctx: Context) -> None:
    """
    Display Driver Check

    Compares the installed GeForce driver with the latest one published
    by NVIDIA, and offers to download it when it is newer.
    """
    if ctx.invoked_subcommand is None:
        _run_check()


@app.command()
def check(
    auto: Annotated[
        bool,
        Option(
            "--auto",
            "-a",
            help="Offer automatic silent installation, regardless of configuration",
        ),
    ] = False,
) -> None:
    """
    Check for a newer driver and act on it.
    """
    _run_check(True if auto else None)


@app.command()
def version() -> None:
    """
    Show the drvcheck version.
    """
    console.print(f"drvcheck version {__version__}")
