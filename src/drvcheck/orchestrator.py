"""
Update orchestration

Runs one check cycle from start to a terminal state: discover both
versions, compare them and, when an update exists, act on the
operator's choice. All interaction with the system (process runner,
HTTP, browser, console) is handed in by the caller.
"""

import logging
import webbrowser
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from typing import Optional

from invoke import Context
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel

from drvcheck.catalog import RemoteCatalogClient
from drvcheck.data import Choice, State, UpdateDecision
from drvcheck.errors import DriverCheckError
from drvcheck.inspector import LocalDriverInspector
from drvcheck.installer import Installer
from drvcheck.prompts import ask_choice, confirm
from drvcheck.versions import Ordering, compare

# States after which the cycle is considered a success
SUCCESS_STATES = {State.UP_TO_DATE, State.DONE, State.RESTART_REQUESTED}

RISK_NOTICE = (
    "Automatic installation downloads the vendor installer and runs it\n"
    "silently with fixed flags, installing the display driver only.\n"
    "The installer is third-party software and its flags are not a stable\n"
    "interface. [bold]Your computer will restart without further warning[/bold]\n"
    "once installation completes. Save your work before continuing."
)


def exit_code(state: State) -> int:
    """
    Map a terminal state to a process exit code.

    :return: 0 on normal completion, 1 otherwise
    """
    return 0 if state in SUCCESS_STATES else 1


class UpdateOrchestrator:
    """
    Update Orchestrator

    A single top to bottom pass through the states in `State`,
    recorded in `history`. Failures end the pass in State.FAILED
    with the error kept in `error`.
    """

    def __init__(
        self,
        inspector: LocalDriverInspector,
        catalog: RemoteCatalogClient,
        installer: Installer,
        cx: Optional[Context] = None,
        prompt: Callable[..., int] = ask_choice,
        confirmation: Callable[..., bool] = confirm,
        browser: Callable[[str], bool] = webbrowser.open,
        console: Optional[Console] = None,
        err_console: Optional[Console] = None,
        allow_auto_install: bool = False,
    ) -> None:
        """
        :param inspector: Local driver inspector
        :param catalog: Remote catalog client
        :param installer: Downloader/Installer for the automatic path
        :param cx: invoke Context handed to the inspector
        :param prompt: Choice prompt, see `drvcheck.prompts.ask_choice()`
        :param confirmation: Yes/no prompt, see `drvcheck.prompts.confirm()`
        :param browser: Callable opening a URL in the default browser
        :param console: Console for regular output
        :param err_console: Console for error output
        :param allow_auto_install: Offer the automatic install choice
        """
        self.inspector = inspector
        self.catalog = catalog
        self.installer = installer
        self.cx = cx or Context()
        self.prompt = prompt
        self.confirmation = confirmation
        self.browser = browser
        self.console = console or Console()
        self.err_console = err_console or Console(stderr=True)
        self.allow_auto_install = allow_auto_install

        self.state: State = State.START
        self.history: list[State] = [State.START]
        self.decision: Optional[UpdateDecision] = None
        self.error: Optional[DriverCheckError] = None

        self.logger = logging.getLogger(__name__)

    def _enter(self, state: State) -> None:
        self.logger.debug("State transition: %s -> %s", self.state.name, state.name)
        self.state = state
        self.history.append(state)

    def check(self) -> UpdateDecision:
        """
        Discover both versions and compare them.

        The local inspection and the remote lookup run concurrently
        and both complete before anything is compared. A local failure
        is reported first since nothing can proceed without it.

        :return: The update decision
        :raises DriverCheckError: If either discovery fails
        """
        with ThreadPoolExecutor(max_workers=2) as executor:
            local_future = executor.submit(self.inspector.get_local_version, self.cx)
            remote_future = executor.submit(self.catalog.get_latest_version)

        local = local_future.result()
        self._enter(State.LOCAL_CHECKED)

        remote = remote_future.result()
        self._enter(State.REMOTE_CHECKED)

        ordering = compare(local.version, remote.version)
        self.logger.info(
            "Installed %s, available %s: %s",
            local.version,
            remote.version,
            ordering.name,
        )

        self.decision = UpdateDecision(
            update_available=ordering is Ordering.LESS,
            local=local.version,
            remote=remote.version,
            download_locator=remote.download_locator,
        )

        if self.decision.update_available:
            self._enter(State.UPDATE_AVAILABLE)
        else:
            self._enter(State.UP_TO_DATE)

        return self.decision

    def choices(self) -> list[Choice]:
        """Choices offered to the operator, default first."""
        if self.allow_auto_install:
            return [Choice.DOWNLOAD, Choice.AUTO_INSTALL, Choice.QUIT]
        return [Choice.DOWNLOAD, Choice.QUIT]

    def ask(self) -> Choice:
        """
        Ask the operator what to do about the available update.
        Empty input selects the browser download.
        """
        choices = self.choices()

        if self.allow_auto_install:
            message = (
                "Do you want to (d)ownload the latest driver, "
                "(a)utomatically install it, or (q)uit?"
            )
        else:
            message = "Do you want to (d)ownload the latest driver, or (q)uit?"

        index = self.prompt(
            message, [c.value for c in choices], 0, console=self.console
        )
        return choices[index]

    def run(self) -> State:
        """
        Run the whole check cycle and return the terminal state.

        Errors are reported on the error console as a single line
        and end the cycle in State.FAILED.
        """
        try:
            decision = self.check()

            self.console.print(f"Currently installed driver version: {decision.local}")

            if not decision.update_available:
                self.console.print("You have the latest driver installed.")
                return self.state

            self.console.print(
                f"New driver version is available:    [green]{decision.remote}[/green]\n"
            )

            choice = self.ask()
            self.logger.info("Operator chose: %s", choice.name)

            if choice is Choice.DOWNLOAD:
                self._open_download_page(decision)
            elif choice is Choice.AUTO_INSTALL:
                self._auto_install(decision)
            else:
                self._enter(State.DONE)

        except DriverCheckError as e:
            self.logger.error("Check failed (%s): %s", type(e).__name__, e)
            self.error = e
            self.err_console.print(f"[bold red]Error:[/bold red] {escape(str(e))}")
            self._enter(State.FAILED)

        return self.state

    def _open_download_page(self, decision: UpdateDecision) -> None:
        self.console.print(f"Opening {escape(decision.download_locator)}")

        if not self.browser(decision.download_locator):
            self.logger.warning("No browser available to open download page")
            self.console.print(
                "Unable to open a browser, download the driver from the URL above."
            )

        self._enter(State.DONE)

    def _auto_install(self, decision: UpdateDecision) -> None:
        self.console.print(Panel.fit(RISK_NOTICE, title="Warning", style="yellow"))

        if not self.confirmation(
            "Download and install now?", default=False, console=self.console
        ):
            self.console.print("Automatic installation cancelled.")
            self._enter(State.DONE)
            return

        self._enter(State.DOWNLOADING)
        path = self.installer.download(decision.download_locator)
        self.console.print("Download finished!")

        self._enter(State.INSTALLING)
        self.installer.launch(path)

        self._enter(State.RESTART_REQUESTED)
        self.console.print(
            "Installer started. Your computer will restart once it completes."
        )
