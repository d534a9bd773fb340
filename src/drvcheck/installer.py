"""
Installer download and launch

Thin wrapper around the vendor installer: stream it to disk, start it
with a fixed set of silent install flags and let it manage the reboot.
"""

import http.client
import logging
import subprocess
import tempfile
import urllib.error
import urllib.request
from collections.abc import Callable, Sequence
from pathlib import Path
from typing import Any, Optional
from urllib.parse import urlparse

from rich.console import Console
from rich.progress import (
    BarColumn,
    DownloadColumn,
    Progress,
    TextColumn,
    TransferSpeedColumn,
)

from drvcheck.errors import DownloadError, InstallLaunchError

# Read buffer for streaming downloads
DOWNLOAD_BUFFER = 81920

# Silent install of the display driver module only. Without -n the
# installer restarts the machine on its own once done.
INSTALLER_ARGS: tuple[str, ...] = ("-s", "-noeula", "Display.Driver")

DEFAULT_FILENAME = "nvidiadrv.exe"


class Installer:
    """
    Downloader/Installer

    Both the HTTP opener and the process launcher are injectable,
    defaulting to urllib.request.urlopen() and subprocess.Popen.
    """

    def __init__(
        self,
        opener: Optional[Callable[..., Any]] = None,
        launcher: Optional[Callable[..., Any]] = None,
        download_dir: Optional[str] = None,
        filename: str = DEFAULT_FILENAME,
        installer_args: Sequence[str] = INSTALLER_ARGS,
        timeout: float = 120,
        user_agent: str = "drvcheck",
        console: Optional[Console] = None,
    ) -> None:
        self.opener = opener
        self.launcher = launcher
        self.download_dir = download_dir
        self.filename = filename
        self.installer_args = tuple(installer_args)
        self.timeout = timeout
        self.user_agent = user_agent
        self.console = console
        self.logger = logging.getLogger(__name__)

    @property
    def target(self) -> Path:
        """
        Where the installer payload is written.
        Defaults to the platform temporary directory.
        """
        directory = self.download_dir or tempfile.gettempdir()
        return Path(directory) / self.filename

    def download(self, url: str) -> Path:
        """
        Stream the installer from url to the target file.

        A partially written file is removed on failure.

        :param url: https URL of the installer
        :return: Path to the downloaded installer
        :raises DownloadError: On network or I/O failure
        """
        attempted = "Downloading driver installer"

        if urlparse(url).scheme != "https":
            raise DownloadError(
                f"Refusing to download from a non-https URL: {url}",
                attempted=attempted,
            )

        target = self.target
        opener = self.opener or urllib.request.urlopen
        request = urllib.request.Request(url, headers={"User-Agent": self.user_agent})

        self.logger.info("Downloading %s to %s", url, target)

        try:
            target.parent.mkdir(parents=True, exist_ok=True)

            with opener(request, timeout=self.timeout) as response:
                total = self._content_length(response)
                downloaded = 0

                with (
                    Progress(
                        TextColumn("[progress.description]{task.description}"),
                        BarColumn(),
                        DownloadColumn(),
                        TransferSpeedColumn(),
                        console=self.console,
                        transient=True,
                    ) as progress,
                    open(target, "wb") as fh,
                ):
                    task = progress.add_task("Downloading", total=total)

                    while True:
                        chunk = response.read(DOWNLOAD_BUFFER)
                        if not chunk:
                            break
                        fh.write(chunk)
                        downloaded += len(chunk)
                        progress.update(task, advance=len(chunk))

        except (urllib.error.URLError, OSError, http.client.HTTPException) as e:
            self.logger.error("Download of %s failed: %s", url, e)
            self._discard(target)
            raise DownloadError(
                f"Unable to download the installer: {e}", attempted=attempted
            ) from e

        if total is not None and downloaded < total:
            self._discard(target)
            raise DownloadError(
                f"Download incomplete, got {downloaded} of {total} bytes",
                attempted=attempted,
            )

        self.logger.info("Downloaded %d bytes to %s", downloaded, target)
        return target

    def launch(self, path: Path) -> Any:
        """
        Start the installer with the silent install flags.

        Returns as soon as the process has been started, the installer
        handles the rest including the restart.

        :param path: Path to the installer executable
        :return: The process handle returned by the launcher
        :raises InstallLaunchError: If the executable cannot be started
        """
        launcher = self.launcher or subprocess.Popen
        command = [str(path), *self.installer_args]

        self.logger.info("Launching installer: %s", " ".join(command))

        try:
            return launcher(command)
        except OSError as e:
            self.logger.error("Unable to start installer %s: %s", path, e)
            raise InstallLaunchError(
                f"Unable to start {path}: {e}", attempted="Launching driver installer"
            ) from e

    def _content_length(self, response: Any) -> Optional[int]:
        headers = getattr(response, "headers", None)
        if headers is None:
            return None

        try:
            length = int(headers.get("Content-Length", 0))
        except (TypeError, ValueError):
            return None

        return length or None

    def _discard(self, target: Path) -> None:
        try:
            target.unlink(missing_ok=True)
        except OSError as e:
            self.logger.warning("Unable to remove partial download %s: %s", target, e)
