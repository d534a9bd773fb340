"""
Local driver inspection

The installed driver version is not exposed through a stable API,
so it is scraped from the human readable output of nvidia-smi.
The extraction rule lives in `parse_driver_version()` so it can be
exercised against captured output without spawning anything.
"""

import logging
import os
import re
import shlex
import shutil
import subprocess
import sys
from pathlib import Path
from typing import Optional

from invoke import Context

from drvcheck.data import LocalDriverInfo
from drvcheck.errors import InspectionError
from drvcheck.versions import VersionIdentifier, parse_version

SMI_EXECUTABLE = "nvidia-smi.exe"
SMI_COMMAND = "nvidia-smi"

DRIVER_VERSION_PATTERN = re.compile(
    r"Driver Version:\s*"  # Label, with whatever spacing the table uses
    r"([0-9]+(?:\.[0-9]+)+)"  # (1) Dot separated version, at least two parts
)

ATTEMPT = "Reading installed driver version"


def parse_driver_version(text: str) -> VersionIdentifier:
    """
    Extract the driver version from nvidia-smi output.

    Only the version shaped substring following the "Driver Version:"
    label is considered, so table borders and neighbouring fields
    such as "CUDA Version" are ignored.

    :param text: Captured standard output of nvidia-smi
    :return: The driver version
    :raises InspectionError: If no line carries a driver version
    """
    match = DRIVER_VERSION_PATTERN.search(text or "")

    if not match:
        raise InspectionError(
            "Cannot find installed version information!",
            attempted=ATTEMPT,
            stdout=text or "",
        )

    return parse_version(match.group(1))


def locate_smi(explicit: Optional[str] = None) -> str:
    """
    Find the nvidia-smi executable.

    Lookup order is the explicit path if given, the System32 copy
    shipped with DCH drivers, the legacy NVSMI directory under
    Program Files, and finally whatever is on PATH.

    :param explicit: Path set in configuration, if any
    :return: Path to the executable
    :raises InspectionError: If nvidia-smi cannot be found
    """
    if explicit:
        if Path(explicit).is_file():
            return explicit

        raise InspectionError(
            f"Configured nvidia-smi path does not exist: {explicit}",
            attempted=ATTEMPT,
        )

    candidates: list[Path] = []

    windir = os.environ.get("windir") or os.environ.get("WINDIR")
    if windir:
        candidates.append(Path(windir) / "System32" / SMI_EXECUTABLE)

    program_files = os.environ.get("ProgramFiles") or os.environ.get("PROGRAMFILES")
    if program_files:
        candidates.append(
            Path(program_files) / "NVIDIA Corporation" / "NVSMI" / SMI_EXECUTABLE
        )

    for candidate in candidates:
        if candidate.is_file():
            return str(candidate)

    on_path = shutil.which(SMI_COMMAND)
    if on_path:
        return on_path

    raise InspectionError(
        "Couldn't detect location for nvidia-smi. Maybe the driver is not installed?",
        attempted=ATTEMPT,
    )


def _quote(path: str) -> str:
    """Quote a path for the shell invoke runs commands through."""
    if sys.platform == "win32":
        return subprocess.list2cmdline([path])
    return shlex.quote(path)


class LocalDriverInspector:
    """
    Local Driver Inspector

    Runs nvidia-smi through an invoke Context and reads the
    driver version from its output.
    """

    def __init__(self, smi_path: Optional[str] = None) -> None:
        """
        Initialize the inspector.

        :param smi_path: Explicit path to nvidia-smi, autodetected if None
        """
        self.smi_path = smi_path
        self.logger = logging.getLogger(__name__)

    def get_local_version(self, cx: Context) -> LocalDriverInfo:
        """
        Query the installed driver version.

        Runs nvidia-smi once. invoke goes through the platform shell
        (`cmd /C` or `/bin/bash -c`), so the shell is the direct child and
        nvidia-smi its only child. stdin is not forwarded, it belongs to
        the operator prompt that follows.

        :param cx: invoke Context used to run the command
        :return: Installed driver information
        :raises InspectionError: If the tool is missing, fails or its
                                 output has no driver version
        """
        smi = locate_smi(self.smi_path)
        self.logger.debug("Querying installed driver version with %s", smi)

        try:
            result = cx.run(_quote(smi), hide=True, warn=True, in_stream=False)
        except OSError as e:
            raise InspectionError(
                f"Couldn't run {smi}: {e}. Maybe the driver is not installed?",
                attempted=ATTEMPT,
            ) from e

        if result.failed:
            self.logger.error(
                "nvidia-smi exited with status %s: %s", result.exited, result.stderr
            )
            raise InspectionError(
                f"{smi} exited with status {result.exited}",
                attempted=ATTEMPT,
                stdout=result.stdout,
                stderr=result.stderr,
            )

        version = parse_driver_version(result.stdout)
        self.logger.info("Installed driver version: %s", version)

        return LocalDriverInfo(version=version, source=smi)
