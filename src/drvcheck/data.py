# Data Types and Classes

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from drvcheck.versions import VersionIdentifier


class State(Enum):
    """
    States of a single check cycle.
    A cycle moves top to bottom and never re-enters a state.
    """

    START = "start"
    LOCAL_CHECKED = "local_checked"
    REMOTE_CHECKED = "remote_checked"
    UP_TO_DATE = "up_to_date"
    UPDATE_AVAILABLE = "update_available"
    DOWNLOADING = "downloading"
    INSTALLING = "installing"
    RESTART_REQUESTED = "restart_requested"
    DONE = "done"
    FAILED = "failed"


class Choice(Enum):
    """Operator choices offered when an update is available."""

    DOWNLOAD = "d"
    AUTO_INSTALL = "a"
    QUIT = "q"


@dataclass(frozen=True)
class LocalDriverInfo:
    """
    Data class to hold information about the installed driver.
    Includes the version and the diagnostic tool that reported it.
    """

    version: VersionIdentifier
    source: str


@dataclass(frozen=True)
class RemoteCatalogEntry:
    """
    Data class to hold the latest driver published by the vendor.
    Includes the version, where to download it from and, when the
    vendor provides them, a few descriptive fields.
    """

    version: VersionIdentifier
    download_locator: str
    name: Optional[str] = None
    release_date: Optional[str] = None
    size: Optional[str] = None


@dataclass(frozen=True)
class UpdateDecision:
    """
    Data class to hold the outcome of comparing both versions.
    """

    update_available: bool
    local: VersionIdentifier
    remote: VersionIdentifier
    download_locator: str
