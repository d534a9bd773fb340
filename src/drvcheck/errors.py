# Exception Types


class DriverCheckError(Exception):
    """
    Base exception for all failures of a driver check cycle.

    Carries a one-line operator-facing message, and optionally a short
    description of what was being attempted when things went wrong.
    """

    def __init__(self, message: str, attempted: str | None = None) -> None:
        self.message = message
        self.attempted = attempted
        super().__init__(message)

    def __str__(self) -> str:
        if self.attempted:
            return f"{self.attempted}: {self.message}"
        return self.message


class InspectionError(DriverCheckError):
    """Exception raised when the installed driver version cannot be read."""

    def __init__(
        self,
        message: str,
        attempted: str | None = None,
        stdout: str = "",
        stderr: str = "",
    ) -> None:
        self.stdout = stdout
        self.stderr = stderr
        super().__init__(message, attempted)


class NetworkError(DriverCheckError):
    """Exception raised for connectivity, TLS or timeout failures."""


class ResponseFormatError(DriverCheckError):
    """Exception raised when the vendor response has an unexpected shape."""


class ParseError(DriverCheckError):
    """Exception raised when a version string cannot be parsed."""


class DownloadError(DriverCheckError):
    """Exception raised when the installer payload cannot be downloaded."""


class InstallLaunchError(DriverCheckError):
    """Exception raised when the installer executable cannot be started."""
