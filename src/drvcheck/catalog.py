"""
Remote driver catalog

Looks up the latest published GeForce driver through the vendor's
driver lookup service, the same one backing the manual driver search
page on geforce.com.
"""

import http.client
import json
import logging
import urllib.error
import urllib.request
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Optional
from urllib.parse import unquote, urlencode, urlparse

from drvcheck.data import RemoteCatalogEntry
from drvcheck.errors import NetworkError, ParseError, ResponseFormatError
from drvcheck.versions import parse_version

LOOKUP_ENDPOINT = (
    "https://gfwsl.geforce.com/services_toolkit/services/com/nvidia/services/"
    "AjaxDriverService.php"
)

# Fixed parameters of the lookup, everything but product and OS
LOOKUP_PARAMS: dict[str, str | int] = {
    "func": "DriverManualLookup",
    "languageCode": 1033,
    "beta": 0,
    "isWHQL": 0,
    "dltype": -1,
    "dch": 1,
    "upCRD": 0,
    "qnf": 0,
    "sort1": 0,
    "numberOfResults": 10,
}

# Vendor operating system identifiers, keyed by (os, arch)
OS_IDS: dict[tuple[str, str], int] = {
    ("windows", "x86_64"): 57,
}

ATTEMPT = "Looking up latest driver version"


@dataclass(frozen=True)
class Product:
    """
    Vendor identifiers of a GPU product line.
    Series and family as understood by the lookup service.
    """

    series_id: int
    family_id: int


# GeForce 10 series, GTX 1070 Ti. Drivers are the same for other modern cards.
DEFAULT_PRODUCT = Product(series_id=101, family_id=859)
DEFAULT_OS = "windows"
DEFAULT_ARCH = "x86_64"


def build_lookup_url(
    product: Product = DEFAULT_PRODUCT,
    os: str = DEFAULT_OS,
    arch: str = DEFAULT_ARCH,
    endpoint: str = LOOKUP_ENDPOINT,
) -> str:
    """
    Build the lookup URL for a product, OS and architecture.

    :raises ValueError: If the OS and architecture pair is not supported
    """
    os_id = OS_IDS.get((os, arch))
    if os_id is None:
        raise ValueError(f"Unsupported operating system: {os}/{arch}")

    params = {
        **LOOKUP_PARAMS,
        "psid": product.series_id,
        "pfid": product.family_id,
        "osID": os_id,
    }

    return f"{endpoint}?{urlencode(params)}"


def _text_field(record: dict, key: str) -> Optional[str]:
    """Return an optional descriptive field, URL-unquoted."""
    value = record.get(key)
    if not isinstance(value, str) or not value:
        return None
    return unquote(value)


def _required_string(record: dict, key: str, what: str) -> str:
    value = record.get(key)

    if value is None:
        raise ResponseFormatError(
            f"Cannot find {what} information from the online resource!",
            attempted=ATTEMPT,
        )

    if not isinstance(value, str) or not value.strip():
        raise ResponseFormatError(
            f"Unexpected {what} value in the online resource: {value!r}",
            attempted=ATTEMPT,
        )

    return value.strip()


def _select_record(data: Any) -> tuple[dict, str, str]:
    """
    Locate the record holding the driver details.

    Two shapes are understood: the vendor service response, where
    the details sit under IDS[0].downloadInfo, and a flat record with
    "version" and "download" keys.

    :return: (record, version key, download key)
    """
    if not isinstance(data, dict):
        raise ResponseFormatError(
            "Incorrect information at the online resource!", attempted=ATTEMPT
        )

    if "IDS" in data:
        if str(data.get("Success", "1")) == "0":
            raise ResponseFormatError(
                "The online resource did not return any drivers!", attempted=ATTEMPT
            )

        try:
            record = data["IDS"][0]["downloadInfo"]
        except (KeyError, IndexError, TypeError) as e:
            raise ResponseFormatError(
                "Cannot find driver information from the online resource!",
                attempted=ATTEMPT,
            ) from e

        if not isinstance(record, dict):
            raise ResponseFormatError(
                "Incorrect driver information at the online resource!",
                attempted=ATTEMPT,
            )

        return record, "Version", "DownloadURL"

    return data, "version", "download"


def parse_catalog(body: str) -> RemoteCatalogEntry:
    """
    Parse a lookup response body into a catalog entry.

    The version is validated before the download locator, so a
    record with a malformed version is reported as such even when
    other fields are missing too.

    :param body: JSON text returned by the lookup service
    :return: The latest driver entry
    :raises ResponseFormatError: Invalid JSON, or expected fields absent
    :raises ParseError: The version string is not a valid version
    """
    try:
        data = json.loads(body)
    except (json.JSONDecodeError, TypeError) as e:
        raise ResponseFormatError(
            "Incorrect information at the online resource!", attempted=ATTEMPT
        ) from e

    record, version_key, download_key = _select_record(data)

    raw_version = _required_string(record, version_key, "version")

    try:
        version = parse_version(raw_version)
    except ParseError as e:
        raise ParseError(
            f"Cannot convert available version number '{raw_version}'",
            attempted=ATTEMPT,
        ) from e

    download_locator = _required_string(record, download_key, "download URL")

    return RemoteCatalogEntry(
        version=version,
        download_locator=download_locator,
        name=_text_field(record, "Name"),
        release_date=_text_field(record, "ReleaseDateTime"),
        size=_text_field(record, "DownloadURLFileSize"),
    )


class RemoteCatalogClient:
    """
    Remote Catalog Client

    Performs a single HTTPS request against the lookup service and
    extracts the latest driver version and its download URL.
    No retries are attempted; failures are reported as they happen.
    """

    def __init__(
        self,
        opener: Optional[Callable[..., Any]] = None,
        timeout: float = 10,
        endpoint: str = LOOKUP_ENDPOINT,
        user_agent: str = "drvcheck",
    ) -> None:
        """
        Initialize the catalog client.

        :param opener: Callable with the urllib.request.urlopen() signature,
                       urlopen itself if None
        :param timeout: Request timeout in seconds
        :param endpoint: Lookup service endpoint, must be https
        :param user_agent: User-Agent header sent with the request
        """
        self.opener = opener
        self.timeout = timeout
        self.endpoint = endpoint
        self.user_agent = user_agent
        self.logger = logging.getLogger(__name__)

    def fetch(self, url: str) -> str:
        """
        Fetch a URL and return the response body as text.
        The body is expected to be UTF-8.

        :raises NetworkError: On connection, TLS, HTTP or timeout failure
        :raises ResponseFormatError: If the body is not valid UTF-8
        """
        if urlparse(url).scheme != "https":
            raise NetworkError(
                f"Refusing to query a non-https endpoint: {url}", attempted=ATTEMPT
            )

        opener = self.opener or urllib.request.urlopen
        request = urllib.request.Request(url, headers={"User-Agent": self.user_agent})

        self.logger.debug("Fetching %s", url)

        try:
            with opener(request, timeout=self.timeout) as response:
                raw = response.read()
        except urllib.error.HTTPError as e:
            raise NetworkError(
                f"The online resource answered with HTTP {e.code}", attempted=ATTEMPT
            ) from e
        except urllib.error.URLError as e:
            raise NetworkError(
                f"Unable to access the online resources! ({e.reason})",
                attempted=ATTEMPT,
            ) from e
        except (OSError, http.client.HTTPException) as e:
            raise NetworkError(
                f"Unable to access the online resources! ({e})", attempted=ATTEMPT
            ) from e

        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise ResponseFormatError(
                "The page has invalid UTF-8 characters!", attempted=ATTEMPT
            ) from e

    def get_latest_version(
        self,
        product: Product = DEFAULT_PRODUCT,
        os: str = DEFAULT_OS,
        arch: str = DEFAULT_ARCH,
    ) -> RemoteCatalogEntry:
        """
        Get the latest published driver for a product, OS and architecture.

        :param product: Product line identifiers
        :param os: Operating system name
        :param arch: CPU architecture name
        :return: The latest driver entry
        :raises NetworkError: On transport failure
        :raises ResponseFormatError: On unexpected response shape
        :raises ParseError: On a malformed version string
        """
        url = build_lookup_url(product, os, arch, endpoint=self.endpoint)
        entry = parse_catalog(self.fetch(url))

        self.logger.info(
            "Latest available driver version: %s (%s)",
            entry.version,
            entry.download_locator,
        )

        return entry
