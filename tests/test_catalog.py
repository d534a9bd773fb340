import json
import socket
import urllib.error
from urllib.parse import parse_qs, urlparse

import pytest

from drvcheck.catalog import (
    LOOKUP_ENDPOINT,
    Product,
    RemoteCatalogClient,
    build_lookup_url,
    parse_catalog,
)
from drvcheck.errors import NetworkError, ParseError, ResponseFormatError
from drvcheck.versions import parse_version

VENDOR_RESPONSE = {
    "Success": "1",
    "IDS": [
        {
            "downloadInfo": {
                "Success": "1",
                "ID": "224154",
                "Name": "GeForce%20Game%20Ready%20Driver",
                "Version": "552.12",
                "ReleaseDateTime": "Tue%20Apr%2016,%202024",
                "DownloadURL": "https://us.download.nvidia.com/Windows/552.12/"
                "552.12-desktop-win10-win11-64bit-international-dch-whql.exe",
                "DownloadURLFileSize": "659.62%20MB",
            }
        }
    ],
}


@pytest.fixture
def create_response(mocker):
    """
    Factory fixture creating a mock urlopen response from a body.
    """

    def _create_response(body):
        if not isinstance(body, bytes):
            body = json.dumps(body).encode("utf-8")

        response = mocker.MagicMock()
        response.__enter__.return_value = response
        response.__exit__.return_value = False
        response.read.return_value = body
        return response

    return _create_response


class TestBuildLookupUrl:
    def test_default_url(self):
        """
        Test the default lookup URL carries the expected parameters.
        """
        url = build_lookup_url()
        parsed = urlparse(url)
        query = parse_qs(parsed.query)

        assert url.startswith(LOOKUP_ENDPOINT + "?")
        assert parsed.scheme == "https"
        assert query["func"] == ["DriverManualLookup"]
        assert query["psid"] == ["101"]
        assert query["pfid"] == ["859"]
        assert query["osID"] == ["57"]
        assert query["languageCode"] == ["1033"]
        assert query["dch"] == ["1"]
        assert query["numberOfResults"] == ["10"]

    def test_custom_product(self):
        """
        Test that product identifiers end up in the query.
        """
        query = parse_qs(urlparse(build_lookup_url(Product(120, 933))).query)

        assert query["psid"] == ["120"]
        assert query["pfid"] == ["933"]

    def test_unsupported_os(self):
        """
        Test that an unknown OS/arch combination is rejected.
        """
        with pytest.raises(ValueError, match="Unsupported operating system"):
            build_lookup_url(os="linux", arch="aarch64")


class TestParseCatalog:
    def test_flat_record(self):
        """
        Test parsing of the flat version/download shape.
        """
        entry = parse_catalog(
            '{"version":"552.12","download":"https://example.com/drv.exe"}'
        )

        assert entry.version == parse_version("552.12")
        assert entry.download_locator == "https://example.com/drv.exe"
        assert entry.name is None

    def test_vendor_record(self):
        """
        Test parsing of the vendor lookup service response.
        """
        entry = parse_catalog(json.dumps(VENDOR_RESPONSE))

        assert entry.version == parse_version("552.12")
        assert entry.download_locator.startswith("https://us.download.nvidia.com/")
        assert entry.name == "GeForce Game Ready Driver"
        assert entry.release_date == "Tue Apr 16, 2024"
        assert entry.size == "659.62 MB"

    def test_version_checked_before_download(self):
        """
        Test that a malformed version is reported even with no download key.
        """
        with pytest.raises(ParseError, match="'bad'"):
            parse_catalog('{"version":"bad"}')

    @pytest.mark.parametrize(
        "body",
        [
            "not json",
            "",
            "[]",
            '"552.12"',
            "{}",
            '{"version":"552.12"}',
            '{"version":552.12,"download":"https://example.com/drv.exe"}',
            '{"version":"552.12","download":""}',
            '{"Success":"0","IDS":[]}',
            '{"Success":"1","IDS":[]}',
            '{"Success":"1","IDS":[{"downloadInfo":"nope"}]}',
        ],
        ids=[
            "invalid_json",
            "empty_body",
            "list",
            "string",
            "empty_object",
            "missing_download",
            "numeric_version",
            "empty_download",
            "vendor_no_success",
            "vendor_no_ids",
            "vendor_bad_record",
        ],
    )
    def test_bad_shape(self, body):
        """
        Test that unexpected response shapes raise ResponseFormatError.
        """
        with pytest.raises(ResponseFormatError):
            parse_catalog(body)


class TestRemoteCatalogClient:
    def test_get_latest_version(self, mocker, create_response):
        """
        Test a successful lookup through an injected opener.
        """
        opener = mocker.Mock(return_value=create_response(VENDOR_RESPONSE))
        client = RemoteCatalogClient(opener=opener, timeout=5, user_agent="test/1.0")

        entry = client.get_latest_version()

        assert str(entry.version) == "552.12"
        opener.assert_called_once()

        request = opener.call_args.args[0]
        assert request.full_url == build_lookup_url()
        assert request.get_header("User-agent") == "test/1.0"
        assert opener.call_args.kwargs["timeout"] == 5

    def test_defaults_to_urlopen(self, mocker, create_response):
        """
        Test that urlopen is used when no opener is given.
        """
        mock_urlopen = mocker.patch(
            "drvcheck.catalog.urllib.request.urlopen",
            return_value=create_response(
                {"version": "552.12", "download": "https://example.com/drv.exe"}
            ),
        )

        entry = RemoteCatalogClient().get_latest_version()

        assert entry.download_locator == "https://example.com/drv.exe"
        mock_urlopen.assert_called_once()

    @pytest.mark.parametrize(
        "exception",
        [
            urllib.error.URLError("Name or service not known"),
            urllib.error.HTTPError(LOOKUP_ENDPOINT, 503, "Unavailable", {}, None),  # type: ignore[arg-type]
            TimeoutError("timed out"),
            socket.timeout("timed out"),
            ConnectionResetError("reset"),
        ],
        ids=["url_error", "http_error", "timeout", "socket_timeout", "reset"],
    )
    def test_transport_failure(self, mocker, exception):
        """
        Test that transport failures surface as NetworkError.
        """
        opener = mocker.Mock(side_effect=exception)

        with pytest.raises(NetworkError):
            RemoteCatalogClient(opener=opener).get_latest_version()

    def test_http_error_message(self, mocker):
        """
        Test that the HTTP status is part of the message.
        """
        opener = mocker.Mock(
            side_effect=urllib.error.HTTPError(
                LOOKUP_ENDPOINT,
                404,
                "Not Found",
                {},  # type: ignore[arg-type]
                None,
            )
        )

        with pytest.raises(NetworkError, match="HTTP 404"):
            RemoteCatalogClient(opener=opener).get_latest_version()

    def test_non_https_refused(self, mocker):
        """
        Test that plain http endpoints are never queried.
        """
        opener = mocker.Mock()
        client = RemoteCatalogClient(
            opener=opener, endpoint="http://gfwsl.geforce.com/lookup"
        )

        with pytest.raises(NetworkError, match="non-https"):
            client.get_latest_version()

        opener.assert_not_called()

    def test_invalid_utf8(self, mocker, create_response):
        """
        Test that an undecodable body is a format error.
        """
        opener = mocker.Mock(return_value=create_response(b"\xff\xfe\xfa"))

        with pytest.raises(ResponseFormatError, match="UTF-8"):
            RemoteCatalogClient(opener=opener).get_latest_version()

    def test_error_carries_attempt(self, mocker):
        """
        Test that errors describe the operation being attempted.
        """
        opener = mocker.Mock(side_effect=urllib.error.URLError("unreachable"))

        with pytest.raises(NetworkError) as excinfo:
            RemoteCatalogClient(opener=opener).get_latest_version()

        assert str(excinfo.value).startswith("Looking up latest driver version: ")
