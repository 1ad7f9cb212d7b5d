"""
Tests for the HTTP transport layer.

HTTP exchanges are mocked with ``requests_mock``; cancellation of in-flight
bodies uses a mocked requests session.
"""

from unittest.mock import MagicMock

import pytest
import requests
import requests_mock

from fritzbox_status.cancellation import CancellationToken
from fritzbox_status.exceptions import (
    FritzBoxCancelledError,
    FritzBoxConnectionError,
    FritzBoxHTTPError,
    FritzBoxProtocolError,
    FritzBoxTimeoutError,
)
from fritzbox_status.transport import (
    FritzBoxTransport,
    build_base_url,
    create_fritzbox_session,
    encode_parameter,
    parse_xml,
    urlencode_parameters,
)

BASE_URL = "http://fritz.box"


@pytest.fixture
def transport():
    t = FritzBoxTransport(BASE_URL)
    yield t
    t.close()


@pytest.mark.unit
@pytest.mark.transport
class TestEncoding:
    """Test URL and form encoding helpers."""

    def test_encode_parameter(self):
        assert encode_parameter("a0", "sar:status/ds_margin") == "a0=sar%3Astatus%2Fds_margin"

    def test_unreserved_characters_stay_literal(self):
        assert encode_parameter("k", "A-z_0.9~") == "k=A-z_0.9~"

    def test_space_and_unicode(self):
        assert encode_parameter("k", "a b") == "k=a%20b"
        assert encode_parameter("k", "ä") == "k=%C3%A4"

    def test_urlencode_mapping_and_pairs(self):
        assert urlencode_parameters({"sid": "1", "logout": "1"}) == "sid=1&logout=1"
        assert urlencode_parameters([("a", "x"), ("a", "y")]) == "a=x&a=y"

    def test_urlencode_empty(self):
        assert urlencode_parameters([]) == ""

    @pytest.mark.parametrize(
        "host, expected",
        [
            ("fritz.box", "http://fritz.box"),
            ("192.168.178.1", "http://192.168.178.1"),
            ("https://fritz.box/", "https://fritz.box"),
            ("  fritz.box ", "http://fritz.box"),
        ],
    )
    def test_build_base_url(self, host, expected):
        assert build_base_url(host) == expected

    def test_url_for(self, transport):
        assert transport.url_for("/query.lua", "sid=1&a0=x") == "http://fritz.box/query.lua?sid=1&a0=x"
        assert transport.url_for("login_sid.lua") == "http://fritz.box/login_sid.lua"


@pytest.mark.unit
@pytest.mark.transport
class TestSessionFactory:
    """Test requests session configuration."""

    def test_adapter_never_retries(self):
        session = create_fritzbox_session()

        adapter = session.get_adapter("http://fritz.box")
        assert adapter.max_retries.total == 0
        session.close()

    def test_headers(self):
        session = create_fritzbox_session()

        assert session.headers["User-Agent"].startswith("FritzBoxStatusClient")
        session.close()


@pytest.mark.unit
@pytest.mark.transport
class TestRequests:
    """Test GET and POST exchanges."""

    def test_get_text(self, transport):
        with requests_mock.Mocker() as m:
            m.get(f"{BASE_URL}/query.lua", text='{"a0": "5"}', status_code=200)

            text = transport.get_text("/query.lua", "sid=1&a0=x")

        assert text == '{"a0": "5"}'
        assert m.request_history[0].url == f"{BASE_URL}/query.lua?sid=1&a0=x"

    def test_byte_order_mark_stripped(self, transport):
        with requests_mock.Mocker() as m:
            m.get(f"{BASE_URL}/login_sid.lua", content=b"\xef\xbb\xbf<SessionInfo/>", status_code=200)

            assert transport.get_text("/login_sid.lua") == "<SessionInfo/>"

    def test_post_form(self, transport):
        with requests_mock.Mocker() as m:
            m.post(f"{BASE_URL}/login_sid.lua", text="<SessionInfo/>", status_code=200)

            transport.post_form("/login_sid.lua", {"response": "abc-123", "username": "admin"})

        request = m.request_history[0]
        assert request.method == "POST"
        assert request.body == b"response=abc-123&username=admin"
        assert request.headers["Content-Type"] == "application/x-www-form-urlencoded"

    def test_post_form_with_query(self, transport):
        with requests_mock.Mocker() as m:
            m.post(f"{BASE_URL}/home/home.lua", text="ok", status_code=200)

            transport.post_form("/home/home.lua", {"logout": "1"}, query="sid=abcd")

        assert m.request_history[0].url == f"{BASE_URL}/home/home.lua?sid=abcd"

    def test_get_xml(self, transport):
        with requests_mock.Mocker() as m:
            m.get(
                f"{BASE_URL}/login_sid.lua",
                text="<SessionInfo><SID>0000000000000000</SID></SessionInfo>",
                status_code=200,
            )

            root = transport.get_xml("/login_sid.lua")

        assert root.find("SID").text == "0000000000000000"

    def test_http_error_status(self, transport):
        with requests_mock.Mocker() as m:
            m.get(f"{BASE_URL}/query.lua", text="Internal error", status_code=500)

            with pytest.raises(FritzBoxHTTPError) as exc_info:
                transport.get_text("/query.lua", "sid=1")

        assert exc_info.value.status_code == 500
        assert exc_info.value.details["response_text"] == "Internal error"

    def test_connection_error(self, transport):
        with requests_mock.Mocker() as m:
            m.get(f"{BASE_URL}/login_sid.lua", exc=requests.exceptions.ConnectionError("Name or service not known"))

            with pytest.raises(FritzBoxConnectionError) as exc_info:
                transport.get_text("/login_sid.lua")

        assert exc_info.value.details["host"] == "fritz.box"
        assert isinstance(exc_info.value.__cause__, requests.exceptions.ConnectionError)

    def test_read_timeout(self, transport):
        with requests_mock.Mocker() as m:
            m.get(f"{BASE_URL}/query.lua", exc=requests.exceptions.ReadTimeout("Read timed out"))

            with pytest.raises(FritzBoxTimeoutError) as exc_info:
                transport.get_text("/query.lua")

        assert exc_info.value.details["timeout"] == (3, 12)

    def test_timeout_passed_to_requests(self):
        session = MagicMock()
        response = MagicMock(status_code=200)
        response.iter_content.return_value = iter([b"ok"])
        session.request.return_value = response

        FritzBoxTransport(BASE_URL, session=session, timeout=(1, 5)).get_text("/x")

        _, kwargs = session.request.call_args
        assert kwargs["timeout"] == (1, 5)
        assert kwargs["stream"] is True
        response.close.assert_called()


@pytest.mark.unit
@pytest.mark.transport
class TestCancellation:
    """Test cancellation of exchanges."""

    def test_cancelled_before_dispatch(self):
        session = MagicMock()
        token = CancellationToken()
        token.cancel()

        with pytest.raises(FritzBoxCancelledError):
            FritzBoxTransport(BASE_URL, session=session).get_text("/query.lua", cancel=token)

        session.request.assert_not_called()

    def test_cancelled_while_reading_body(self):
        token = CancellationToken()
        response = MagicMock(status_code=200)

        def chunks(chunk_size):
            yield b"first"
            # Another thread cancels while the body is still arriving
            token.cancel()
            yield b"second"

        response.iter_content.side_effect = chunks
        session = MagicMock()
        session.request.return_value = response

        with pytest.raises(FritzBoxCancelledError):
            FritzBoxTransport(BASE_URL, session=session).get_text("/query.lua", cancel=token)

        assert response.close.call_count >= 1

    def test_closed_response_reports_cancellation(self):
        token = CancellationToken()
        response = MagicMock(status_code=200)

        def chunks(chunk_size):
            yield b"first"
            token.cancel()
            raise requests.exceptions.ChunkedEncodingError("connection closed")

        response.iter_content.side_effect = chunks
        session = MagicMock()
        session.request.return_value = response

        with pytest.raises(FritzBoxCancelledError):
            FritzBoxTransport(BASE_URL, session=session).get_text("/query.lua", cancel=token)

    def test_cancelled_during_dispatch(self):
        token = CancellationToken()
        session = MagicMock()

        def request(*args, **kwargs):
            token.cancel()
            raise requests.exceptions.ConnectionError("aborted")

        session.request.side_effect = request

        with pytest.raises(FritzBoxCancelledError):
            FritzBoxTransport(BASE_URL, session=session).get_text("/query.lua", cancel=token)

    def test_cancellation_hook_unregistered(self):
        token = CancellationToken()
        response = MagicMock(status_code=200)
        response.iter_content.return_value = iter([b"ok"])
        session = MagicMock()
        session.request.return_value = response

        FritzBoxTransport(BASE_URL, session=session).get_text("/x", cancel=token)
        response.close.reset_mock()
        token.cancel()

        response.close.assert_not_called()


@pytest.mark.unit
@pytest.mark.transport
class TestParseXml:
    """Test XML parsing."""

    def test_parse(self):
        root = parse_xml("<SessionInfo><SID>abc</SID></SessionInfo>")

        assert root.tag == "SessionInfo"

    def test_malformed(self):
        with pytest.raises(FritzBoxProtocolError, match="Failed to parse XML"):
            parse_xml("<SessionInfo>")

    def test_entities_rejected(self):
        document = '<?xml version="1.0"?><!DOCTYPE x [<!ENTITY e "boom">]><x>&e;</x>'

        with pytest.raises(FritzBoxProtocolError):
            parse_xml(document)
