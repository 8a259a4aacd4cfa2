"""
Tests for odata_bridge.core.errors module.
"""

import pytest
import requests

from odata_bridge.core.errors import (
    NO_CONNECTION_MESSAGE,
    FormatError,
    MetadataResolutionError,
    ODataError,
    ProtocolError,
    TransportError,
    extract_error_message,
    normalize_error,
)
from odata_bridge.core.session import HttpResponse, ODataUpstreamError


URL = "https://test.example.com/odata/Customers"


class TestExtractErrorMessage:
    """Tests for nested error message collection."""

    def test_nested_messages_keep_trailing_separator(self):
        body = {"error": {"message": "A", "innererror": {"message": "B"}}}
        assert extract_error_message(body) == "A; B; "

    def test_internal_exception_chain(self):
        body = {"error": {
            "message": "A",
            "innererror": {"message": "B", "internalexception": {"message": "C"}},
        }}
        assert extract_error_message(body) == "A; B; C; "

    def test_legacy_envelope(self):
        body = {"odata.error": {"code": "", "message": {"lang": "en-US", "value": "Boom"}}}
        assert extract_error_message(body) == "Boom; "

    def test_capitalized_message(self):
        assert extract_error_message({"Message": "Web API failure"}) == "Web API failure; "

    def test_no_message(self):
        assert extract_error_message({"error": {"code": "42"}}) == ""
        assert extract_error_message("not a dict") == ""


class TestNormalizeError:
    """Tests for normalize_error."""

    def test_protocol_error_from_response(self):
        resp = HttpResponse(
            404, "Not Found",
            body='{"error":{"message":"A","innererror":{"message":"B"}}}',
        )
        err = normalize_error(resp, URL)
        assert isinstance(err, ProtocolError)
        assert err.status == 404
        assert err.status_text == "Not Found"
        assert err.message == "A; B; "
        assert err.url == URL
        assert err.body["error"]["message"] == "A"
        assert str(err) == "ProtocolError: A; B; "

    def test_upstream_error_uses_attached_response(self):
        resp = HttpResponse(500, "Internal Server Error", body='{"error":{"message":"down"}}')
        err = normalize_error(ODataUpstreamError(resp, URL), URL)
        assert isinstance(err, ProtocolError)
        assert err.status == 500
        assert err.message == "down; "

    def test_malformed_body_is_kept_verbatim(self):
        resp = HttpResponse(502, "Bad Gateway", body="<html>proxy error</html>")
        err = normalize_error(resp, URL)
        assert isinstance(err, ProtocolError)
        assert err.status == 502
        assert err.message == "Bad Gateway"
        assert err.body == "<html>proxy error</html>"

    def test_json_without_message_keeps_status_text(self):
        resp = HttpResponse(409, "Conflict", body='{"error":{"code":"X"}}')
        err = normalize_error(resp, URL)
        assert err.message == "Conflict"
        assert err.body == {"error": {"code": "X"}}

    def test_transport_failure(self):
        err = normalize_error(requests.ConnectionError("connection refused"), URL)
        assert isinstance(err, TransportError)
        assert err.status is None
        assert err.message == "connection refused"
        assert err.url == URL

    def test_no_connection_message(self):
        err = normalize_error(requests.ConnectionError(), URL)
        assert isinstance(err, TransportError)
        assert err.message == NO_CONNECTION_MESSAGE

    def test_status_zero_without_message(self):
        err = normalize_error(HttpResponse(0, None), URL)
        assert err.message == NO_CONNECTION_MESSAGE

    def test_none_failure_never_raises(self):
        err = normalize_error(None)
        assert isinstance(err, TransportError)
        assert err.message == NO_CONNECTION_MESSAGE

    def test_odata_error_passes_through(self):
        original = MetadataResolutionError("missing", name="Foo")
        assert normalize_error(original, URL) is original

    def test_batch_part_content_id(self):
        part = HttpResponse(400, "Bad Request", body='{"error":{"message":"invalid"}}')
        err = normalize_error(part, URL, content_id=2)
        assert err.content_id == 2


class TestErrorTypes:
    """Tests for the error hierarchy."""

    def test_str_without_message(self):
        assert str(TransportError()) == "TransportError"

    def test_format_error_is_value_error(self):
        err = FormatError("'x' is not a valid guid", value="x")
        assert isinstance(err, ValueError)
        assert isinstance(err, ODataError)
        assert err.value == "x"

    def test_resolution_error_is_lookup_error(self):
        err = MetadataResolutionError("nope", name="Foo")
        assert isinstance(err, LookupError)
        assert err.name == "Foo"
        with pytest.raises(ODataError):
            raise err
