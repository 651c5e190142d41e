"""Unit tests for the error taxonomy."""

from courier.errors import (
    CancelError,
    ConfigurationError,
    ErrorClass,
    HTTPError,
    MaxRedirectsError,
    ParseError,
    ReadError,
    RequestTimeoutError,
    TransportError,
)
from tests.helpers.http import make_descriptor, make_response


class TestRequestContext:
    """Tests for request context carried by errors."""

    def test_context_from_descriptor(self) -> None:
        """Test method, URL, hostname, and path from the descriptor."""
        descriptor = make_descriptor("https://example.com/a/b?c=1", method="PUT")

        error = TransportError("reset", descriptor=descriptor, code="ECONNRESET")

        assert error.method == "PUT"
        assert error.url == "https://example.com/a/b?c=1"
        assert error.hostname == "example.com"
        assert error.path == "/a/b?c=1"

    def test_context_without_descriptor(self) -> None:
        """Test context for errors raised before normalization."""
        error = ConfigurationError(
            "bad", method="GET", url="https://example.com/x?y=1"
        )

        assert error.method == "GET"
        assert error.hostname == "example.com"
        assert error.path == "/x?y=1"
        assert error.response is None

    def test_no_context(self) -> None:
        """Test errors with no request at all."""
        error = ConfigurationError("bad")

        assert error.url is None
        assert error.hostname is None
        assert error.path is None

    def test_to_dict(self) -> None:
        """Test serialization for logs."""
        descriptor = make_descriptor()
        error = HTTPError(make_response(descriptor, 502))

        assert error.to_dict() == {
            "error_class": "HTTP_STATUS",
            "message": "Response code 502 (Bad Gateway)",
            "code": "ERR_NON_2XX_3XX_RESPONSE",
            "method": "GET",
            "hostname": "example.com",
            "path": "/",
            "status_code": 502,
        }


class TestErrorKinds:
    """Tests for individual error kinds."""

    def test_timeout_is_transport_error(self) -> None:
        """Test that timeouts are retryable transport errors."""
        error = RequestTimeoutError("connect", 2.0, descriptor=make_descriptor())

        assert isinstance(error, TransportError)
        assert error.error_class is ErrorClass.TIMEOUT
        assert str(error) == "Timeout awaiting 'connect' for 2.0s"

    def test_timeout_without_limit(self) -> None:
        """Test the message when no limit is known."""
        assert str(RequestTimeoutError("request", None)) == "Timeout awaiting 'request'"

    def test_read_error_is_transport_error(self) -> None:
        """Test that body failures classify as read errors."""
        error = ReadError("truncated", code="ERR_BODY_TRUNCATED")

        assert isinstance(error, TransportError)
        assert error.error_class is ErrorClass.READ

    def test_max_redirects(self) -> None:
        """Test the redirect limit message and response."""
        response = make_response(make_descriptor(), 302, {"location": "/x"})

        error = MaxRedirectsError(response, 10)

        assert str(error) == "Redirected 10 times. Aborting."
        assert error.response is response
        assert error.error_class is ErrorClass.REDIRECT_LIMIT

    def test_parse_error(self) -> None:
        """Test that the parse error names the response URL."""
        response = make_response(make_descriptor("https://example.com/data"))

        error = ParseError(ValueError("Unexpected token"), response)

        assert str(error) == 'Unexpected token in "https://example.com/data"'
        assert isinstance(error.cause, ValueError)

    def test_cancel_error(self) -> None:
        """Test the cancellation error."""
        error = CancelError(make_descriptor())

        assert str(error) == "Request was canceled"
        assert error.error_class is ErrorClass.CANCELED
        assert error.code == "ERR_CANCELED"
