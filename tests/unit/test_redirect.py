"""Unit tests for redirect following."""

import httpx
import pytest

from courier.errors import MaxRedirectsError, TransportError
from courier.options.models import RequestDescriptor
from courier.redirect.follower import RedirectFollower, is_redirect, keeps_credentials
from courier.response.models import Response
from tests.helpers.http import make_descriptor, make_response


def _redirect(
    descriptor: RequestDescriptor,
    status_code: int = 302,
    location: str = "/next",
) -> Response:
    return make_response(descriptor, status_code, {"location": location})


class TestIsRedirect:
    """Tests for redirect detection."""

    def test_redirect_with_location(self) -> None:
        """Test that a 3xx with Location is a redirect."""
        assert is_redirect(_redirect(make_descriptor())) is True

    def test_redirect_without_location(self) -> None:
        """Test that a 3xx without Location is final."""
        assert is_redirect(make_response(make_descriptor(), 302)) is False

    def test_not_modified_is_not_a_redirect(self) -> None:
        """Test that 304 is never followed."""
        response = make_response(make_descriptor(), 304, {"location": "/x"})

        assert is_redirect(response) is False


class TestKeepsCredentials:
    """Tests for the credential boundary."""

    @pytest.mark.parametrize(
        ("source", "target", "expected"),
        [
            ("https://a.example/x", "https://a.example/y", True),
            ("https://a.example/x", "https://a.example:443/y", True),
            ("http://a.example/x", "https://a.example/y", True),
            ("https://a.example/x", "http://a.example/y", False),
            ("https://a.example/x", "https://b.example/y", False),
            ("http://a.example:8080/x", "https://a.example/y", False),
            ("https://a.example/x", "https://a.example:8443/y", False),
        ],
    )
    def test_origin_rules(self, source: str, target: str, expected: bool) -> None:
        """Test same-origin and http-to-https upgrade handling."""
        assert keeps_credentials(httpx.URL(source), httpx.URL(target)) is expected


class TestNextDescriptor:
    """Tests for next-hop computation."""

    def test_relative_location(self) -> None:
        """Test that Location resolves against the current URL."""
        descriptor = make_descriptor("https://example.com/a/b")

        next_hop = RedirectFollower().next_descriptor(
            descriptor, _redirect(descriptor, location="../c")
        )

        assert next_hop is not None
        assert next_hop.url == "https://example.com/c"
        assert next_hop.redirect_urls == ("https://example.com/c",)

    def test_chain_accumulates(self) -> None:
        """Test that each hop extends the redirect chain."""
        follower = RedirectFollower()
        first = make_descriptor("https://example.com/1")

        second = follower.next_descriptor(first, _redirect(first, location="/2"))
        assert second is not None
        third = follower.next_descriptor(second, _redirect(second, location="/3"))

        assert third is not None
        assert third.redirect_urls == (
            "https://example.com/2",
            "https://example.com/3",
        )
        assert first.redirect_urls == ()

    def test_see_other_downgrades_to_get(self) -> None:
        """Test that 303 turns POST into a bodiless GET."""
        descriptor = make_descriptor(method="POST", json={"a": 1})

        next_hop = RedirectFollower().next_descriptor(
            descriptor, _redirect(descriptor, 303)
        )

        assert next_hop is not None
        assert next_hop.method == "GET"
        assert next_hop.body is None
        assert next_hop.header("content-type") is None
        assert next_hop.header("content-length") is None

    def test_see_other_keeps_head(self) -> None:
        """Test that 303 leaves HEAD untouched."""
        descriptor = make_descriptor(method="HEAD")

        next_hop = RedirectFollower().next_descriptor(
            descriptor, _redirect(descriptor, 303)
        )

        assert next_hop is not None
        assert next_hop.method == "HEAD"

    def test_moved_permanently_downgrades_post(self) -> None:
        """Test that 301 turns POST into GET."""
        descriptor = make_descriptor(method="POST", body=b"payload")

        next_hop = RedirectFollower().next_descriptor(
            descriptor, _redirect(descriptor, 301)
        )

        assert next_hop is not None
        assert next_hop.method == "GET"
        assert next_hop.body is None

    def test_temporary_redirect_preserves_method(self) -> None:
        """Test that 307 keeps method and body."""
        descriptor = make_descriptor(method="POST", body=b"payload")

        next_hop = RedirectFollower().next_descriptor(
            descriptor, _redirect(descriptor, 307)
        )

        assert next_hop is not None
        assert next_hop.method == "POST"
        assert next_hop.body == b"payload"

    def test_cross_origin_drops_credentials(self) -> None:
        """Test that credentials never follow a redirect to another host."""
        descriptor = make_descriptor(
            "https://a.example/x",
            headers={"authorization": "Bearer t", "cookie": "s=1", "host": "a.example"},
        )

        next_hop = RedirectFollower().next_descriptor(
            descriptor, _redirect(descriptor, location="https://b.example/y")
        )

        assert next_hop is not None
        assert next_hop.header("authorization") is None
        assert next_hop.header("cookie") is None
        assert next_hop.header("host") is None

    def test_same_origin_keeps_credentials(self) -> None:
        """Test that credentials follow a same-origin redirect."""
        descriptor = make_descriptor(
            "https://a.example/x", headers={"authorization": "Bearer t"}
        )

        next_hop = RedirectFollower().next_descriptor(
            descriptor, _redirect(descriptor, location="/y")
        )

        assert next_hop is not None
        assert next_hop.header("authorization") == "Bearer t"

    def test_follow_redirect_disabled(self) -> None:
        """Test that redirects are final when following is off."""
        descriptor = make_descriptor(follow_redirect=False)

        next_hop = RedirectFollower().next_descriptor(descriptor, _redirect(descriptor))

        assert next_hop is None

    def test_non_redirect_is_final(self) -> None:
        """Test that a 200 has no next hop."""
        descriptor = make_descriptor()

        assert RedirectFollower().next_descriptor(
            descriptor, make_response(descriptor, 200)
        ) is None

    def test_max_redirects(self) -> None:
        """Test that the chain length is bounded."""
        descriptor = make_descriptor(max_redirects=1).evolve(
            redirect_urls=("https://example.com/next",)
        )

        with pytest.raises(MaxRedirectsError) as exc_info:
            RedirectFollower().next_descriptor(descriptor, _redirect(descriptor))

        assert exc_info.value.max_redirects == 1
        assert exc_info.value.response is not None
        assert exc_info.value.code == "ERR_TOO_MANY_REDIRECTS"

    def test_zero_max_redirects(self) -> None:
        """Test that max_redirects=0 rejects the first redirect."""
        descriptor = make_descriptor(max_redirects=0)

        with pytest.raises(MaxRedirectsError):
            RedirectFollower().next_descriptor(descriptor, _redirect(descriptor))

    def test_unsupported_location(self) -> None:
        """Test that non-HTTP redirect targets are rejected."""
        descriptor = make_descriptor()

        with pytest.raises(TransportError) as exc_info:
            RedirectFollower().next_descriptor(
                descriptor, _redirect(descriptor, location="ftp://example.com/x")
            )

        assert exc_info.value.code == "ERR_INVALID_REDIRECT"

    def test_fragment_dropped(self) -> None:
        """Test that the Location fragment is not sent."""
        descriptor = make_descriptor()

        next_hop = RedirectFollower().next_descriptor(
            descriptor, _redirect(descriptor, location="/x#frag")
        )

        assert next_hop is not None
        assert next_hop.url == "https://example.com/x"

    def test_streamed_body_not_followed(self) -> None:
        """Test that a body that cannot be replayed stops the chain."""

        async def chunks():  # type: ignore[no-untyped-def]
            yield b"x"

        descriptor = make_descriptor(method="POST", body=chunks())

        assert RedirectFollower().next_descriptor(
            descriptor, _redirect(descriptor, 307)
        ) is None
