"""Cookie jar adapter over ``httpx.Cookies``."""

import httpx


class HttpxCookieJar:
    """Cookie jar backed by ``httpx.Cookies`` (stdlib ``http.cookiejar``).

    Domain, path, secure, and expiry rules are applied by the underlying
    cookie policy.
    """

    def __init__(self, cookies: httpx.Cookies | None = None) -> None:
        self.cookies = cookies if cookies is not None else httpx.Cookies()

    def get_cookie_header(self, url: str) -> str | None:
        request = httpx.Request("GET", url)
        self.cookies.set_cookie_header(request)
        return request.headers.get("cookie")

    def set_cookies(self, url: str, set_cookie_headers: list[str]) -> None:
        response = httpx.Response(
            200,
            headers=[("set-cookie", value) for value in set_cookie_headers],
            request=httpx.Request("GET", url),
        )
        self.cookies.extract_cookies(response)
