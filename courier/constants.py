"""HTTP constants for the request engine.

Centralizes status codes, retry defaults, and header names shared by the
engine components.
"""

# HTTP Status Code Ranges
HTTP_STATUS_OK_MIN = 200
HTTP_STATUS_OK_MAX = 300
HTTP_STATUS_REDIRECT_MAX = 400
HTTP_STATUS_NOT_MODIFIED = 304
HTTP_STATUS_PAYLOAD_TOO_LARGE = 413
HTTP_STATUS_TOO_MANY_REQUESTS = 429
HTTP_STATUS_SERVICE_UNAVAILABLE = 503

# Redirect handling
REDIRECT_STATUS_CODES = frozenset({300, 301, 302, 303, 307, 308})
METHOD_REWRITE_STATUS_CODES = frozenset({301, 302})
SEE_OTHER_STATUS_CODE = 303
DEFAULT_MAX_REDIRECTS = 10

# Retry defaults
DEFAULT_RETRY_LIMIT = 2
DEFAULT_RETRY_METHODS = frozenset({"GET", "PUT", "HEAD", "DELETE", "OPTIONS", "TRACE"})
DEFAULT_RETRY_STATUS_CODES = frozenset(
    {408, 413, 429, 500, 502, 503, 504, 521, 522, 524}
)
DEFAULT_RETRY_ERROR_CODES = frozenset(
    {
        "ETIMEDOUT",
        "ECONNRESET",
        "EADDRINUSE",
        "ECONNREFUSED",
        "EPIPE",
        "ENOTFOUND",
        "ENETUNREACH",
        "EAI_AGAIN",
    }
)
# Failures raised before any request bytes leave the client
PRE_SEND_ERROR_CODES = frozenset(
    {"ECONNREFUSED", "ENOTFOUND", "EAI_AGAIN", "ENETUNREACH", "EADDRINUSE"}
)
RETRY_AFTER_STATUS_CODES = frozenset(
    {
        HTTP_STATUS_PAYLOAD_TOO_LARGE,
        HTTP_STATUS_TOO_MANY_REQUESTS,
        HTTP_STATUS_SERVICE_UNAVAILABLE,
    }
)
RETRY_BACKOFF_BASE_MS = 1000
RETRY_JITTER_MS = 100

# Methods
BODYLESS_METHODS = frozenset({"GET", "HEAD"})
SUPPORTED_PROTOCOLS = frozenset({"http", "https"})

# Caching
CACHEABLE_METHODS = frozenset({"GET", "HEAD"})
CACHEABLE_STATUS_CODES = frozenset(
    {200, 203, 204, 206, 300, 301, 308, 404, 405, 410, 414, 501}
)
CACHE_KEY_PREFIX = "courier"

# Header defaults
DEFAULT_USER_AGENT = "courier/0.1 (+https://pypi.org/project/courier-http/)"
ACCEPT_ENCODING_DECOMPRESS = "gzip, deflate"
ACCEPT_ENCODING_IDENTITY = "identity"
JSON_CONTENT_TYPE = "application/json"
FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"
