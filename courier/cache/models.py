"""Data models for cached responses."""

import base64
import time
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field


class CachedResponse(BaseModel):
    """Serialized snapshot of a cacheable response.

    The body is kept base64-encoded so that entries serialize to plain JSON
    for any key-value storage backend.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    method: str
    url: Annotated[str, Field(min_length=1, description="Final URL after redirects")]
    status_code: int = Field(ge=100, le=599)
    reason_phrase: str = ""
    http_version: str = "HTTP/1.1"
    headers: list[tuple[str, str]] = Field(default_factory=list)
    body_b64: str = ""
    redirect_urls: list[str] = Field(default_factory=list)
    vary: dict[str, str | None] = Field(
        default_factory=dict, description="Request header values named by Vary"
    )
    etag: str | None = None
    last_modified: str | None = None
    stored_at: float = Field(default_factory=time.time)
    expires_at: float | None = Field(
        default=None, description="Epoch seconds after which the entry is stale"
    )

    @property
    def body(self) -> bytes:
        """Get the decoded body."""
        return base64.b64decode(self.body_b64)

    @property
    def has_validators(self) -> bool:
        """Check whether the entry can be revalidated with the origin."""
        return self.etag is not None or self.last_modified is not None

    def is_fresh(self, now: float | None = None) -> bool:
        """Check whether the entry may be served without revalidation.

        Args:
            now: Epoch seconds; defaults to the current time.

        Returns:
            True while the entry has not expired.
        """
        if self.expires_at is None:
            return False
        return (now if now is not None else time.time()) < self.expires_at

    @staticmethod
    def encode_body(body: bytes) -> str:
        """Encode a body for storage."""
        return base64.b64encode(body).decode("ascii")
