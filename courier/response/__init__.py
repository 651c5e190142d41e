"""Received responses: models and body parsing.

The body assembler lives in ``courier.response.assembler``; it depends on the
transport package, which itself builds response models.
"""

from courier.response.models import Response, Timings
from courier.response.parser import apply_body, decode_text, parse_body


__all__ = [
    "Response",
    "Timings",
    "apply_body",
    "decode_text",
    "parse_body",
]
