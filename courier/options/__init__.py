"""Option layers, merging, and the normalized request descriptor."""

from courier.options.models import (
    Hooks,
    Options,
    RequestDescriptor,
    ResponseType,
    RetryOptions,
    Timeouts,
)
from courier.options.normalizer import (
    build_options,
    default_options,
    merge_options,
    normalize,
    options_to_dict,
)


__all__ = [
    "Hooks",
    "Options",
    "RequestDescriptor",
    "ResponseType",
    "RetryOptions",
    "Timeouts",
    "build_options",
    "default_options",
    "merge_options",
    "normalize",
    "options_to_dict",
]
