"""Helpers for collaborators that may be synchronous or asynchronous."""

import inspect
from typing import Any


async def maybe_await(value: Any) -> Any:
    """Await a value if it is awaitable, otherwise return it unchanged.

    Args:
        value: Result of calling a sync or async collaborator.

    Returns:
        The resolved value.
    """
    if inspect.isawaitable(value):
        return await value
    return value
