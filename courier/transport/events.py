"""Lifecycle signals emitted while a request is in flight."""

from collections import defaultdict
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

import structlog


logger = structlog.get_logger()

Listener = Callable[..., Any]


class LifecycleEvent(str, Enum):
    """Signals delivered to listeners, in order, for each attempt.

    - REQUEST: descriptor handed to the transport
    - SOCKET: a connection was acquired
    - RESPONSE: response headers received
    - REDIRECT: a redirect is about to be followed
    - RETRY: a retry is about to be submitted
    - DATA: a body chunk was received
    - DOWNLOAD_PROGRESS: cumulative download progress
    - END: the body was fully received
    - ERROR: the request failed terminally
    """

    REQUEST = "request"
    SOCKET = "socket"
    RESPONSE = "response"
    REDIRECT = "redirect"
    RETRY = "retry"
    DATA = "data"
    DOWNLOAD_PROGRESS = "download_progress"
    END = "end"
    ERROR = "error"


@dataclass(frozen=True)
class DownloadProgress:
    """Cumulative body download progress.

    Attributes:
        transferred: Bytes received so far.
        total: Declared body size, when known.
    """

    transferred: int
    total: int | None = None

    @property
    def percent(self) -> float:
        """Get completion ratio in [0, 1]; 0 while the total is unknown."""
        if not self.total:
            return 0.0
        return min(1.0, self.transferred / self.total)


class LifecycleEmitter:
    """Ordered, synchronous signal dispatch for one logical request.

    Once closed, no further signals are delivered.
    """

    def __init__(self) -> None:
        self._listeners: defaultdict[LifecycleEvent, list[Listener]] = defaultdict(
            list
        )
        self._closed = False
        self._socket_emitted = False

    @property
    def closed(self) -> bool:
        """Check whether delivery has stopped."""
        return self._closed

    def on(self, event: LifecycleEvent | str, listener: Listener) -> None:
        """Register a listener.

        Args:
            event: Signal name.
            listener: Callable invoked with the signal payload.

        Raises:
            ValueError: If the event name is unknown.
        """
        self._listeners[LifecycleEvent(event)].append(listener)

    def off(self, event: LifecycleEvent | str, listener: Listener) -> None:
        """Remove a previously registered listener."""
        listeners = self._listeners[LifecycleEvent(event)]
        if listener in listeners:
            listeners.remove(listener)

    def emit(self, event: LifecycleEvent, *args: Any) -> None:
        """Deliver a signal to its listeners in registration order.

        Args:
            event: Signal to deliver.
            *args: Signal payload.
        """
        if self._closed:
            return
        if event is LifecycleEvent.REQUEST:
            self._socket_emitted = False
        elif event is LifecycleEvent.SOCKET:
            if self._socket_emitted:
                return
            self._socket_emitted = True
        for listener in list(self._listeners[event]):
            listener(*args)

    def close(self) -> None:
        """Stop delivering signals."""
        if not self._closed:
            self._closed = True
            logger.debug("emitter_closed", component="transport")
