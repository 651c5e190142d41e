"""Awaitable, cancelable, and streamable request result."""

import asyncio
import uuid
from collections.abc import AsyncIterator, Generator
from contextlib import aclosing
from typing import TYPE_CHECKING, Any

import structlog

from courier.constants import JSON_CONTENT_TYPE
from courier.errors import CancelError, ConfigurationError, ParseError
from courier.observability.logging import bind_request_context, clear_request_context
from courier.options.models import Options, RequestDescriptor, ResponseType
from courier.response.models import Response
from courier.response.parser import parse_body
from courier.result.state_machine import ResultState, ResultStateMachine
from courier.transport.events import LifecycleEmitter, LifecycleEvent, Listener


if TYPE_CHECKING:
    from courier.engine import Outcome, RequestEngine


logger = structlog.get_logger()


async def _read_next(chunks: AsyncIterator[bytes]) -> bytes | None:
    try:
        return await anext(chunks)
    except StopAsyncIteration:
        return None


class CancelableRequest:
    """Result of one logical request.

    Three independent capabilities share one settlement:

    - ``await request`` yields the Response (or its body with
      ``resolve_body_only``) or raises the terminal error
    - ``request.cancel()`` tears the request down and settles it as canceled
    - ``async for chunk in request`` streams the body when ``is_stream`` is set

    The request starts as soon as the object is created inside a running
    event loop, otherwise on first await.
    """

    def __init__(
        self,
        engine: "RequestEngine",
        descriptor: RequestDescriptor,
        options: Options | None = None,
    ) -> None:
        """Initialize the result.

        Args:
            engine: Engine that runs the request.
            descriptor: Normalized descriptor of the first attempt.
            options: Merged options layer the descriptor was built from.
        """
        self._engine = engine
        self._descriptor = descriptor
        self._options = options
        self._emitter = LifecycleEmitter()
        self._machine = ResultStateMachine(uuid.uuid4().hex[:12])
        self._task: asyncio.Task[None] | None = None
        self._started = False
        self._outcome: Outcome | None = None
        self._error: Exception | None = None
        self._streamed = False
        self._abort = asyncio.Event()
        self._closing: set[asyncio.Task[None]] = set()

        try:
            asyncio.get_running_loop()
        except RuntimeError:
            return
        self._start()

    @property
    def request_id(self) -> str:
        """Get the request identifier used in logs."""
        return self._machine.request_id

    @property
    def descriptor(self) -> RequestDescriptor:
        """Get the descriptor of the first attempt."""
        return self._descriptor

    @property
    def state(self) -> ResultState:
        """Get the settlement state."""
        return self._machine.state

    @property
    def is_canceled(self) -> bool:
        """Check whether the request was canceled."""
        return self._machine.state is ResultState.CANCELED

    def on(
        self,
        event: LifecycleEvent | str,
        listener: Listener,
    ) -> "CancelableRequest":
        """Register a lifecycle listener.

        Args:
            event: Signal name (``request``, ``response``, ``data``, ...).
            listener: Callable invoked with the signal payload.

        Returns:
            This request, for chaining.
        """
        self._emitter.on(event, listener)
        return self

    def cancel(self) -> bool:
        """Cancel the request.

        Pending requests settle as canceled immediately and their task is
        torn down at its next suspension point; a request that never started
        never opens a connection. A body being streamed is aborted. Otherwise
        a no-op.

        Returns:
            True if the call had an effect.
        """
        if self._machine.state is ResultState.FULFILLED:
            outcome = self._outcome
            if outcome is None or outcome.exchange is None or self._abort.is_set():
                return False
            self._abort.set()
            self._emitter.close()
            if not self._streamed:
                self._close_later(outcome)
            return True

        if self._machine.is_terminal:
            return False

        self._machine.to_canceled()
        self._emitter.close()
        if self._task is not None and not self._task.done():
            self._task.cancel()
        logger.info(
            "request_canceled", component="result", request_id=self.request_id
        )
        return True

    def __await__(self) -> Generator[Any, None, Any]:
        return self._resolve().__await__()

    async def json(self) -> Any:
        """Parse the settled body as JSON.

        Returns:
            Decoded JSON; ``""`` for an empty body.

        Raises:
            ParseError: If the body is not valid JSON.
        """
        if not self._started and self._descriptor.header("accept") is None:
            self._descriptor = self._descriptor.with_headers(
                {"accept": JSON_CONTENT_TYPE}
            )
        return await self._parse(ResponseType.JSON)

    async def text(self) -> str:
        """Decode the settled body as text."""
        return await self._parse(ResponseType.TEXT)

    async def buffer(self) -> bytes:
        """Get the settled body as raw bytes."""
        return await self._parse(ResponseType.BUFFER)

    def __aiter__(self) -> AsyncIterator[bytes]:
        return self._iterate()

    def _start(self) -> None:
        loop = asyncio.get_running_loop()
        self._task = loop.create_task(self._drive())

    async def _drive(self) -> None:
        self._started = True
        bind_request_context(self.request_id)
        try:
            outcome = await self._engine.run(
                self._descriptor, self._emitter, self._options
            )
        except asyncio.CancelledError:
            if not self._machine.is_terminal:
                self._machine.to_canceled()
            self._emitter.close()
            raise
        except Exception as exc:  # noqa: BLE001
            if not self._machine.is_terminal:
                self._error = exc
                self._machine.to_rejected()
            self._emitter.close()
            return
        finally:
            clear_request_context()

        if self._machine.is_terminal:
            if outcome.exchange is not None:
                await outcome.exchange.aclose()
            return
        self._outcome = outcome
        self._machine.to_fulfilled()
        if outcome.exchange is None:
            self._emitter.close()

    async def _settle(self) -> "Outcome":
        if self._task is None and not self._machine.is_terminal:
            self._start()
        if self._task is not None and not self._task.done():
            await asyncio.wait({self._task})
        if not self._machine.is_terminal:
            self._machine.to_canceled()

        state = self._machine.state
        if self._error is not None:
            raise self._error
        if state is ResultState.CANCELED or self._outcome is None:
            raise CancelError(self._descriptor)
        return self._outcome

    async def _resolve(self) -> Any:
        outcome = await self._settle()
        if self._descriptor.resolve_body_only:
            return outcome.response.body
        return outcome.response

    async def _parse(self, response_type: ResponseType) -> Any:
        if self._descriptor.is_stream:
            msg = "Body accessors cannot be used with `is_stream`"
            raise ConfigurationError(msg, descriptor=self._descriptor)
        outcome = await self._settle()
        response: Response = outcome.response
        try:
            return parse_body(response, response_type)
        except ValueError as exc:
            raise ParseError(exc, response) from exc

    async def _iterate(self) -> AsyncIterator[bytes]:
        if not self._descriptor.is_stream:
            msg = "Iterating a request requires the `is_stream` option"
            raise ConfigurationError(msg, descriptor=self._descriptor)
        if self._streamed:
            msg = "The response body has already been consumed"
            raise ConfigurationError(msg, descriptor=self._descriptor)
        self._streamed = True

        outcome = await self._settle()
        exchange = outcome.exchange
        if exchange is None:
            if outcome.response.raw_body:
                yield outcome.response.raw_body
            return

        descriptor = outcome.response.descriptor
        aborted = asyncio.ensure_future(self._abort.wait())
        try:
            chunks = self._engine.assembler.iter_chunks(exchange, self._emitter)
            async with aclosing(chunks):
                while not self._abort.is_set():
                    chunk = await self._next_chunk(chunks, aborted, descriptor)
                    if chunk is None:
                        return
                    yield chunk
                raise CancelError(descriptor)
        finally:
            aborted.cancel()
            await exchange.aclose()
            self._emitter.close()

    @staticmethod
    async def _next_chunk(
        chunks: AsyncIterator[bytes],
        aborted: "asyncio.Future[Any]",
        descriptor: RequestDescriptor,
    ) -> bytes | None:
        """Read the next chunk unless the stream is aborted first.

        The pending read is canceled when ``cancel()`` fires, which closes the
        body stream even while the peer sends nothing.

        Returns:
            The next chunk, or None once the body is complete.

        Raises:
            CancelError: If the stream was aborted during the read.
        """
        read = asyncio.ensure_future(_read_next(chunks))
        try:
            await asyncio.wait({read, aborted}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            if not read.done():
                read.cancel()
                await asyncio.wait({read})
        if read.cancelled():
            raise CancelError(descriptor)
        return read.result()

    def _close_later(self, outcome: "Outcome") -> None:
        if outcome.exchange is None:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        task = loop.create_task(outcome.exchange.aclose())
        self._closing.add(task)
        task.add_done_callback(self._closing.discard)
