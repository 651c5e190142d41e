"""Request lifecycle engine.

Drives one logical request through transport invocation, redirect following,
retries, body assembly, and parsing. Retries and redirects are explicit,
bounded loops: an attempt counter bounds the outer loop and the redirect
chain bounds the inner one.
"""

import asyncio
import time
from dataclasses import dataclass

import structlog

from courier.cache.cache import ResponseCache, is_not_modified
from courier.cache.models import CachedResponse
from courier.errors import CourierError, HTTPError, RequestTimeoutError, TransportError
from courier.hooks.pipeline import (
    run_after_response,
    run_before_error,
    run_before_redirect,
    run_before_request,
    run_before_retry,
)
from courier.observability.metrics import RequestMetrics
from courier.options.models import Options, RequestDescriptor
from courier.options.normalizer import merge_options, normalize
from courier.redact import redact_url_credentials
from courier.redirect.follower import RedirectFollower
from courier.response.assembler import ResponseAssembler
from courier.response.models import Response, Timings
from courier.response.parser import apply_body
from courier.retry.coordinator import RetryCoordinator
from courier.retry.models import RetryRequest, RetryState, retry_with_merged_options
from courier.transport.agents import AgentPool
from courier.transport.events import LifecycleEmitter, LifecycleEvent
from courier.transport.invoker import Exchange, TransportInvoker


logger = structlog.get_logger()


@dataclass
class Outcome:
    """Final response of a logical request.

    Attributes:
        response: Final response; its body is parsed in buffered mode.
        exchange: Open exchange whose body the caller streams, in stream mode.
    """

    response: Response
    exchange: Exchange | None = None


class RequestEngine:
    """Runs logical requests against a shared agent pool.

    Stateless between requests; every per-request value lives in the
    descriptor lineage and the retry state created by ``run``.
    """

    def __init__(self, agents: AgentPool) -> None:
        """Initialize the engine.

        Args:
            agents: Agent pool shared by the client.
        """
        self._invoker = TransportInvoker(agents)
        self._follower = RedirectFollower()
        self._coordinator = RetryCoordinator()
        self._assembler = ResponseAssembler()
        self._metrics = RequestMetrics.get_instance()

    @property
    def assembler(self) -> ResponseAssembler:
        """Get the body assembler used for stream consumption."""
        return self._assembler

    async def run(
        self,
        descriptor: RequestDescriptor,
        emitter: LifecycleEmitter,
        options: Options | None = None,
    ) -> Outcome:
        """Drive a logical request to its final response.

        Args:
            descriptor: Normalized descriptor of the first attempt.
            emitter: Lifecycle signal emitter of the request.
            options: Merged options layer the descriptor was built from; used
                when an ``after_response`` hook retries with merged options.

        Returns:
            Outcome holding the final response.

        Raises:
            CourierError: The terminal error, after ``before_error`` hooks.
        """
        start_time_ns = time.perf_counter_ns()
        log = logger.bind(
            component="engine",
            method=descriptor.method,
            url=redact_url_credentials(descriptor.url),
        )
        log.debug("request_start", is_stream=descriptor.is_stream)
        state = RetryState()

        try:
            outcome = await self._run_attempts(descriptor, emitter, options, state, log)
        except Exception as exc:
            duration_ms = (time.perf_counter_ns() - start_time_ns) / 1_000_000
            error = await run_before_error(descriptor.hooks, exc)
            if isinstance(error, CourierError):
                self._metrics.record_failure(error.error_class.value, duration_ms)
                log.warning(
                    "request_failed",
                    duration_ms=round(duration_ms, 2),
                    retry_count=state.attempt_count,
                    **error.to_dict(),
                )
            emitter.emit(LifecycleEvent.ERROR, error)
            if error is exc:
                raise
            raise error from exc

        response = outcome.response
        duration_ms = (time.perf_counter_ns() - start_time_ns) / 1_000_000
        size = len(response.raw_body or b"")
        self._metrics.record_request(
            response.status_code, size, len(response.redirect_urls), duration_ms
        )
        log.info(
            "request_complete",
            status_code=response.status_code,
            cache_hit=response.is_from_cache,
            retry_count=response.retry_count,
            redirects=len(response.redirect_urls),
            bytes=size,
            duration_ms=round(duration_ms, 2),
        )
        return outcome

    async def _run_attempts(
        self,
        descriptor: RequestDescriptor,
        emitter: LifecycleEmitter,
        options: Options | None,
        state: RetryState,
        log: structlog.stdlib.BoundLogger,
    ) -> Outcome:
        while True:
            error: CourierError | None = None
            outcome: Outcome | None = None
            try:
                outcome = await self._attempt(descriptor, emitter, log)
            except TransportError as exc:
                error = exc
            else:
                response = outcome.response
                if outcome.exchange is not None:
                    if not response.ok and descriptor.throw_http_errors:
                        await outcome.exchange.aclose()
                        error = HTTPError(response)
                else:
                    result = await run_after_response(
                        descriptor.hooks, response, retry_with_merged_options
                    )
                    if isinstance(result, RetryRequest):
                        if self._coordinator.force(state, descriptor):
                            options, descriptor = self._merge_retry(
                                options, result, descriptor, state
                            )
                            descriptor = await self._prepare_retry(
                                descriptor, None, state, emitter, log
                            )
                            continue
                        log.debug(
                            "hook_retry_exhausted", retry_count=state.attempt_count
                        )
                    else:
                        outcome = Outcome(result)
                    if not outcome.response.ok:
                        error = HTTPError(outcome.response)

            if error is None:
                return outcome

            delay_ms = await self._coordinator.next_delay(state, error, descriptor)
            if delay_ms > 0:
                descriptor = await self._prepare_retry(
                    descriptor.evolve(retry_count=state.attempt_count),
                    error,
                    state,
                    emitter,
                    log,
                    delay_ms=delay_ms,
                )
                await asyncio.sleep(delay_ms / 1000)
                continue

            if (
                isinstance(error, HTTPError)
                and outcome is not None
                and not descriptor.throw_http_errors
            ):
                return outcome
            raise error

    async def _prepare_retry(
        self,
        descriptor: RequestDescriptor,
        error: CourierError | None,
        state: RetryState,
        emitter: LifecycleEmitter,
        log: structlog.stdlib.BoundLogger,
        delay_ms: float = 0.0,
    ) -> RequestDescriptor:
        retry_count = state.attempt_count
        descriptor = await run_before_retry(
            descriptor.hooks, descriptor, error, retry_count
        )
        emitter.emit(LifecycleEvent.RETRY, retry_count, error)
        self._metrics.record_retry(error.error_class.value if error else None)
        log.info(
            "retry_scheduled",
            attempt=retry_count,
            delay_ms=round(delay_ms, 2),
            limit=descriptor.retry.limit,
            code=error.code if error else None,
            status_code=error.response.status_code
            if error is not None and error.response is not None
            else None,
        )
        return descriptor

    @staticmethod
    def _merge_retry(
        options: Options | None,
        retry: RetryRequest,
        descriptor: RequestDescriptor,
        state: RetryState,
    ) -> tuple[Options | None, RequestDescriptor]:
        if retry.options is None or options is None:
            return options, descriptor.evolve(retry_count=state.attempt_count)
        merged = merge_options(options, retry.options)
        return merged, normalize(merged).evolve(retry_count=state.attempt_count)

    async def _attempt(
        self,
        descriptor: RequestDescriptor,
        emitter: LifecycleEmitter,
        log: structlog.stdlib.BoundLogger,
    ) -> Outcome:
        result = await run_before_request(descriptor.hooks, descriptor)
        if isinstance(result, Response):
            if result.body is None and result.raw_body is not None:
                apply_body(result)
            return Outcome(result)
        descriptor = result

        limit = descriptor.timeout.request
        scope = asyncio.timeout(limit)
        try:
            async with scope:
                return await self._exchange(descriptor, emitter, log)
        except TimeoutError as exc:
            if not scope.expired():
                raise
            raise RequestTimeoutError("request", limit, descriptor=descriptor) from exc

    async def _exchange(
        self,
        descriptor: RequestDescriptor,
        emitter: LifecycleEmitter,
        log: structlog.stdlib.BoundLogger,
    ) -> Outcome:
        request_url = descriptor.url
        cache = (
            ResponseCache(descriptor.cache)
            if descriptor.cache is not None and not descriptor.is_stream
            else None
        )

        while True:
            response, exchange = await self._open(descriptor, emitter, cache, log)
            try:
                next_descriptor = self._follower.next_descriptor(descriptor, response)
            except BaseException:
                if exchange is not None:
                    await exchange.aclose()
                raise
            if next_descriptor is None:
                break

            if exchange is not None:
                await exchange.aclose()
            next_descriptor = await run_before_redirect(
                next_descriptor.hooks, next_descriptor, response
            )
            emitter.emit(LifecycleEvent.REDIRECT, response, next_descriptor)
            log.info(
                "redirect_followed",
                status_code=response.status_code,
                location=redact_url_credentials(next_descriptor.url),
                hops=len(next_descriptor.redirect_urls),
            )
            descriptor = next_descriptor

        response.request_url = request_url
        if descriptor.is_stream and exchange is not None:
            return Outcome(response, exchange)

        if exchange is not None:
            response.raw_body = await self._assembler.buffer(exchange, emitter)
            if cache is not None:
                await cache.store(descriptor, response)
        else:
            emitter.emit(LifecycleEvent.END)

        apply_body(response)
        return Outcome(response)

    async def _open(
        self,
        descriptor: RequestDescriptor,
        emitter: LifecycleEmitter,
        cache: ResponseCache | None,
        log: structlog.stdlib.BoundLogger,
    ) -> tuple[Response, Exchange | None]:
        entry: CachedResponse | None = None
        send = descriptor
        if cache is not None:
            entry = await cache.lookup(descriptor)
            if entry is not None and cache.is_fresh(descriptor, entry):
                self._metrics.record_cache_hit(revalidated=False)
                log.info("cache_hit", status_code=entry.status_code)
                response = cache.to_response(entry, descriptor)
                emitter.emit(LifecycleEvent.RESPONSE, response)
                return response, None
            conditional = (
                cache.conditional_headers(descriptor, entry)
                if entry is not None
                else {}
            )
            if conditional:
                send = descriptor.with_headers(conditional)
            else:
                entry = None

        exchange = await self._invoker.open(send, emitter, Timings())
        response = exchange.response
        if cache is not None and entry is not None and is_not_modified(response):
            await exchange.aclose()
            self._metrics.record_cache_hit(revalidated=True)
            log.info("cache_hit", status_code=entry.status_code, revalidated=True)
            return await cache.revalidated(descriptor, entry, response), None
        return response, exchange
