"""Response body assembly: buffered or streamed consumption."""

from collections.abc import AsyncIterator
from io import BytesIO

import httpx
import structlog

from courier.constants import HTTP_STATUS_NOT_MODIFIED
from courier.errors import ReadError, RequestTimeoutError, TransportError
from courier.response.models import Response
from courier.transport.events import DownloadProgress, LifecycleEmitter, LifecycleEvent
from courier.transport.invoker import Exchange, classify_transport_error


logger = structlog.get_logger()

HTTP_STATUS_NO_CONTENT = 204


def declared_length(response: Response) -> int | None:
    """Get the body size the server declared, when it describes this body.

    Args:
        response: Response whose headers are inspected.

    Returns:
        Content-Length as an int, or None when absent or not applicable.
    """
    if response.descriptor.method == "HEAD" or response.status_code in (
        HTTP_STATUS_NO_CONTENT,
        HTTP_STATUS_NOT_MODIFIED,
    ):
        return None
    value = response.headers.get("content-length")
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        return None


def _source(stream: httpx.Response, decompress: bool) -> AsyncIterator[bytes]:
    # Transports that hand back pre-read responses only support aiter_bytes
    if decompress or stream.is_stream_consumed:
        return stream.aiter_bytes()
    return stream.aiter_raw()


class ResponseAssembler:
    """Reads a response body off an open exchange.

    Both consumption modes share ``iter_chunks``: buffered mode drains it into
    memory, streaming mode hands it to the caller. Mid-stream failures surface
    as ``ReadError`` (or ``RequestTimeoutError`` for an idle socket) and never
    as a silently truncated body.
    """

    async def iter_chunks(
        self,
        exchange: Exchange,
        emitter: LifecycleEmitter,
    ) -> AsyncIterator[bytes]:
        """Yield body chunks, decompressed when the descriptor asks for it.

        Emits ``data`` and ``download_progress`` per chunk and ``end`` once the
        body is complete. The underlying stream is always closed.

        Args:
            exchange: Open exchange whose body is unread.
            emitter: Lifecycle signal emitter.

        Yields:
            Body chunks in arrival order.

        Raises:
            ReadError: On truncation, decoding failure, or size limit.
            RequestTimeoutError: If the socket stays idle too long.
        """
        stream = exchange.stream
        response = exchange.response
        descriptor = response.descriptor
        total = declared_length(response)
        limit = descriptor.max_body_size
        received = 0
        # num_bytes_downloaded stays 0 for bodies the agent already read
        pre_read = stream.is_stream_consumed

        try:
            async for chunk in _source(stream, descriptor.decompress):
                if not chunk:
                    continue
                received += len(chunk)
                if limit is not None and received > limit:
                    msg = (
                        f"Response size exceeded limit of {limit} bytes "
                        f"(read {received} bytes)"
                    )
                    raise ReadError(
                        msg,
                        descriptor=descriptor,
                        response=response,
                        code="ERR_BODY_TOO_LARGE",
                    )
                emitter.emit(LifecycleEvent.DATA, chunk)
                emitter.emit(
                    LifecycleEvent.DOWNLOAD_PROGRESS,
                    DownloadProgress(
                        received if pre_read else stream.num_bytes_downloaded, total
                    ),
                )
                yield chunk

            downloaded = (
                len(stream.content) if pre_read else stream.num_bytes_downloaded
            )
            if total is not None and downloaded < total:
                msg = (
                    "Response body truncated: received "
                    f"{downloaded} of {total} bytes"
                )
                raise ReadError(
                    msg,
                    descriptor=descriptor,
                    response=response,
                    code="ERR_BODY_TRUNCATED",
                )
        except httpx.DecodingError as exc:
            msg = f"Failed to decompress response body: {exc}"
            raise ReadError(
                msg, descriptor=descriptor, response=response, code="Z_DATA_ERROR"
            ) from exc
        except httpx.TransportError as exc:
            raise self._read_failure(exc, response) from exc
        except httpx.StreamError as exc:
            raise ReadError(
                str(exc) or type(exc).__name__,
                descriptor=descriptor,
                response=response,
                code="ERR_STREAM",
            ) from exc
        finally:
            await stream.aclose()

        response.timings.mark("end")
        emitter.emit(LifecycleEvent.END)

    async def buffer(self, exchange: Exchange, emitter: LifecycleEmitter) -> bytes:
        """Read the whole body into memory.

        Args:
            exchange: Open exchange whose body is unread.
            emitter: Lifecycle signal emitter.

        Returns:
            Assembled body bytes.
        """
        buffer = BytesIO()
        async for chunk in self.iter_chunks(exchange, emitter):
            buffer.write(chunk)
        body = buffer.getvalue()
        logger.debug(
            "body_buffered",
            component="response",
            status_code=exchange.response.status_code,
            size=len(body),
        )
        return body

    @staticmethod
    def _read_failure(exc: httpx.TransportError, response: Response) -> TransportError:
        cause = classify_transport_error(exc, response.descriptor)
        if isinstance(cause, RequestTimeoutError):
            cause.response = response
            return cause
        return ReadError(
            cause.message,
            descriptor=response.descriptor,
            response=response,
            code=cause.code,
        )
