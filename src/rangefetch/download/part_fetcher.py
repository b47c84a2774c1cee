"""
Retrieve one byte range into the part store with bounded retry.

Each attempt issues a GET with a Range header and streams the body straight
into the part store. A failed attempt carries an ErrorCategory: unexpected
statuses, truncated bodies and transport failures that classify_exception()
deems retryable are retried with a linearly increasing delay. Responses that
prove the server did not honour the range, and permanent transport errors
(such as a 4xx ClientResponseError), end the part immediately. Local write
failures are never retried.
"""

import asyncio
import logging
import re
from typing import Awaitable, Callable, Optional

import aiohttp

from rangefetch import metrics
from rangefetch.download.models import ByteRange, PartArtifact
from rangefetch.download.store import PartStore
from rangefetch.errors.exceptions import (
    ErrorCategory,
    PartRetrievalFailedError,
    PartWriteFailedError,
    RangeFetchError,
    classify_exception,
)
from rangefetch.logging.context import log_context
from rangefetch.logging.utilities import log_with_context

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 1024 * 1024

ACCEPTED_STATUSES = (200, 206)

_CONTENT_RANGE_RE = re.compile(r"^\s*bytes\s+(\d+)-(\d+)/(\d+|\*)\s*$", re.IGNORECASE)

SleepFunc = Callable[[float], Awaitable[None]]


class _AttemptError(RangeFetchError):
    """
    Internal: one GET attempt failed.

    TRANSIENT and UNKNOWN attempts are retried; PERMANENT ones (the response
    cannot be a correct answer for the range) end the part immediately.
    """

    def __init__(
        self,
        message: str,
        category: ErrorCategory,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(message, cause=cause)
        self.category = category


def _transient(message: str) -> _AttemptError:
    return _AttemptError(message, ErrorCategory.TRANSIENT)


def _rejected(message: str) -> _AttemptError:
    return _AttemptError(message, ErrorCategory.PERMANENT)


def _check_response(
    status: int,
    content_length: Optional[int],
    content_range: Optional[str],
    byte_range: ByteRange,
) -> None:
    """
    Validate status and framing headers against the requested range.

    Raises:
        _AttemptError: TRANSIENT for a status other than 200/206, PERMANENT
            when the response does not describe exactly the requested bytes
    """
    if status not in ACCEPTED_STATUSES:
        raise _transient(f"server returned status: {status}")

    expected = byte_range.length

    if status == 200 and byte_range.start != 0:
        raise _rejected(
            f"server ignored range {byte_range.header_value} and returned full content"
        )

    if content_length is not None and content_length != expected:
        raise _rejected(
            f"response length {content_length} does not match range length {expected}"
        )

    if status == 206 and content_range:
        match = _CONTENT_RANGE_RE.match(content_range)
        if match is None:
            raise _rejected(f"unparseable Content-Range: {content_range!r}")
        start, end = int(match.group(1)), int(match.group(2))
        if (start, end) != (byte_range.start, byte_range.end):
            raise _rejected(
                f"Content-Range {start}-{end} does not match requested "
                f"{byte_range.start}-{byte_range.end}"
            )


async def _stream_to_store(
    response: aiohttp.ClientResponse,
    byte_range: ByteRange,
    store: PartStore,
    chunk_size: int,
) -> int:
    """
    Copy the response body into the store slot for the range.

    Returns:
        Number of bytes written

    Raises:
        PartWriteFailedError: Local storage failure
        _AttemptError: PERMANENT for a body longer than the range, TRANSIENT
            for a body shorter than the range
    """
    expected = byte_range.length
    written = 0

    try:
        with store.writer(byte_range.index) as sink:
            async for chunk in response.content.iter_chunked(chunk_size):
                written += len(chunk)
                if written > expected:
                    raise _rejected(
                        f"received more than {expected} bytes for range "
                        f"{byte_range.header_value}"
                    )
                await asyncio.to_thread(sink.write, chunk)
    except (aiohttp.ClientError, asyncio.TimeoutError):
        raise
    except OSError as e:
        raise PartWriteFailedError(byte_range.index, cause=e) from e

    if written != expected:
        raise _transient(
            f"short body: received {written} of {expected} bytes"
        )
    return written


async def _fetch_once(
    session: aiohttp.ClientSession,
    url: str,
    byte_range: ByteRange,
    store: PartStore,
    request_timeout: float,
    chunk_size: int,
) -> int:
    """Run a single GET attempt for the range. Returns bytes written."""
    try:
        async with session.get(
            url,
            headers={"Range": byte_range.header_value},
            timeout=aiohttp.ClientTimeout(total=request_timeout),
            allow_redirects=True,
        ) as response:
            _check_response(
                response.status,
                response.content_length,
                response.headers.get("Content-Range"),
                byte_range,
            )
            return await _stream_to_store(response, byte_range, store, chunk_size)
    except (aiohttp.ClientError, asyncio.TimeoutError) as e:
        raise _AttemptError(
            f"request failed: {e!r}", classify_exception(e), cause=e
        ) from e


async def fetch_part(
    session: aiohttp.ClientSession,
    url: str,
    byte_range: ByteRange,
    store: PartStore,
    *,
    max_retries: int = 3,
    retry_delay: float = 1.0,
    request_timeout: float = 60.0,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    sleep: SleepFunc = asyncio.sleep,
) -> PartArtifact:
    """
    Retrieve byte_range of url into store.

    Makes at most max_retries attempts. After failed attempt N the fetcher
    sleeps N * retry_delay seconds before attempt N+1.

    Args:
        session: aiohttp session (caller manages lifecycle)
        url: Resource URL
        byte_range: Range to retrieve
        store: Part store receiving the bytes
        max_retries: Total attempt budget (>= 1)
        retry_delay: Delay unit in seconds for the linear backoff
        request_timeout: Total timeout per attempt in seconds
        chunk_size: Read size when streaming the body
        sleep: Awaitable sleep, injectable for tests

    Returns:
        PartArtifact describing the stored bytes

    Raises:
        PartRetrievalFailedError: Budget exhausted, or range not honoured
        PartWriteFailedError: Local storage failure (not retried)
        asyncio.CancelledError: Cancelled during an attempt or a retry sleep
    """
    if max_retries < 1:
        raise ValueError(f"max_retries must be >= 1, got {max_retries}")

    with log_context(part_index=byte_range.index):
        last_error = "no attempt made"

        for attempt in range(1, max_retries + 1):
            log_with_context(
                logger,
                logging.DEBUG,
                "Requesting range",
                range_start=byte_range.start,
                range_end=byte_range.end,
                attempt=attempt,
                max_retries=max_retries,
            )
            try:
                written = await _fetch_once(
                    session, url, byte_range, store, request_timeout, chunk_size
                )
            except PartWriteFailedError:
                metrics.record_part_attempt("write_error")
                raise
            except _AttemptError as e:
                if not e.is_retryable:
                    metrics.record_part_attempt("rejected")
                    store.discard(byte_range.index)
                    raise PartRetrievalFailedError(
                        byte_range.index, e.message, attempts=attempt, cause=e
                    ) from e

                metrics.record_part_attempt("transient_error")
                last_error = e.message
                if attempt < max_retries:
                    delay = attempt * retry_delay
                    log_with_context(
                        logger,
                        logging.WARNING,
                        f"Attempt {attempt} failed: {last_error}. Retrying...",
                        attempt=attempt,
                        max_retries=max_retries,
                        retry_delay=delay,
                        error_message=last_error,
                    )
                    metrics.record_part_retry()
                    await sleep(delay)
                    continue
                break

            metrics.record_part_attempt("success")
            metrics.record_bytes(written)
            log_with_context(
                logger,
                logging.DEBUG,
                "Range stored",
                bytes_written=written,
                attempt=attempt,
            )
            return PartArtifact(
                index=byte_range.index,
                size=written,
                location=store.location(byte_range.index),
                attempts=attempt,
            )

        raise PartRetrievalFailedError(
            byte_range.index, last_error, attempts=max_retries
        )
