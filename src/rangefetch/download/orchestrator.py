"""
Chunked download orchestrator.

Provides ChunkedDownloader, which runs the complete flow:
1. URL validation and metadata request (HEAD)
2. Range planning
3. One concurrent part fetcher per range, with a barrier before assembly
4. Ordered assembly into the destination directory

Outcome is all-or-nothing: either a DownloadResult for the assembled file,
or exactly one raised RangeFetchError and no output file.
"""

import asyncio
import logging
import time
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple, Union

import aiohttp

from rangefetch import metrics
from rangefetch.config import DownloadConfig
from rangefetch.download.assembler import commit_staged, discard_staged, stage_parts
from rangefetch.download.http_client import create_session
from rangefetch.download.metadata import resolve_metadata
from rangefetch.download.models import ByteRange, DownloadResult, PartArtifact
from rangefetch.download.naming import destination_name
from rangefetch.download.part_fetcher import SleepFunc, fetch_part
from rangefetch.download.planner import plan_ranges
from rangefetch.download.store import PartStore, open_part_store
from rangefetch.errors.exceptions import (
    AssemblyFailedError,
    ContextCancelledError,
    MetadataUnavailableError,
    RangeFetchError,
)
from rangefetch.logging.context import log_context
from rangefetch.logging.setup import generate_run_id
from rangefetch.logging.utilities import log_exception, log_with_context
from rangefetch.security.url_validation import validate_download_url

logger = logging.getLogger(__name__)


class ChunkedDownloader:
    """
    Download one remote file as N concurrently fetched byte ranges.

    Usage:
        downloader = ChunkedDownloader(DownloadConfig(parts=8))
        result = await downloader.download("https://example.com/report.pdf", "out/")
        print(f"Saved {result.bytes_written} bytes to {result.path}")

    Session management:
        By default, creates a new session for each download.
        For several downloads, pass a shared session to the constructor:

        async with create_session() as session:
            downloader = ChunkedDownloader(session=session)
            for url in urls:
                await downloader.download(url, dest_dir)

    Cancellation:
        The config deadline (timeout_seconds) and an optional asyncio.Event
        passed to download() both cancel every in-flight fetcher and raise
        ContextCancelledError.
    """

    def __init__(
        self,
        config: Optional[DownloadConfig] = None,
        session: Optional[aiohttp.ClientSession] = None,
        sleep: SleepFunc = asyncio.sleep,
    ):
        """
        Initialize ChunkedDownloader.

        Args:
            config: Download configuration (default: DownloadConfig())
            session: Optional aiohttp session (None = create per download)
            sleep: Awaitable sleep used between part retries
        """
        self.config = (config or DownloadConfig()).validate()
        self._session = session
        self._sleep = sleep

    async def download(
        self,
        url: str,
        dest_dir: Union[str, Path],
        cancel_event: Optional[asyncio.Event] = None,
    ) -> DownloadResult:
        """
        Download url into dest_dir.

        Args:
            url: Resource URL (server must report Content-Length and honour Range)
            dest_dir: Destination directory (created if missing)
            cancel_event: Optional event; setting it aborts the download

        Returns:
            DownloadResult for the assembled file

        Raises:
            MetadataUnavailableError, UnexpectedStatusError, SizeUnknownError:
                metadata request failed
            PartRetrievalFailedError, PartWriteFailedError: lowest-index
                failing part
            ContextCancelledError: deadline exceeded or cancel_event set
            AssemblyFailedError: output could not be written
        """
        run_id = generate_run_id()
        started = time.monotonic()

        with log_context(run_id=run_id, stage="download"):
            try:
                result = await asyncio.wait_for(
                    self._download(url, Path(dest_dir), run_id, cancel_event),
                    timeout=self.config.timeout_seconds,
                )
            except asyncio.TimeoutError as e:
                error = ContextCancelledError(
                    f"deadline of {self.config.timeout_seconds}s exceeded",
                    cause=e,
                    context={"timeout_seconds": self.config.timeout_seconds},
                )
                self._record_failure(error, url, started)
                raise error from e
            except RangeFetchError as e:
                self._record_failure(e, url, started)
                raise
            except asyncio.CancelledError:
                metrics.record_download("cancelled", time.monotonic() - started)
                log_with_context(
                    logger, logging.WARNING, "Download task cancelled", download_url=url
                )
                raise

            metrics.record_download("success", result.duration_seconds)
            log_with_context(
                logger,
                logging.INFO,
                "Download complete",
                download_url=url,
                destination=str(result.path),
                bytes_written=result.bytes_written,
                parts=result.parts,
                duration_ms=round(result.duration_seconds * 1000, 2),
            )
            return result

    def _record_failure(self, error: RangeFetchError, url: str, started: float) -> None:
        status = "cancelled" if isinstance(error, ContextCancelledError) else "failed"
        metrics.record_download(status, time.monotonic() - started)
        log_exception(
            logger, error, "Download failed", include_traceback=False, download_url=url
        )

    async def _download(
        self,
        url: str,
        dest_dir: Path,
        run_id: str,
        cancel_event: Optional[asyncio.Event],
    ) -> DownloadResult:
        started = time.monotonic()

        is_valid, error = validate_download_url(url)
        if not is_valid:
            raise MetadataUnavailableError(
                f"URL validation failed: {error}", context={"url": url}
            )

        session = self._session
        should_close_session = False

        try:
            if session is None:
                session = create_session(
                    max_connections=max(100, self.config.parts),
                    max_connections_per_host=self.config.max_connections_per_host,
                )
                should_close_session = True

            descriptor = await resolve_metadata(
                session, url, timeout=self.config.request_timeout
            )
            ranges = plan_ranges(descriptor.total_size, self.config.parts)
            destination = dest_dir / destination_name(descriptor)

            log_with_context(
                logger,
                logging.INFO,
                "Planned ranges",
                download_url=url,
                total_size=descriptor.total_size,
                parts=len(ranges),
                destination=str(destination),
            )

            try:
                await asyncio.to_thread(dest_dir.mkdir, parents=True, exist_ok=True)
                store = await asyncio.to_thread(
                    open_part_store,
                    run_id,
                    descriptor.total_size,
                    self.config.memory_threshold,
                    self.config.work_dir,
                )
            except OSError as e:
                raise AssemblyFailedError(
                    f"failed to prepare download directories: {e}", cause=e
                ) from e

            try:
                await self._fetch_all(session, url, ranges, store, cancel_event)
                written = await self._assemble(store, ranges, destination)
            finally:
                # Best-effort; a killed process may still leave artifacts behind
                store.cleanup()

        finally:
            if should_close_session and session:
                await session.close()

        return DownloadResult(
            path=destination,
            bytes_written=written,
            ranges=tuple(ranges),
            duration_seconds=time.monotonic() - started,
            descriptor=descriptor,
        )

    async def _assemble(
        self,
        store: PartStore,
        ranges: Sequence[ByteRange],
        destination: Path,
    ) -> int:
        """
        Stage the output file off the event loop, then rename it into place.

        A worker thread cannot be interrupted, so a cancellation that arrives
        while the file is being staged waits for the thread, removes the staged
        file and re-raises. The rename happens only if no cancellation arrived.

        Returns:
            Number of bytes written

        Raises:
            AssemblyFailedError: Output could not be written
        """
        staging = asyncio.ensure_future(
            asyncio.to_thread(stage_parts, store, ranges, destination)
        )
        try:
            staged_path, written = await asyncio.shield(staging)
        except asyncio.CancelledError:
            try:
                staged_path, _ = await staging
            except RangeFetchError as e:
                log_exception(
                    logger,
                    e,
                    "Assembly failed after cancellation",
                    level=logging.WARNING,
                    include_traceback=False,
                )
            else:
                discard_staged(staged_path)
            raise

        commit_staged(staged_path, destination)
        log_with_context(
            logger,
            logging.INFO,
            "Assembled output file",
            destination=str(destination),
            bytes_written=written,
            parts=len(ranges),
        )
        return written

    async def _fetch_all(
        self,
        session: aiohttp.ClientSession,
        url: str,
        ranges: Sequence[ByteRange],
        store: PartStore,
        cancel_event: Optional[asyncio.Event],
    ) -> List[PartArtifact]:
        """
        Run one fetcher per range and wait until every fetcher is terminal.

        Returns:
            Artifacts ordered by range index

        Raises:
            RangeFetchError: Error of the lowest-index failing part
            ContextCancelledError: cancel_event was set
        """
        tasks: Dict[asyncio.Task, ByteRange] = {
            asyncio.create_task(
                fetch_part(
                    session,
                    url,
                    byte_range,
                    store,
                    max_retries=self.config.max_retries,
                    retry_delay=self.config.retry_delay,
                    request_timeout=self.config.request_timeout,
                    chunk_size=self.config.chunk_size,
                    sleep=self._sleep,
                ),
                name=f"rangefetch-part-{byte_range.index}",
            ): byte_range
            for byte_range in ranges
        }
        cancel_waiter = (
            asyncio.create_task(cancel_event.wait()) if cancel_event is not None else None
        )

        pending = set(tasks)
        try:
            while pending:
                wait_on = set(pending)
                if cancel_waiter is not None:
                    wait_on.add(cancel_waiter)
                done, _ = await asyncio.wait(wait_on, return_when=asyncio.FIRST_COMPLETED)

                if cancel_waiter is not None and cancel_waiter in done:
                    raise ContextCancelledError(
                        "download cancelled", context={"pending_parts": len(pending)}
                    )

                pending -= done
                if self.config.fail_fast and any(
                    not t.cancelled() and t.exception() is not None for t in done
                ):
                    log_with_context(
                        logger,
                        logging.WARNING,
                        "Part failed, cancelling remaining fetchers",
                        parts=len(pending),
                    )
                    break
        finally:
            if cancel_waiter is not None:
                cancel_waiter.cancel()
            # Barrier: no fetcher may still be running once this method exits
            remaining = [t for t in tasks if not t.done()]
            for task in remaining:
                task.cancel()
            if remaining:
                await asyncio.gather(*remaining, return_exceptions=True)

        failures: List[Tuple[int, BaseException]] = []
        for task, byte_range in tasks.items():
            if task.cancelled():
                continue
            exc = task.exception()
            if exc is not None:
                failures.append((byte_range.index, exc))

        if failures:
            failures.sort(key=lambda item: item[0])
            for index, exc in failures[1:]:
                log_exception(
                    logger,
                    exc,
                    "Additional part failure",
                    level=logging.WARNING,
                    include_traceback=False,
                    part_index=index,
                )
            raise failures[0][1]

        ordered = sorted(tasks.items(), key=lambda item: item[1].index)
        return [task.result() for task, _ in ordered]


async def download_file(
    url: str,
    dest_dir: Union[str, Path],
    config: Optional[DownloadConfig] = None,
    cancel_event: Optional[asyncio.Event] = None,
    session: Optional[aiohttp.ClientSession] = None,
) -> DownloadResult:
    """
    Download url into dest_dir with a one-off ChunkedDownloader.

    See ChunkedDownloader.download for errors.
    """
    downloader = ChunkedDownloader(config=config, session=session)
    return await downloader.download(url, dest_dir, cancel_event=cancel_event)
