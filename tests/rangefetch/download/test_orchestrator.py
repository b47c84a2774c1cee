"""
End-to-end tests for ChunkedDownloader against a local range server.

Test coverage:
- Round trip for several part counts, disk and memory stores
- Retry of a transiently failing range
- All-or-nothing outcome with lowest-index error selection
- Servers that ignore Range
- Cancellation by event and by deadline
- Destination naming and overwrite
- Injected session ownership
"""

import asyncio
import os
import random
import re
import time
from typing import Dict, List, Optional, Set, Tuple

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from rangefetch.config import DownloadConfig
from rangefetch.download.http_client import create_session
from rangefetch.download.orchestrator import ChunkedDownloader, download_file
from rangefetch.download.planner import plan_ranges
from rangefetch.errors.exceptions import (
    ContextCancelledError,
    MetadataUnavailableError,
    PartRetrievalFailedError,
    SizeUnknownError,
    UnexpectedStatusError,
)

pytestmark = pytest.mark.integration

RANGE_RE = re.compile(r"bytes=(\d+)-(\d+)")


def make_content(size: int, seed: int = 7) -> bytes:
    return random.Random(seed).randbytes(size)


class RangeFileBackend:
    """Serves one byte string with HEAD and single-range GET support."""

    def __init__(
        self,
        content: bytes,
        content_type: Optional[str] = "application/pdf",
        content_disposition: Optional[str] = None,
        head_status: int = 200,
        honour_ranges: bool = True,
    ):
        self.content = content
        self.content_type = content_type
        self.content_disposition = content_disposition
        self.head_status = head_status
        self.honour_ranges = honour_ranges
        # Range start offset -> number of 503 answers left
        self.fail_counts: Dict[int, int] = {}
        # Range start offsets that always answer 500
        self.always_fail: Set[int] = set()
        self.stall = False
        self.release = asyncio.Event()
        self.requests: List[Tuple[str, Optional[str]]] = []

    def app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/{tail:.*}", self.handle)
        return app

    def _headers(self) -> Dict[str, str]:
        headers = {}
        if self.content_type:
            headers["Content-Type"] = self.content_type
        if self.content_disposition:
            headers["Content-Disposition"] = self.content_disposition
        return headers

    def gets_for(self, start: int) -> int:
        return sum(
            1
            for method, header in self.requests
            if method == "GET" and header and header.startswith(f"bytes={start}-")
        )

    @property
    def get_count(self) -> int:
        return sum(1 for method, _ in self.requests if method == "GET")

    async def handle(self, request: web.Request) -> web.StreamResponse:
        range_header = request.headers.get("Range")
        self.requests.append((request.method, range_header))

        if request.method == "HEAD":
            if self.head_status != 200:
                return web.Response(status=self.head_status)
            return web.Response(body=self.content, headers=self._headers())

        match = RANGE_RE.fullmatch(range_header or "")
        if not self.honour_ranges or match is None:
            return web.Response(body=self.content, headers=self._headers())

        start, end = int(match.group(1)), int(match.group(2))
        if self.stall:
            await self.release.wait()
        if start in self.always_fail:
            return web.Response(status=500, text="boom")
        remaining = self.fail_counts.get(start, 0)
        if remaining:
            self.fail_counts[start] = remaining - 1
            return web.Response(status=503, text="busy")

        headers = self._headers()
        headers["Content-Range"] = f"bytes {start}-{end}/{len(self.content)}"
        return web.Response(
            status=206, body=self.content[start : end + 1], headers=headers
        )


def disk_config(tmp_path, **overrides) -> DownloadConfig:
    values = dict(
        parts=4,
        max_retries=3,
        retry_delay=0.0,
        timeout_seconds=10.0,
        memory_threshold=0,
        work_dir=str(tmp_path / "work"),
    )
    values.update(overrides)
    return DownloadConfig(**values)


def leftovers(directory) -> list:
    return list(directory.iterdir()) if directory.exists() else []


class TestRoundTrip:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("parts", [1, 2, 4, 8])
    async def test_output_equals_resource(self, tmp_path, parts):
        content = make_content(100_003)
        backend = RangeFileBackend(content)

        async with TestServer(backend.app()) as server:
            url = str(server.make_url("/files/report.pdf"))
            downloader = ChunkedDownloader(disk_config(tmp_path, parts=parts))
            result = await downloader.download(url, tmp_path / "out")

        assert result.path == tmp_path / "out" / "report.pdf"
        assert result.path.read_bytes() == content
        assert result.bytes_written == len(content)
        assert result.parts == parts
        assert result.descriptor.total_size == len(content)
        assert backend.get_count == parts
        assert leftovers(tmp_path / "work") == []

    @pytest.mark.asyncio
    async def test_small_resource_uses_memory_store(self, tmp_path):
        content = make_content(4096)
        backend = RangeFileBackend(content)
        config = disk_config(tmp_path, memory_threshold=1024 * 1024)

        async with TestServer(backend.app()) as server:
            url = str(server.make_url("/report.pdf"))
            result = await ChunkedDownloader(config).download(url, tmp_path / "out")

        assert result.path.read_bytes() == content
        assert not (tmp_path / "work").exists()

    @pytest.mark.asyncio
    async def test_more_parts_than_bytes(self, tmp_path):
        content = b"abc"
        backend = RangeFileBackend(content)

        async with TestServer(backend.app()) as server:
            url = str(server.make_url("/tiny.pdf"))
            result = await ChunkedDownloader(disk_config(tmp_path, parts=8)).download(
                url, tmp_path
            )

        assert result.path.read_bytes() == b"abc"
        assert result.parts == 3

    @pytest.mark.asyncio
    async def test_overwrites_existing_file(self, tmp_path):
        content = make_content(10_000)
        backend = RangeFileBackend(content)
        (tmp_path / "report.pdf").write_bytes(b"old")

        async with TestServer(backend.app()) as server:
            url = str(server.make_url("/report.pdf"))
            result = await ChunkedDownloader(disk_config(tmp_path)).download(url, tmp_path)

        assert result.path.read_bytes() == content

    @pytest.mark.asyncio
    async def test_injected_session_left_open(self, tmp_path):
        content = make_content(2048)
        backend = RangeFileBackend(content)

        async with TestServer(backend.app()) as server:
            url = str(server.make_url("/report.pdf"))
            async with create_session() as session:
                result = await download_file(
                    url, tmp_path, config=disk_config(tmp_path), session=session
                )
                assert not session.closed

        assert result.path.read_bytes() == content


class TestNaming:
    @pytest.mark.asyncio
    async def test_disposition_name(self, tmp_path):
        backend = RangeFileBackend(
            make_content(1000),
            content_disposition='attachment; filename="q3-summary.pdf"',
        )

        async with TestServer(backend.app()) as server:
            url = str(server.make_url("/download"))
            result = await ChunkedDownloader(disk_config(tmp_path)).download(url, tmp_path)

        assert result.path.name == "q3-summary.pdf"

    @pytest.mark.asyncio
    async def test_extension_from_content_type(self, tmp_path):
        backend = RangeFileBackend(make_content(1000), content_type="application/json")

        async with TestServer(backend.app()) as server:
            url = str(server.make_url("/exports/latest"))
            result = await ChunkedDownloader(disk_config(tmp_path)).download(url, tmp_path)

        assert result.path.name == "latest.json"

    @pytest.mark.asyncio
    async def test_placeholder_name(self, tmp_path):
        backend = RangeFileBackend(make_content(1000))

        async with TestServer(backend.app()) as server:
            url = str(server.make_url("/"))
            result = await ChunkedDownloader(disk_config(tmp_path)).download(url, tmp_path)

        assert result.path.name.startswith("download-")
        assert result.path.name.endswith(".pdf")


class TestRetry:
    @pytest.mark.asyncio
    async def test_transient_failure_recovers(self, tmp_path):
        content = make_content(40_000)
        ranges = plan_ranges(len(content), 4)
        backend = RangeFileBackend(content)
        backend.fail_counts[ranges[1].start] = 2

        async with TestServer(backend.app()) as server:
            url = str(server.make_url("/report.pdf"))
            result = await ChunkedDownloader(disk_config(tmp_path)).download(url, tmp_path)

        assert result.path.read_bytes() == content
        assert backend.gets_for(ranges[1].start) == 3
        assert backend.gets_for(ranges[0].start) == 1

    @pytest.mark.asyncio
    async def test_retry_delays_are_linear(self, tmp_path):
        content = make_content(40_000)
        ranges = plan_ranges(len(content), 4)
        backend = RangeFileBackend(content)
        backend.fail_counts[ranges[2].start] = 2
        delays = []

        async def record_sleep(delay):
            delays.append(delay)

        config = disk_config(tmp_path, retry_delay=0.25)
        async with TestServer(backend.app()) as server:
            url = str(server.make_url("/report.pdf"))
            await ChunkedDownloader(config, sleep=record_sleep).download(url, tmp_path)

        assert delays == [0.25, 0.5]


class TestFailure:
    @pytest.mark.asyncio
    async def test_lowest_index_error_and_no_output(self, tmp_path):
        content = make_content(40_000)
        ranges = plan_ranges(len(content), 4)
        backend = RangeFileBackend(content)
        backend.always_fail = {ranges[1].start, ranges[2].start}
        out_dir = tmp_path / "out"

        async with TestServer(backend.app()) as server:
            url = str(server.make_url("/report.pdf"))
            with pytest.raises(PartRetrievalFailedError) as exc_info:
                await ChunkedDownloader(disk_config(tmp_path, max_retries=2)).download(
                    url, out_dir
                )

        assert exc_info.value.index == 2
        assert exc_info.value.attempts == 2
        # Retry budget is exact and every part still ran to completion
        assert backend.gets_for(ranges[1].start) == 2
        assert backend.gets_for(ranges[2].start) == 2
        assert backend.gets_for(ranges[3].start) == 1
        assert leftovers(out_dir) == []
        assert leftovers(tmp_path / "work") == []

    @pytest.mark.asyncio
    async def test_fail_fast_still_all_or_nothing(self, tmp_path):
        content = make_content(40_000)
        ranges = plan_ranges(len(content), 4)
        backend = RangeFileBackend(content)
        backend.always_fail = {ranges[1].start}
        config = disk_config(tmp_path, max_retries=1, fail_fast=True)

        async with TestServer(backend.app()) as server:
            url = str(server.make_url("/report.pdf"))
            with pytest.raises(PartRetrievalFailedError) as exc_info:
                await ChunkedDownloader(config).download(url, tmp_path / "out")

        assert exc_info.value.index == 2
        assert leftovers(tmp_path / "out") == []

    @pytest.mark.asyncio
    async def test_server_ignoring_range_is_rejected(self, tmp_path):
        backend = RangeFileBackend(make_content(10_000), honour_ranges=False)

        async with TestServer(backend.app()) as server:
            url = str(server.make_url("/report.pdf"))
            with pytest.raises(PartRetrievalFailedError) as exc_info:
                await ChunkedDownloader(disk_config(tmp_path)).download(
                    url, tmp_path / "out"
                )

        assert exc_info.value.index == 1
        assert exc_info.value.attempts == 1
        assert backend.get_count == 4
        assert leftovers(tmp_path / "out") == []

    @pytest.mark.asyncio
    async def test_single_part_accepts_full_response(self, tmp_path):
        content = make_content(10_000)
        backend = RangeFileBackend(content, honour_ranges=False)

        async with TestServer(backend.app()) as server:
            url = str(server.make_url("/report.pdf"))
            result = await ChunkedDownloader(disk_config(tmp_path, parts=1)).download(
                url, tmp_path
            )

        assert result.path.read_bytes() == content

    @pytest.mark.asyncio
    async def test_head_error_status(self, tmp_path):
        backend = RangeFileBackend(make_content(100), head_status=404)

        async with TestServer(backend.app()) as server:
            url = str(server.make_url("/missing.pdf"))
            with pytest.raises(UnexpectedStatusError) as exc_info:
                await ChunkedDownloader(disk_config(tmp_path)).download(url, tmp_path)

        assert exc_info.value.status_code == 404
        assert backend.get_count == 0

    @pytest.mark.asyncio
    async def test_empty_resource(self, tmp_path):
        backend = RangeFileBackend(b"")

        async with TestServer(backend.app()) as server:
            url = str(server.make_url("/empty.pdf"))
            with pytest.raises(SizeUnknownError):
                await ChunkedDownloader(disk_config(tmp_path)).download(
                    url, tmp_path / "out"
                )

        assert backend.get_count == 0
        assert not (tmp_path / "out").exists()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("url", ["", "ftp://example.com/file.pdf", "not a url"])
    async def test_invalid_url(self, tmp_path, url):
        with pytest.raises(MetadataUnavailableError, match="URL validation failed"):
            await ChunkedDownloader(disk_config(tmp_path)).download(url, tmp_path)

    @pytest.mark.asyncio
    async def test_unreachable_host(self, tmp_path):
        backend = RangeFileBackend(b"x")
        async with TestServer(backend.app()) as server:
            url = str(server.make_url("/report.pdf"))
        # Server is closed now; the port refuses connections

        with pytest.raises(MetadataUnavailableError):
            await ChunkedDownloader(disk_config(tmp_path)).download(url, tmp_path)


async def wait_for_gets(backend: RangeFileBackend, count: int) -> None:
    async def poll():
        while backend.get_count < count:
            await asyncio.sleep(0.01)

    await asyncio.wait_for(poll(), timeout=5)


class TestCancellation:
    @pytest.mark.asyncio
    async def test_cancel_event_aborts_download(self, tmp_path):
        backend = RangeFileBackend(make_content(40_000))
        backend.stall = True
        cancel_event = asyncio.Event()

        async with TestServer(backend.app()) as server:
            url = str(server.make_url("/report.pdf"))
            try:
                task = asyncio.create_task(
                    ChunkedDownloader(disk_config(tmp_path)).download(
                        url, tmp_path / "out", cancel_event=cancel_event
                    )
                )
                await wait_for_gets(backend, 4)
                cancel_event.set()

                with pytest.raises(ContextCancelledError, match="cancelled"):
                    await asyncio.wait_for(task, timeout=5)
            finally:
                backend.release.set()

        assert leftovers(tmp_path / "out") == []
        assert leftovers(tmp_path / "work") == []

    @pytest.mark.asyncio
    async def test_deadline_aborts_download(self, tmp_path):
        backend = RangeFileBackend(make_content(40_000))
        backend.stall = True
        config = disk_config(tmp_path, timeout_seconds=0.5)

        async with TestServer(backend.app()) as server:
            url = str(server.make_url("/report.pdf"))
            try:
                with pytest.raises(ContextCancelledError, match="deadline"):
                    await ChunkedDownloader(config).download(url, tmp_path / "out")
            finally:
                backend.release.set()

        assert leftovers(tmp_path / "out") == []
        assert leftovers(tmp_path / "work") == []

    @pytest.mark.asyncio
    async def test_deadline_during_assembly_leaves_no_output(self, tmp_path, monkeypatch):
        backend = RangeFileBackend(make_content(40_000))
        config = disk_config(tmp_path, timeout_seconds=0.7)
        real_fsync = os.fsync

        def slow_fsync(fd):
            time.sleep(1.5)
            real_fsync(fd)

        monkeypatch.setattr(os, "fsync", slow_fsync)

        async with TestServer(backend.app()) as server:
            url = str(server.make_url("/report.pdf"))
            with pytest.raises(ContextCancelledError, match="deadline"):
                await ChunkedDownloader(config).download(url, tmp_path / "out")

        # Give an abandoned assembly thread time to finish writing
        await asyncio.sleep(2)

        assert backend.get_count == 4
        assert leftovers(tmp_path / "out") == []
        assert leftovers(tmp_path / "work") == []

    @pytest.mark.asyncio
    async def test_event_set_before_start(self, tmp_path):
        backend = RangeFileBackend(make_content(40_000))
        backend.stall = True
        cancel_event = asyncio.Event()
        cancel_event.set()

        async with TestServer(backend.app()) as server:
            url = str(server.make_url("/report.pdf"))
            try:
                with pytest.raises(ContextCancelledError):
                    await ChunkedDownloader(disk_config(tmp_path)).download(
                        url, tmp_path / "out", cancel_event=cancel_event
                    )
            finally:
                backend.release.set()

        assert leftovers(tmp_path / "out") == []
