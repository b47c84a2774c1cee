"""
Chunked download module.

Fetches one remote file as N byte ranges over concurrent HTTP Range requests
and reassembles them into a byte-exact copy.

Components:
    - metadata: HEAD request for size and naming hints
    - planner: contiguous, exhaustive range partitioning
    - part_fetcher: per-range GET with bounded linear-backoff retry
    - store: run-scoped part artifacts (disk or memory)
    - assembler: ordered concatenation with atomic rename
    - orchestrator: fan-out, barrier and single-error selection
"""

from rangefetch.download.models import (
    ByteRange,
    DownloadResult,
    PartArtifact,
    ResourceDescriptor,
)
from rangefetch.download.orchestrator import ChunkedDownloader, download_file
from rangefetch.download.planner import plan_ranges

__all__ = [
    "ByteRange",
    "ChunkedDownloader",
    "DownloadResult",
    "PartArtifact",
    "ResourceDescriptor",
    "download_file",
    "plan_ranges",
]
