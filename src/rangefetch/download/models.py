"""
Data models for chunked downloads.

ResourceDescriptor -> plan of ByteRange -> PartArtifact per range -> DownloadResult
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple


@dataclass(frozen=True)
class ResourceDescriptor:
    """
    What the metadata request learned about the remote resource.

    Attributes:
        url: URL that was requested
        total_size: Content-Length in bytes
        content_type: Content-Type header, if present
        content_disposition: Content-Disposition header, if present
    """

    url: str
    total_size: int
    content_type: Optional[str] = None
    content_disposition: Optional[str] = None


@dataclass(frozen=True)
class ByteRange:
    """
    Inclusive byte span [start, end] of the remote resource.

    Attributes:
        index: 1-based position of the range within the plan
        start: First byte offset
        end: Last byte offset (inclusive)
    """

    index: int
    start: int
    end: int

    @property
    def length(self) -> int:
        return self.end - self.start + 1

    @property
    def header_value(self) -> str:
        """Value for the HTTP Range request header."""
        return f"bytes={self.start}-{self.end}"


@dataclass(frozen=True)
class PartArtifact:
    """Bytes retrieved for one ByteRange, persisted in a part store."""

    index: int
    size: int
    location: str  # file path or memory key, for logging only
    attempts: int = 1


@dataclass
class DownloadResult:
    """
    Successful download outcome.

    Failures are never represented here; they are raised as RangeFetchError.
    """

    path: Path
    bytes_written: int
    ranges: Tuple[ByteRange, ...]
    duration_seconds: float
    descriptor: ResourceDescriptor

    @property
    def parts(self) -> int:
        return len(self.ranges)
