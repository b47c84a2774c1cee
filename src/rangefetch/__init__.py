"""
rangefetch: chunked parallel HTTP downloads.

Run as module: python -m rangefetch --url <url> --dest <dir>
"""

from rangefetch.config import DownloadConfig
from rangefetch.download import ChunkedDownloader, DownloadResult, download_file

__version__ = "1.0.0"

__all__ = [
    "ChunkedDownloader",
    "DownloadConfig",
    "DownloadResult",
    "download_file",
]
