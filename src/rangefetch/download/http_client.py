"""
aiohttp session factory for chunked downloads.

One session is shared by the metadata request and every part fetcher of a run.
"""

from typing import Optional

import aiohttp

DEFAULT_USER_AGENT = "rangefetch/1.0"


def create_session(
    max_connections: int = 100,
    max_connections_per_host: int = 0,
    timeout: Optional[float] = None,
    user_agent: str = DEFAULT_USER_AGENT,
) -> aiohttp.ClientSession:
    """
    Create an aiohttp session for range downloads.

    Args:
        max_connections: Total connection pool size (default: 100)
        max_connections_per_host: Per-host connection limit (0 = unlimited)
        timeout: Optional default total timeout per request in seconds
        user_agent: User-Agent header value

    Returns:
        Configured ClientSession (caller closes it)
    """
    connector = aiohttp.TCPConnector(
        limit=max_connections,
        limit_per_host=max_connections_per_host,
    )
    # Content-Encoding would change the byte count of a range response
    headers = {"User-Agent": user_agent, "Accept-Encoding": "identity"}
    return aiohttp.ClientSession(
        connector=connector,
        headers=headers,
        timeout=aiohttp.ClientTimeout(total=timeout),
        auto_decompress=False,
    )
