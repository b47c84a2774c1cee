"""Metadata resolver: learn size and naming hints without transferring the body."""

import asyncio
import logging

import aiohttp

from rangefetch.download.models import ResourceDescriptor
from rangefetch.errors.exceptions import (
    MetadataUnavailableError,
    SizeUnknownError,
    UnexpectedStatusError,
)

logger = logging.getLogger(__name__)


def parse_content_length(value: str) -> int:
    """
    Parse a Content-Length header value.

    Raises:
        SizeUnknownError: If the value is not a non-negative integer
    """
    value = value.strip()
    # isdigit() alone accepts non-ASCII digits such as "²" that int() rejects
    if not (value.isascii() and value.isdigit()):
        raise SizeUnknownError(
            f"invalid Content-Length value: {value!r}",
            context={"content_length": value},
        )
    return int(value)


async def resolve_metadata(
    session: aiohttp.ClientSession,
    url: str,
    timeout: float = 60.0,
) -> ResourceDescriptor:
    """
    Issue a HEAD request and describe the remote resource.

    Args:
        session: aiohttp session (caller manages lifecycle)
        url: Resource URL
        timeout: Total timeout for the HEAD request in seconds

    Returns:
        ResourceDescriptor with size and naming hints

    Raises:
        MetadataUnavailableError: Request could not be sent or transport failed
        UnexpectedStatusError: Server answered with a non-2xx status
        SizeUnknownError: Content-Length missing or unparseable
    """
    try:
        async with session.head(
            url,
            timeout=aiohttp.ClientTimeout(total=timeout),
            allow_redirects=True,
        ) as response:
            status = response.status
            reason = response.reason
            headers = response.headers
    except (aiohttp.InvalidURL, ValueError) as e:
        raise MetadataUnavailableError(
            "failed to create HEAD request", cause=e, context={"url": url}
        ) from e
    except (aiohttp.ClientError, asyncio.TimeoutError) as e:
        raise MetadataUnavailableError(
            "failed to perform HEAD request", cause=e, context={"url": url}
        ) from e

    if not 200 <= status < 300:
        raise UnexpectedStatusError(
            status, f"server returned non-success status: {status} {reason or ''}".rstrip()
        )

    content_length = headers.get("Content-Length")
    if content_length is None or content_length.strip() == "":
        raise SizeUnknownError("Content-Length header is missing")
    total_size = parse_content_length(content_length)

    content_disposition = headers.get("Content-Disposition") or None
    if content_disposition is None:
        logger.warning("Content-Disposition header is missing", extra={"download_url": url})

    content_type = headers.get("Content-Type") or None
    if content_type is None:
        logger.warning("Content-Type header is missing", extra={"download_url": url})

    descriptor = ResourceDescriptor(
        url=url,
        total_size=total_size,
        content_type=content_type,
        content_disposition=content_disposition,
    )
    logger.info(
        "Resolved resource metadata",
        extra={
            "download_url": url,
            "http_status": status,
            "total_size": total_size,
            "content_type": content_type,
            "content_disposition": content_disposition,
        },
    )
    return descriptor
