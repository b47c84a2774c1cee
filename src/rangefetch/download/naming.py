"""
Destination file naming from response headers and the URL.

Base name: Content-Disposition filename, else the last URL path segment,
else a random placeholder. Extension: looked up from Content-Type.
"""

import logging
import mimetypes
import secrets
from email.message import Message
from pathlib import PurePosixPath, PureWindowsPath
from typing import Optional
from urllib.parse import unquote, urlparse

from rangefetch.download.models import ResourceDescriptor

logger = logging.getLogger(__name__)

RANDOM_NAME_PREFIX = "download-"


def _safe_component(name: Optional[str]) -> str:
    """Reduce a candidate name to a single path component without traversal."""
    if not name:
        return ""
    # Both separators: a disposition filename may come from a Windows server
    name = PureWindowsPath(PurePosixPath(name).name).name
    name = name.strip().replace("\x00", "")
    if name in (".", ".."):
        return ""
    return name


def filename_from_disposition(content_disposition: Optional[str]) -> Optional[str]:
    """
    Extract the filename parameter from a Content-Disposition value.

    Handles both filename="..." and RFC 2231/5987 filename*=UTF-8''... forms.

    Returns:
        Filename reduced to a single path component, or None
    """
    if not content_disposition:
        return None

    msg = Message()
    msg["Content-Disposition"] = content_disposition
    filename = msg.get_filename()
    safe = _safe_component(filename)
    return safe or None


def filename_from_url(url: str) -> Optional[str]:
    """Last non-empty path segment of the URL, percent-decoded."""
    try:
        path = urlparse(url).path
    except ValueError:
        return None
    safe = _safe_component(unquote(path.rstrip("/")))
    return safe or None


def random_name() -> str:
    """Placeholder name used when neither headers nor URL provide one."""
    return f"{RANDOM_NAME_PREFIX}{secrets.token_hex(8)}"


def base_name(content_disposition: Optional[str], url: str) -> str:
    """
    Choose the base file name: disposition, then URL path, then random.

    Never returns an empty string.
    """
    name = filename_from_disposition(content_disposition)
    if name:
        return name

    name = filename_from_url(url)
    if name:
        return name

    name = random_name()
    logger.warning(
        "No file name in Content-Disposition or URL, using placeholder",
        extra={"download_url": url, "destination": name},
    )
    return name


def extension_for_content_type(content_type: Optional[str]) -> str:
    """
    Map a Content-Type value to a file extension.

    Parameters such as "; charset=UTF-8" are ignored.

    Returns:
        Extension including the leading dot, or "" if unknown
    """
    if not content_type:
        return ""

    media_type = content_type.split(";", 1)[0].strip().lower()
    if not media_type:
        return ""

    extension = mimetypes.guess_extension(media_type)
    if not extension:
        logger.debug(
            "No extension known for Content-Type",
            extra={"content_type": media_type},
        )
        return ""
    return extension


def destination_name(descriptor: ResourceDescriptor) -> str:
    """
    Final file name for the resource.

    The Content-Type extension is appended unless the base name already
    ends with it.
    """
    name = base_name(descriptor.content_disposition, descriptor.url)
    extension = extension_for_content_type(descriptor.content_type)
    if extension and not name.lower().endswith(extension.lower()):
        name = f"{name}{extension}"
    return name
