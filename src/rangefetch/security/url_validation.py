"""
URL validation and sanitization for download sources.

Validation rejects malformed URLs before any request is issued;
sanitization strips credentials from URLs before they reach the logs.
"""

from typing import Set, Tuple
from urllib.parse import urlparse, urlunparse

# Allowed schemes for downloads
ALLOWED_SCHEMES: Set[str] = {"https", "http"}

# Query parameters that may grant access if exposed in logs
SENSITIVE_PARAMS: Set[str] = {
    "sig",
    "signature",
    "token",
    "access_token",
    "key",
    "api_key",
    "apikey",
    "password",
    "secret",
    "x-amz-signature",
    "x-amz-credential",
    "x-amz-security-token",
}


def validate_download_url(url: str) -> Tuple[bool, str]:
    """
    Validate that a URL can be used as a download source.

    Args:
        url: URL to validate

    Returns:
        (is_valid, error_message)
        - (True, "") if valid
        - (False, "error description") if invalid

    Examples:
        >>> validate_download_url("https://example.com/report.pdf")
        (True, '')

        >>> validate_download_url("ftp://example.com/report.pdf")
        (False, 'Unsupported scheme: ftp')
    """
    if not url:
        return False, "Empty URL"

    # Parse URL safely
    try:
        parsed = urlparse(url)
        port = parsed.port
    except ValueError as e:
        return False, f"Invalid URL format: {e}"

    if not parsed.scheme:
        return False, "Missing URL scheme"

    if parsed.scheme.lower() not in ALLOWED_SCHEMES:
        return False, f"Unsupported scheme: {parsed.scheme}"

    if not parsed.hostname:
        return False, "No hostname in URL"

    if port == 0:
        return False, "Invalid port: 0"

    return True, ""


def sanitize_url(url: str) -> str:
    """
    Remove sensitive query parameters and userinfo from URL.

    Preserves the path and structure for debugging while removing
    tokens that could grant access if exposed in logs.

    Args:
        url: URL that may contain sensitive parameters

    Returns:
        URL with sensitive parameters replaced with [REDACTED]
    """
    if not url:
        return url

    try:
        parsed = urlparse(url)
    except ValueError:
        return url  # Return as-is if parsing fails

    if parsed.password:
        host = parsed.hostname or ""
        if parsed.port:
            host = f"{host}:{parsed.port}"
        parsed = parsed._replace(netloc=f"{parsed.username}:[REDACTED]@{host}")

    if parsed.query:
        sanitized_params = []
        for param in parsed.query.split("&"):
            if "=" in param:
                key, _value = param.split("=", 1)
                if key.lower() in SENSITIVE_PARAMS:
                    sanitized_params.append(f"{key}=[REDACTED]")
                    continue
            sanitized_params.append(param)
        parsed = parsed._replace(query="&".join(sanitized_params))

    return urlunparse(parsed)
