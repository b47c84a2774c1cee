"""
Security validation module.

Provides input validation and sanitization for security-sensitive operations:
    - validate_download_url(): scheme and hostname checks before any request
    - sanitize_url(): remove auth tokens from logged URLs
"""

from rangefetch.security.url_validation import (
    ALLOWED_SCHEMES,
    SENSITIVE_PARAMS,
    sanitize_url,
    validate_download_url,
)

__all__ = [
    "validate_download_url",
    "sanitize_url",
    "ALLOWED_SCHEMES",
    "SENSITIVE_PARAMS",
]
