"""Split a resource length into contiguous, exhaustive byte ranges."""

import logging
from typing import List

from rangefetch.download.models import ByteRange
from rangefetch.errors.exceptions import SizeUnknownError

logger = logging.getLogger(__name__)


def plan_ranges(total_size: int, parts: int) -> List[ByteRange]:
    """
    Partition [0, total_size) into byte ranges.

    Every range gets total_size // parts bytes; the last range also takes
    the remainder. When total_size < parts the part count is clamped to
    total_size so that no range is empty.

    Args:
        total_size: Resource length in bytes (must be > 0)
        parts: Requested number of ranges (must be >= 1)

    Returns:
        Ranges ordered by index (1-based)

    Raises:
        ValueError: If parts < 1
        SizeUnknownError: If total_size <= 0

    Example:
        >>> [(r.start, r.end) for r in plan_ranges(101, 4)]
        [(0, 24), (25, 49), (50, 74), (75, 100)]
    """
    if parts < 1:
        raise ValueError(f"parts must be >= 1, got {parts}")
    if total_size <= 0:
        raise SizeUnknownError(
            f"Cannot plan ranges for a resource of {total_size} bytes",
            context={"total_size": total_size},
        )

    if total_size < parts:
        logger.warning(
            "Resource smaller than part count, clamping",
            extra={"total_size": total_size, "parts": parts},
        )
        parts = total_size

    base = total_size // parts
    ranges = []
    for i in range(parts):
        start = i * base
        end = total_size - 1 if i == parts - 1 else start + base - 1
        ranges.append(ByteRange(index=i + 1, start=start, end=end))

    return ranges
