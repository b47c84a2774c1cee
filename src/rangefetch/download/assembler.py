"""
Concatenate part artifacts into the destination file.

Parts are written in ascending index order into a temporary file next to the
destination (staging), which is renamed into place only after every byte is
on disk (commit). A failed or abandoned assembly never leaves a partial
destination file behind.
"""

import logging
import os
import shutil
import tempfile
from pathlib import Path
from typing import Sequence, Tuple

from rangefetch.download.models import ByteRange
from rangefetch.download.store import PartStore
from rangefetch.errors.exceptions import AssemblyFailedError

logger = logging.getLogger(__name__)

COPY_BUFFER_SIZE = 1024 * 1024
OUTPUT_FILE_MODE = 0o644  # mkstemp creates 0600


def discard_staged(staged_path: Path) -> None:
    """Remove a staged file that will not be committed. Never raises."""
    try:
        staged_path.unlink(missing_ok=True)
    except OSError as e:
        logger.warning(f"Failed to remove temporary file {staged_path}: {e}")


def stage_parts(
    store: PartStore,
    ranges: Sequence[ByteRange],
    destination: Path,
) -> Tuple[Path, int]:
    """
    Write all artifacts in index order to a temporary file beside destination.

    Blocking; run with asyncio.to_thread from async code. The destination
    itself is not touched until commit_staged().

    Args:
        store: Part store holding one artifact per range
        ranges: Planned ranges (any order; assembled by index)
        destination: Final file path

    Returns:
        (staged file path, number of bytes written)

    Raises:
        AssemblyFailedError: An artifact is missing or has the wrong size,
            or the temporary file cannot be written
    """
    ordered = sorted(ranges, key=lambda r: r.index)

    for byte_range in ordered:
        size = store.size(byte_range.index)
        if size != byte_range.length:
            raise AssemblyFailedError(
                f"part {byte_range.index}: artifact holds {size} bytes, "
                f"expected {byte_range.length}",
                context={"part_index": byte_range.index},
            )

    try:
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{destination.name}.", suffix=".partial", dir=destination.parent
        )
    except OSError as e:
        raise AssemblyFailedError(
            f"failed to create output file in {destination.parent}", cause=e
        ) from e

    staged_path = Path(tmp_name)
    written = 0
    try:
        with os.fdopen(fd, "wb") as out:
            for byte_range in ordered:
                with store.open_reader(byte_range.index) as part:
                    shutil.copyfileobj(part, out, COPY_BUFFER_SIZE)
                written += byte_range.length
            out.flush()
            os.fsync(out.fileno())
        os.chmod(staged_path, OUTPUT_FILE_MODE)
    except OSError as e:
        discard_staged(staged_path)
        raise AssemblyFailedError(
            f"failed to write output file {destination}", cause=e
        ) from e

    return staged_path, written


def commit_staged(staged_path: Path, destination: Path) -> None:
    """
    Atomically rename a staged file onto destination (overwriting it).

    Raises:
        AssemblyFailedError: If the rename fails; the staged file is removed
    """
    try:
        os.replace(staged_path, destination)
    except OSError as e:
        discard_staged(staged_path)
        raise AssemblyFailedError(
            f"failed to move output file into place at {destination}", cause=e
        ) from e
