"""
Intermediate storage for part artifacts.

Artifacts are scoped to a single run: the disk store keeps them in a private
directory named after the run ID, so concurrent downloads into the same
working directory never share files. Small resources are kept in memory.
"""

import io
import logging
import shutil
import tempfile
from abc import ABC, abstractmethod
from contextlib import contextmanager
from pathlib import Path
from typing import BinaryIO, Dict, Iterator, Optional

logger = logging.getLogger(__name__)


class PartStore(ABC):
    """Keyed storage for part artifacts, one slot per range index."""

    kind: str = "abstract"

    @abstractmethod
    @contextmanager
    def writer(self, index: int) -> Iterator[BinaryIO]:
        """
        Open the slot for index for writing, discarding previous content.

        Raises:
            OSError: If the slot cannot be opened
        """

    @abstractmethod
    def open_reader(self, index: int) -> BinaryIO:
        """
        Open the slot for index for reading.

        Raises:
            FileNotFoundError: If nothing was stored for index
        """

    @abstractmethod
    def size(self, index: int) -> int:
        """Number of bytes stored for index (0 when absent)."""

    @abstractmethod
    def location(self, index: int) -> str:
        """Human-readable location of the slot, for logging."""

    @abstractmethod
    def discard(self, index: int) -> None:
        """Remove the slot for index if present."""

    @abstractmethod
    def cleanup(self) -> None:
        """Remove all artifacts. Best-effort, never raises."""


class DiskPartStore(PartStore):
    """Part artifacts as files in a run-scoped temporary directory."""

    kind = "disk"

    def __init__(self, run_id: str, work_dir: Optional[str] = None):
        if work_dir is not None:
            Path(work_dir).mkdir(parents=True, exist_ok=True)
        self.directory = Path(
            tempfile.mkdtemp(prefix=f"rangefetch-{run_id}-", dir=work_dir)
        )

    def part_path(self, index: int) -> Path:
        return self.directory / f"part-{index}.tmp"

    @contextmanager
    def writer(self, index: int) -> Iterator[BinaryIO]:
        with open(self.part_path(index), "wb") as f:
            yield f
            f.flush()

    def open_reader(self, index: int) -> BinaryIO:
        return open(self.part_path(index), "rb")

    def size(self, index: int) -> int:
        try:
            return self.part_path(index).stat().st_size
        except FileNotFoundError:
            return 0

    def location(self, index: int) -> str:
        return str(self.part_path(index))

    def discard(self, index: int) -> None:
        self.part_path(index).unlink(missing_ok=True)

    def cleanup(self) -> None:
        shutil.rmtree(self.directory, ignore_errors=True)


class MemoryPartStore(PartStore):
    """Part artifacts as in-memory buffers."""

    kind = "memory"

    def __init__(self, run_id: str):
        self.run_id = run_id
        self._parts: Dict[int, bytes] = {}

    @contextmanager
    def writer(self, index: int) -> Iterator[BinaryIO]:
        self._parts.pop(index, None)
        buffer = io.BytesIO()
        yield buffer
        # Only committed when the body completed without raising
        self._parts[index] = buffer.getvalue()

    def open_reader(self, index: int) -> BinaryIO:
        try:
            return io.BytesIO(self._parts[index])
        except KeyError:
            raise FileNotFoundError(f"No artifact stored for part {index}") from None

    def size(self, index: int) -> int:
        return len(self._parts.get(index, b""))

    def location(self, index: int) -> str:
        return f"memory://{self.run_id}/part-{index}"

    def discard(self, index: int) -> None:
        self._parts.pop(index, None)

    def cleanup(self) -> None:
        self._parts.clear()


def open_part_store(
    run_id: str,
    total_size: int,
    memory_threshold: int,
    work_dir: Optional[str] = None,
) -> PartStore:
    """
    Pick a part store for a resource of total_size bytes.

    Args:
        run_id: Unique identifier of the download run
        total_size: Resource length in bytes
        memory_threshold: Largest total size kept in memory (0 disables)
        work_dir: Parent directory for the disk store (None = system temp)

    Returns:
        MemoryPartStore for small resources, DiskPartStore otherwise

    Raises:
        OSError: If the disk store directory cannot be created
    """
    if total_size <= memory_threshold:
        store: PartStore = MemoryPartStore(run_id)
    else:
        store = DiskPartStore(run_id, work_dir=work_dir)

    logger.debug(
        "Opened part store",
        extra={"store": store.kind, "total_size": total_size},
    )
    return store
