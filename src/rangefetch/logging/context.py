"""Context variables injected into every log record."""

from contextlib import contextmanager
from contextvars import ContextVar
from typing import Dict, Iterator, Optional

_run_id: ContextVar[Optional[str]] = ContextVar("run_id", default=None)
_stage: ContextVar[Optional[str]] = ContextVar("stage", default=None)
_part_index: ContextVar[Optional[int]] = ContextVar("part_index", default=None)


def set_log_context(
    run_id: Optional[str] = None,
    stage: Optional[str] = None,
    part_index: Optional[int] = None,
) -> None:
    """
    Set logging context variables.

    Only the arguments that are not None are updated. Values are task-local:
    each asyncio task started after the call inherits a copy, so per-part
    values set inside a fetcher task never leak into its siblings.
    """
    if run_id is not None:
        _run_id.set(run_id)
    if stage is not None:
        _stage.set(stage)
    if part_index is not None:
        _part_index.set(part_index)


def get_log_context() -> Dict[str, Optional[object]]:
    """Get current logging context."""
    return {
        "run_id": _run_id.get(),
        "stage": _stage.get(),
        "part_index": _part_index.get(),
    }


def clear_log_context() -> None:
    """Reset all context variables."""
    _run_id.set(None)
    _stage.set(None)
    _part_index.set(None)


@contextmanager
def log_context(
    run_id: Optional[str] = None,
    stage: Optional[str] = None,
    part_index: Optional[int] = None,
) -> Iterator[None]:
    """Temporarily set context variables, restoring the previous values on exit."""
    tokens = []
    if run_id is not None:
        tokens.append((_run_id, _run_id.set(run_id)))
    if stage is not None:
        tokens.append((_stage, _stage.set(stage)))
    if part_index is not None:
        tokens.append((_part_index, _part_index.set(part_index)))
    try:
        yield
    finally:
        for var, token in reversed(tokens):
            var.reset(token)
