"""Lock file persistence.

The lock file sits next to the descriptor (``shellsmith.lock`` by default)
and stores the ``LockRecord`` as pretty-printed JSON.  Writes are atomic:
data goes to a temporary file in the same directory which is then renamed
over the target, so a crash never leaves a half-written lock behind.
"""

from __future__ import annotations

import contextlib
import os
import tempfile
from functools import partial
from pathlib import Path

from anyio import to_thread

from shellsmith.engine.models.lock import LockRecord


async def read_lock(path: Path) -> LockRecord | None:
    """Load a lock record, or ``None`` when the file does not exist."""
    raw = await to_thread.run_sync(partial(_read_optional, path))
    if raw is None:
        return None
    return LockRecord.model_validate_json(raw)


async def write_lock(path: Path, record: LockRecord) -> None:
    data = record.model_dump_json(indent=2) + "\n"
    await to_thread.run_sync(partial(_atomic_write, path, data))


def merge_locks(previous: LockRecord | None, current: LockRecord, *, keep: set[str] | None = None) -> LockRecord:
    """Overlay *current* on *previous*, dropping names outside *keep*."""
    merged = LockRecord()
    if previous is not None:
        merged.inputs.update(previous.inputs)
    merged.inputs.update(current.inputs)
    if keep is not None:
        merged.inputs = {name: entry for name, entry in merged.inputs.items() if name in keep}
    merged.inputs = dict(sorted(merged.inputs.items()))
    return merged


# -- Sync helpers (run in thread pool) -----------------------------------------


def _atomic_write(path: Path, data: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(dir=path.parent, suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(data)
        os.replace(tmp_path, path)
    except BaseException:
        with contextlib.suppress(OSError):
            os.unlink(tmp_path)
        raise


def _read_optional(path: Path) -> str | None:
    try:
        return path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return None
