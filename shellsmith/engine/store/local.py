"""Local filesystem package store.

Artifacts live in directories under a single root::

    {root}/{handle}/{platform}/{package}/

where ``handle`` is the content-addressed key of an input revision (see
``shellsmith.engine.sources.content_handle``).  The store is treated as
append-only and is never written by the engine.

Uses ``anyio.to_thread.run_sync`` for non-blocking file I/O.
"""

from __future__ import annotations

from pathlib import Path

from anyio import to_thread

from shellsmith.engine.errors import PackageNotFoundError


class LocalPackageStore:
    """Local filesystem implementation of the PackageStore protocol."""

    def __init__(self, root: str | Path) -> None:
        self._root = Path(root)

    @property
    def root(self) -> Path:
        return self._root

    def artifact_path(self, handle: str, package: str, platform: str) -> Path:
        return self._root / handle / platform / package

    async def lookup(self, handle: str, package: str, platform: str) -> Path:
        path = self.artifact_path(handle, package, platform)
        if not await to_thread.run_sync(path.is_dir):
            raise PackageNotFoundError(package, platform, handle=handle)
        return path
