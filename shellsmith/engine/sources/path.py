"""Local directory input source.

Handles ``path:<dir>`` and ``file://<dir>`` locators.  The revision of a
directory is the sha256 digest of its file tree (relative POSIX paths plus
file contents), so a pin stays valid exactly as long as the content is
unchanged.  Relative paths are anchored at ``base_dir`` (the descriptor's
directory).

Uses ``anyio.to_thread.run_sync`` so hashing large trees does not block the
event loop.
"""

from __future__ import annotations

import hashlib
import os
from functools import partial
from pathlib import Path
from urllib.parse import unquote, urlparse

from anyio import to_thread

from shellsmith.engine.models.enums import SourceScheme
from shellsmith.engine.sources.base import SourceLookupError, SourceRevision, content_handle, split_locator

_CHUNK = 1024 * 1024


class PathSource:
    """``InputSource`` for directories on the local filesystem."""

    def __init__(self, base_dir: str | Path | None = None) -> None:
        self._base_dir = Path(base_dir) if base_dir is not None else Path.cwd()

    def directory(self, locator: str) -> Path:
        scheme, rest = split_locator(locator)
        if scheme == SourceScheme.FILE:
            raw = unquote(urlparse(locator).path) if rest.startswith("//") else rest
        elif scheme == SourceScheme.PATH:
            raw = rest
        else:
            msg = f"'{locator}' is not a path locator"
            raise SourceLookupError(msg)
        path = Path(raw).expanduser()
        if not path.is_absolute():
            path = self._base_dir / path
        return path

    async def resolve(self, locator: str, revision: str | None = None) -> SourceRevision:
        directory = self.directory(locator)
        current = await to_thread.run_sync(partial(tree_digest, directory))

        if revision is not None and revision != current:
            msg = f"revision '{revision}' is no longer available at {directory} (content is now '{current}')"
            raise SourceLookupError(msg)

        return SourceRevision(revision=current, handle=content_handle(locator, current))


def tree_digest(root: Path) -> str:
    """Return ``sha256:<hex>`` over every regular file below *root*, sorted."""
    if not root.is_dir():
        msg = f"{root} is not a directory"
        raise SourceLookupError(msg)

    files: list[tuple[str, Path]] = []
    for base, dirs, names in os.walk(root):
        dirs.sort()
        base_path = Path(base)
        for name in names:
            path = base_path / name
            if path.is_file():
                files.append((path.relative_to(root).as_posix(), path))
    files.sort(key=lambda item: item[0])

    tree = hashlib.sha256()
    for rel, path in files:
        tree.update(rel.encode("utf-8"))
        tree.update(b"\0")
        tree.update(_file_digest(path).encode("ascii"))
        tree.update(b"\n")
    return "sha256:" + tree.hexdigest()


def _file_digest(path: Path) -> str:
    h = hashlib.sha256()
    with path.open("rb") as f:
        while chunk := f.read(_CHUNK):
            h.update(chunk)
    return h.hexdigest()
