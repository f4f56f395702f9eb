"""Package store interface.

The package store is an external, content-addressed collaborator: given the
handle of a resolved input revision, a package name and a platform, it
returns the path of the installed artifact.  The engine only ever reads
from it; populating the store is somebody else's job.
"""

from __future__ import annotations

from pathlib import Path
from typing import Protocol, runtime_checkable


@runtime_checkable
class PackageStore(Protocol):
    """Async protocol for platform-scoped artifact lookups.

    Storage layout (keyed by handle)::

        {root}/{handle}/{platform}/{package}/
    """

    async def lookup(self, handle: str, package: str, platform: str) -> Path:
        """Return the artifact path.  Raises ``PackageNotFoundError`` if absent."""
        ...
