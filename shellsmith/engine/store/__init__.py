"""Package store implementations."""

from shellsmith.engine.store.base import PackageStore
from shellsmith.engine.store.local import LocalPackageStore

__all__ = ["LocalPackageStore", "PackageStore"]
