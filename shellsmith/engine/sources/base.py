"""Input source interface.

An input source turns a locator (and optionally a pinned revision) into a
concrete revision plus the content-addressed handle under which the
package store keeps that revision's artifacts.  Sources are read-only and
know nothing about input names, lock records or caching -- that is the
registry's job.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from shellsmith.engine.models.enums import SourceScheme


class SourceLookupError(LookupError):
    """The source could not produce (or confirm) a revision."""


class UnknownSchemeError(SourceLookupError):
    def __init__(self, locator: str) -> None:
        super().__init__(f"no input source handles locator '{locator}'")


@dataclass(frozen=True)
class SourceRevision:
    revision: str
    handle: str


@runtime_checkable
class InputSource(Protocol):
    """Async protocol for resolving locators to pinned revisions."""

    async def resolve(self, locator: str, revision: str | None = None) -> SourceRevision:
        """Return the pinned revision for *locator*.

        With *revision* set, only confirm that the source still has it.
        Without, fetch the latest revision.  Raises ``SourceLookupError``.
        """
        ...


def split_locator(locator: str) -> tuple[SourceScheme, str]:
    """Split ``scheme:rest`` into its scheme and remainder."""
    scheme, sep, rest = locator.partition(":")
    if not sep or not rest:
        raise UnknownSchemeError(locator)
    try:
        return SourceScheme(scheme.lower()), rest
    except ValueError:
        raise UnknownSchemeError(locator) from None


def content_handle(locator: str, revision: str) -> str:
    """Deterministic store key for a (locator, revision) pair."""
    digest = hashlib.sha256(f"{locator}@{revision}".encode()).hexdigest()
    return digest[:32]
