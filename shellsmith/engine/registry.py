"""Input registry.

Resolves named inputs to pinned, content-addressed revisions by consulting
the lock record first and an ``InputSource`` second.  Results are kept in an
explicit ``InputCache`` owned by the invocation; several platform
resolutions running as concurrent tasks may share one cache.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from functools import partial
from typing import TYPE_CHECKING

from loguru import logger

from shellsmith.engine.errors import OperationTimeoutError, RevisionConflictError, UnresolvableInputError
from shellsmith.engine.models.lock import LockRecord
from shellsmith.engine.sources.base import SourceLookupError, SourceRevision, content_handle, split_locator

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Mapping

    from shellsmith.engine.models.descriptor import InputRef
    from shellsmith.engine.models.enums import SourceScheme
    from shellsmith.engine.sources.base import InputSource

CacheKey = tuple[str, str, str | None]
"""(input name, locator, requested revision or None)."""


@dataclass(frozen=True)
class ResolvedInput:
    ref: InputRef
    handle: str

    @property
    def revision(self) -> str:
        return self.ref.revision  # type: ignore[return-value]


class InputCache:
    """Single-flight cache of source lookups.

    Reads are plain dict lookups.  The first caller for a key starts the
    fetch; concurrent callers for the same key await that same task instead
    of issuing a second lookup.  Failed fetches are not cached.
    """

    def __init__(self) -> None:
        self._resolved: dict[CacheKey, SourceRevision] = {}
        self._inflight: dict[CacheKey, asyncio.Task[SourceRevision]] = {}

    def get(self, key: CacheKey) -> SourceRevision | None:
        return self._resolved.get(key)

    async def get_or_fetch(
        self,
        key: CacheKey,
        fetch: Callable[[], Awaitable[SourceRevision]],
    ) -> SourceRevision:
        cached = self._resolved.get(key)
        if cached is not None:
            return cached

        # No await between the lookup and the insert: one writer per key.
        task = self._inflight.get(key)
        if task is None:
            task = asyncio.ensure_future(fetch())
            self._inflight[key] = task
            task.add_done_callback(partial(self._settle, key))
        else:
            logger.debug("Cache: joining in-flight lookup for {}", key[0])

        # A cancelled waiter must not cancel the shared lookup.
        return await asyncio.shield(task)

    def _settle(self, key: CacheKey, task: asyncio.Task[SourceRevision]) -> None:
        self._inflight.pop(key, None)
        if task.cancelled() or task.exception() is not None:
            return
        self._resolved[key] = task.result()

    def __len__(self) -> int:
        return len(self._resolved)


class InputRegistry:
    """Resolve ``InputRef`` values to pinned revisions.

    Policy:

    - a lock record entry wins over "latest", but must agree with the
      descriptor's locator and pin (otherwise ``RevisionConflictError``);
    - a pinned revision is only verified against the source;
    - an unpinned, unlocked input is pinned to the source's latest revision;
    - in offline mode no source is contacted and every input must be locked.
    """

    def __init__(
        self,
        sources: Mapping[SourceScheme, InputSource],
        *,
        cache: InputCache | None = None,
        lock: LockRecord | None = None,
        offline: bool = False,
        timeout: float | None = None,
    ) -> None:
        self._sources = dict(sources)
        self._cache = cache if cache is not None else InputCache()
        self._locked = lock.model_copy(deep=True) if lock is not None else LockRecord()
        self._resolved = LockRecord()
        self._offline = offline
        self._timeout = timeout

    @property
    def cache(self) -> InputCache:
        return self._cache

    @property
    def offline(self) -> bool:
        return self._offline

    # -- Public API ------------------------------------------------------------

    async def resolve(self, ref: InputRef) -> InputRef:
        """Return *ref* with its revision populated."""
        return (await self.locate(ref)).ref

    async def locate(self, ref: InputRef) -> ResolvedInput:
        """Resolve *ref* and return it together with its store handle."""
        revision = self._requested_revision(ref)

        if self._offline:
            assert revision is not None  # noqa: S101 -- _requested_revision enforces it
            result = SourceRevision(revision=revision, handle=content_handle(ref.locator, revision))
        else:
            key: CacheKey = (ref.name, ref.locator, revision)
            result = await self._cache.get_or_fetch(key, partial(self._fetch, ref, revision))

        self._resolved.record(ref.name, ref.locator, result.revision)
        return ResolvedInput(ref=ref.pinned(result.revision), handle=result.handle)

    def lock_record(self) -> LockRecord:
        """Lock record covering the inputs resolved by this registry so far."""
        return self._resolved.model_copy(deep=True)

    # -- Internals -------------------------------------------------------------

    def _requested_revision(self, ref: InputRef) -> str | None:
        locked = self._locked.get(ref.name)
        if locked is None:
            if self._offline:
                raise UnresolvableInputError(ref.name, ref.locator, "offline mode requires a lock record")
            return ref.revision

        if locked.locator != ref.locator:
            raise RevisionConflictError(
                ref.name,
                requested=ref.revision,
                locked=locked.revision,
                requested_locator=ref.locator,
                locked_locator=locked.locator,
            )
        if ref.revision is not None and ref.revision != locked.revision:
            raise RevisionConflictError(ref.name, requested=ref.revision, locked=locked.revision)
        return locked.revision

    async def _fetch(self, ref: InputRef, revision: str | None) -> SourceRevision:
        try:
            scheme, _ = split_locator(ref.locator)
            source = self._sources.get(scheme)
            if source is None:
                msg = f"no source configured for scheme '{scheme}'"
                raise SourceLookupError(msg)

            logger.debug("Registry: resolving {} ({}) revision={}", ref.name, ref.locator, revision or "latest")
            async with asyncio.timeout(self._timeout):
                result = await source.resolve(ref.locator, revision)
        except TimeoutError as exc:
            raise OperationTimeoutError(
                "resolve input",
                self._timeout or 0,
                input=ref.name,
                locator=ref.locator,
            ) from exc
        except SourceLookupError as exc:
            raise UnresolvableInputError(ref.name, ref.locator, str(exc)) from exc

        if revision is None:
            logger.info("Registry: pinned {} to {}", ref.name, result.revision)
        return result
