"""Execution coordinator -- orchestrates load, resolve, materialize and hook.

The coordinator manages one invocation end to end:

1. **Setup**: load the descriptor, read the lock file, build the registry
   (with a fresh ``InputCache``) and the package store from settings
2. **Resolve**: one platform (``develop``) or several concurrently
   (``resolve``), sharing that registry
3. **Activate**: materialize the environment and run the hook
4. **Finalize**: write back the lock file when new pins were produced

Nothing is retried here; errors propagate to the caller (the CLI), which
owns any retry policy.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from shellsmith.engine.execution.environment import materialize
from shellsmith.engine.execution.hooks import run_hook
from shellsmith.engine.execution.loader import load_descriptor_file
from shellsmith.engine.execution.resolver import first_failure, resolve_environment, resolve_platforms
from shellsmith.engine.lockfile import merge_locks, read_lock, write_lock
from shellsmith.engine.models.descriptor import DEFAULT_SHELL
from shellsmith.engine.platforms import host_platform
from shellsmith.engine.registry import InputCache, InputRegistry
from shellsmith.engine.sources import build_sources
from shellsmith.engine.store.local import LocalPackageStore

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from shellsmith.engine.execution.hooks import OutputCallback
    from shellsmith.engine.models.descriptor import Descriptor
    from shellsmith.engine.models.environment import ActivatedShell, HookResult, ResolvedEnvironment
    from shellsmith.engine.models.lock import LockRecord
    from shellsmith.engine.settings import ShellsmithSettings
    from shellsmith.engine.store.base import PackageStore

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Context / results
# ---------------------------------------------------------------------------


@dataclass
class EngineContext:
    """Everything one invocation works with; owned by that invocation."""

    descriptor_path: Path
    descriptor: Descriptor
    lock_path: Path
    previous_lock: LockRecord | None
    registry: InputRegistry
    store: PackageStore
    settings: ShellsmithSettings

    async def save_lock(self) -> LockRecord:
        """Merge this run's pins into the lock file (skipped when offline or unchanged)."""
        declared = {ref.name for ref in self.descriptor.inputs}
        merged = merge_locks(self.previous_lock, self.registry.lock_record(), keep=declared)
        if self.registry.offline:
            return merged
        if self.previous_lock is None or merged != self.previous_lock:
            await write_lock(self.lock_path, merged)
            logger.info("Wrote lock file %s (%d inputs)", self.lock_path, len(merged.inputs))
        return merged


@dataclass
class DevelopResult:
    """Outcome of one ``develop`` invocation."""

    resolved: ResolvedEnvironment
    shell: ActivatedShell
    hook: HookResult | None
    lock: LockRecord


# ---------------------------------------------------------------------------
# Setup
# ---------------------------------------------------------------------------


async def open_context(
    descriptor_path: str | Path,
    settings: ShellsmithSettings,
    *,
    offline: bool | None = None,
    ignore_lock: bool = False,
    store: PackageStore | None = None,
) -> EngineContext:
    """Load the descriptor and wire a registry and store for it."""
    descriptor_path = Path(descriptor_path)
    descriptor = load_descriptor_file(descriptor_path)
    lock_path = descriptor_path.parent / settings.lock_file_name
    previous_lock = await read_lock(lock_path)

    registry = InputRegistry(
        build_sources(settings, base_dir=descriptor_path.parent),
        cache=InputCache(),
        lock=None if ignore_lock else previous_lock,
        offline=settings.offline if offline is None else offline,
        timeout=settings.registry_timeout,
    )
    return EngineContext(
        descriptor_path=descriptor_path,
        descriptor=descriptor,
        lock_path=lock_path,
        previous_lock=previous_lock,
        registry=registry,
        store=store if store is not None else LocalPackageStore(settings.store_root),
        settings=settings,
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


async def develop(
    descriptor_path: str | Path,
    *,
    settings: ShellsmithSettings,
    platform: str | None = None,
    shell: str = DEFAULT_SHELL,
    run_hooks: bool = True,
    offline: bool | None = None,
    cancel: asyncio.Event | None = None,
    on_output: OutputCallback | None = None,
    base_env: Mapping[str, str] | None = None,
    store: PackageStore | None = None,
) -> DevelopResult:
    """Resolve, activate and provision one shell for one platform.

    The hook result is returned as-is; call ``result.hook.check()`` to turn
    a non-zero exit into ``HookExecutionError``.
    """
    ctx = await open_context(descriptor_path, settings, offline=offline, store=store)
    platform = platform or host_platform()

    resolved = await resolve_environment(
        ctx.descriptor,
        platform,
        registry=ctx.registry,
        store=ctx.store,
        shell=shell,
        default_platforms=settings.default_platforms,
        cancel=cancel,
    )
    lock = await ctx.save_lock()

    activated = materialize(resolved, base_env=base_env, cwd=ctx.descriptor_path.parent)

    hook_result = None
    if run_hooks:
        hook_result = await run_hook(
            activated,
            ctx.descriptor.shell(shell).hook,
            timeout=settings.hook_timeout,
            cancel=cancel,
            on_output=on_output,
        )

    return DevelopResult(resolved=resolved, shell=activated, hook=hook_result, lock=lock)


async def resolve(
    descriptor_path: str | Path,
    platforms: Sequence[str],
    *,
    settings: ShellsmithSettings,
    shell: str = DEFAULT_SHELL,
    offline: bool | None = None,
    cancel: asyncio.Event | None = None,
    store: PackageStore | None = None,
) -> dict[str, ResolvedEnvironment]:
    """Resolve several platforms concurrently against one shared registry."""
    ctx = await open_context(descriptor_path, settings, offline=offline, store=store)
    result = await resolve_platforms(
        ctx.descriptor,
        list(platforms) or [host_platform()],
        registry=ctx.registry,
        store=ctx.store,
        shell=shell,
        default_platforms=settings.default_platforms,
        cancel=cancel,
    )
    await ctx.save_lock()
    return result


async def lock(
    descriptor_path: str | Path,
    *,
    settings: ShellsmithSettings,
    update: bool = False,
) -> LockRecord:
    """Resolve every declared input and write the lock file.

    With ``update=True`` existing lock entries are ignored, so unpinned
    inputs move to the source's latest revision.
    """
    ctx = await open_context(descriptor_path, settings, ignore_lock=update)
    if update:
        ctx.previous_lock = None
    try:
        async with asyncio.TaskGroup() as group:
            for ref in ctx.descriptor.inputs:
                group.create_task(ctx.registry.resolve(ref))
    except ExceptionGroup as exc:
        raise first_failure(exc) from None
    return await ctx.save_lock()
