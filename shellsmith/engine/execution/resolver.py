"""Platform resolver -- evaluates one descriptor shell for one platform and
produces a concrete ``ResolvedEnvironment``.

Resolution order:

1. Check the platform against the shell's declared set (or the default list
   when the shell declares ``platforms: default``).  This happens before any
   registry or store access.
2. Walk the shell's packages in declaration order.  The first declaration of
   a package name wins; later duplicates are ignored, even when they name a
   different input.
3. For each package, resolve its input through the ``InputRegistry`` and look
   the package up in the store under that revision's handle.
4. Produce ``ResolvedEnvironment`` with per-package search paths and the
   derived variables.

The resolver never writes anything; store and registry access is read-only.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import TYPE_CHECKING

from anyio import to_thread

from shellsmith.engine.errors import InvocationCancelledError, PackageNotFoundError, UnsupportedPlatformError
from shellsmith.engine.models.descriptor import DEFAULT_SHELL
from shellsmith.engine.models.environment import ResolvedEnvironment, ResolvedPackage
from shellsmith.engine.platforms import DEFAULT_PLATFORMS

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from shellsmith.engine.models.descriptor import Descriptor, ShellSpec
    from shellsmith.engine.registry import InputRegistry, ResolvedInput
    from shellsmith.engine.store.base import PackageStore

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def supported_platforms(shell: ShellSpec, default_platforms: Iterable[str] = DEFAULT_PLATFORMS) -> list[str]:
    """Platforms a shell can be resolved for."""
    return list(default_platforms) if shell.all_supported else list(shell.platforms)


def check_platform(
    descriptor: Descriptor,
    platform: str,
    *,
    shell: str = DEFAULT_SHELL,
    default_platforms: Iterable[str] = DEFAULT_PLATFORMS,
) -> ShellSpec:
    """Return the shell spec if *platform* is supported, else raise.

    Raises ``UnsupportedPlatformError`` (also for an undeclared shell name,
    whose supported list is then empty).
    """
    try:
        spec = descriptor.shell(shell)
    except KeyError:
        raise UnsupportedPlatformError(platform, shell=shell, supported=[]) from None

    supported = supported_platforms(spec, default_platforms)
    if platform not in supported:
        raise UnsupportedPlatformError(platform, shell=shell, supported=supported)
    return spec


async def resolve_environment(
    descriptor: Descriptor,
    platform: str,
    *,
    registry: InputRegistry,
    store: PackageStore,
    shell: str = DEFAULT_SHELL,
    default_platforms: Iterable[str] = DEFAULT_PLATFORMS,
    cancel: asyncio.Event | None = None,
) -> ResolvedEnvironment:
    """Resolve *shell* of *descriptor* for *platform*.

    Parameters
    ----------
    descriptor:
        Validated descriptor (from ``load_descriptor``).
    platform:
        Target platform id, e.g. ``x86_64-linux``.
    registry:
        Input registry; may be shared with concurrent resolutions.
    store:
        Read-only package store.
    shell:
        Name of the shell output to resolve.
    default_platforms:
        Platforms covered by ``platforms: default``.
    cancel:
        Cooperative cancellation signal, checked between package lookups.

    Raises
    ------
    UnsupportedPlatformError:
        The platform is not declared (checked before any lookup).
    PackageNotFoundError:
        A package is missing from its input's store for this platform.
    InvocationCancelledError:
        *cancel* was set between two lookups.
    """
    spec = check_platform(descriptor, platform, shell=shell, default_platforms=default_platforms)

    packages: dict[str, ResolvedPackage] = {}
    inputs: dict[str, ResolvedInput] = {}

    for ref in spec.packages:
        if cancel is not None and cancel.is_set():
            raise InvocationCancelledError("resolve", completed=len(packages), platform=platform, shell=shell)

        if ref.name in packages:
            logger.warning(
                "Package '%s' from input '%s' ignored: already provided by input '%s'",
                ref.name,
                ref.input,
                packages[ref.name].input,
            )
            continue

        resolved_input = inputs.get(ref.input)
        if resolved_input is None:
            resolved_input = await registry.locate(descriptor.input(ref.input))
            inputs[ref.input] = resolved_input

        try:
            path = await store.lookup(resolved_input.handle, ref.name, platform)
        except PackageNotFoundError as exc:
            raise PackageNotFoundError(
                ref.name,
                platform,
                input_name=ref.input,
                handle=resolved_input.handle,
            ) from exc

        packages[ref.name] = ResolvedPackage(
            name=ref.name,
            input=ref.input,
            revision=resolved_input.revision,
            handle=resolved_input.handle,
            path=path,
            search_paths=tuple(await to_thread.run_sync(_search_paths_for, path)),
        )
        logger.debug("Resolved %s#%s for %s -> %s", ref.input, ref.name, platform, path)

    return ResolvedEnvironment(
        platform=platform,
        shell=shell,
        packages=packages,
        search_paths=_ordered_search_paths(packages.values()),
        variables=_derived_variables(platform, shell, spec, inputs),
    )


async def resolve_platforms(
    descriptor: Descriptor,
    platforms: Sequence[str],
    *,
    registry: InputRegistry,
    store: PackageStore,
    shell: str = DEFAULT_SHELL,
    default_platforms: Iterable[str] = DEFAULT_PLATFORMS,
    cancel: asyncio.Event | None = None,
) -> dict[str, ResolvedEnvironment]:
    """Resolve several platforms concurrently, sharing one registry.

    Every platform is checked up front so an unsupported one fails before
    any task starts.  Results are returned in request order.
    """
    default_platforms = list(default_platforms)
    unique = list(dict.fromkeys(platforms))
    for platform in unique:
        check_platform(descriptor, platform, shell=shell, default_platforms=default_platforms)

    try:
        async with asyncio.TaskGroup() as group:
            tasks = {
                platform: group.create_task(
                    resolve_environment(
                        descriptor,
                        platform,
                        registry=registry,
                        store=store,
                        shell=shell,
                        default_platforms=default_platforms,
                        cancel=cancel,
                    ),
                    name=f"resolve:{platform}",
                )
                for platform in unique
            }
    except ExceptionGroup as group:
        # Callers see the first failure, not the group.
        raise first_failure(group) from None
    return {platform: task.result() for platform, task in tasks.items()}


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _search_paths_for(artifact: Path) -> list[str]:
    """``<artifact>/bin`` when present, else the artifact directory itself."""
    bin_dir = artifact / "bin"
    return [str(bin_dir)] if bin_dir.is_dir() else [str(artifact)]


def _ordered_search_paths(packages: Iterable[ResolvedPackage]) -> list[str]:
    """Concatenate contributions in resolution order; first occurrence wins."""
    return list(dict.fromkeys(path for pkg in packages for path in pkg.search_paths))


def _derived_variables(
    platform: str,
    shell: str,
    spec: ShellSpec,
    inputs: dict[str, ResolvedInput],
) -> dict[str, str]:
    variables = {
        "SHELLSMITH_PLATFORM": platform,
        "SHELLSMITH_SHELL": shell,
    }
    for name, resolved in inputs.items():
        variables[f"SHELLSMITH_INPUT_{_env_name(name)}_REV"] = resolved.revision
    variables.update(spec.env)
    return variables


def _env_name(name: str) -> str:
    return "".join(ch if ch.isalnum() else "_" for ch in name).upper()


def first_failure(group: BaseExceptionGroup) -> BaseException:
    """Return the first non-group exception in *group*, depth first."""
    first = group.exceptions[0]
    return first_failure(first) if isinstance(first, BaseExceptionGroup) else first
