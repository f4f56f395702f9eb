"""Environment materializer.

Turns a ``ResolvedEnvironment`` into an ``ActivatedShell``: the full process
environment that hook commands and the interactive shell run with.

Variable model
--------------

- ``PATH``: package search paths in resolution order (first declared wins on
  collision), followed by the base environment's ``PATH``.
- ``PKG_CONFIG_PATH``: every ``lib/pkgconfig`` and ``share/pkgconfig``
  directory found in the artifacts, ahead of any inherited value.
- ``SHELLSMITH_ACTIVE=1`` plus the resolver's variables
  (``SHELLSMITH_PLATFORM``, ``SHELLSMITH_INPUT_<NAME>_REV``, declared ``env``).
- ``SHELLSMITH_TOOLCHAINS``: comma-separated toolchain managers present in
  the package set.  The same set is exposed as ``ActivatedShell.toolchains``
  so the hook executor knows toolchain commands are meaningful.

Materialization reads the local store only (stat calls); it never touches
the network and never writes.
"""

from __future__ import annotations

import os
import shlex
from pathlib import Path
from typing import TYPE_CHECKING

from shellsmith.engine.errors import MaterializationError
from shellsmith.engine.models.descriptor import TOOLCHAIN_MANAGERS
from shellsmith.engine.models.environment import ActivatedShell

if TYPE_CHECKING:
    from collections.abc import Mapping

    from shellsmith.engine.models.environment import ResolvedEnvironment

PKG_CONFIG_SUBDIRS = ("lib/pkgconfig", "share/pkgconfig")


def materialize(
    resolved: ResolvedEnvironment,
    *,
    base_env: Mapping[str, str] | None = None,
    cwd: Path | None = None,
) -> ActivatedShell:
    """Build the activated shell for *resolved*.

    Parameters
    ----------
    resolved:
        Output of ``resolve_environment``.
    base_env:
        Environment to layer on top of.  Defaults to ``os.environ``.
    cwd:
        Working directory for commands run in the shell.

    Raises
    ------
    MaterializationError:
        An artifact path is missing or is not a directory.
    """
    env = dict(os.environ if base_env is None else base_env)
    inherited_path = env.get("PATH")
    inherited_pkg_config = env.get("PKG_CONFIG_PATH")

    pkg_config: list[str] = []
    for pkg in resolved.packages.values():
        _check_artifact(pkg.name, pkg.path)
        for sub in PKG_CONFIG_SUBDIRS:
            candidate = pkg.path / sub
            if candidate.is_dir():
                pkg_config.append(str(candidate))

    search_paths = list(dict.fromkeys(resolved.search_paths))
    toolchains = frozenset(name for name in resolved.packages if name in TOOLCHAIN_MANAGERS)

    env["PATH"] = _join_paths(search_paths, inherited_path)
    if pkg_config:
        env["PKG_CONFIG_PATH"] = _join_paths(list(dict.fromkeys(pkg_config)), inherited_pkg_config)
    env["SHELLSMITH_ACTIVE"] = "1"
    env["SHELLSMITH_TOOLCHAINS"] = ",".join(sorted(toolchains))
    env.update(resolved.variables)

    return ActivatedShell(
        platform=resolved.platform,
        shell=resolved.shell,
        env=env,
        search_paths=tuple(search_paths),
        toolchains=toolchains,
        cwd=cwd,
    )


def render_exports(shell: ActivatedShell, *, base_env: Mapping[str, str] | None = None) -> str:
    """POSIX ``export`` lines for variables that differ from *base_env*."""
    base = os.environ if base_env is None else base_env
    lines = [
        f"export {key}={shlex.quote(value)}"
        for key, value in sorted(shell.env.items())
        if base.get(key) != value
    ]
    return "\n".join(lines) + ("\n" if lines else "")


def _check_artifact(package: str, path: Path) -> None:
    if not path.exists():
        raise MaterializationError(package, str(path), "artifact path is missing from the store")
    if not path.is_dir():
        raise MaterializationError(package, str(path), "artifact path is not a directory (store corrupted?)")


def _join_paths(front: list[str], inherited: str | None) -> str:
    parts = list(front)
    if inherited:
        parts.extend(p for p in inherited.split(os.pathsep) if p and p not in front)
    return os.pathsep.join(parts)
