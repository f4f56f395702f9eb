"""Platform identifiers and host detection."""

from __future__ import annotations

import platform as _platform
import sys

DEFAULT_PLATFORMS: tuple[str, ...] = (
    "x86_64-linux",
    "aarch64-linux",
    "x86_64-darwin",
    "aarch64-darwin",
)
"""Platforms covered by ``platforms = "default"`` unless overridden in settings."""

_ARCH_ALIASES = {
    "amd64": "x86_64",
    "x64": "x86_64",
    "arm64": "aarch64",
    "armv8": "aarch64",
    "i386": "i686",
}

_OS_ALIASES = {
    "win32": "windows",
    "cygwin": "windows",
    "linux2": "linux",
}


def normalize_arch(machine: str) -> str:
    machine = machine.lower()
    return _ARCH_ALIASES.get(machine, machine)


def normalize_os(system: str) -> str:
    system = system.lower()
    return _OS_ALIASES.get(system, system)


def host_platform(machine: str | None = None, system: str | None = None) -> str:
    """Return the current host as ``<arch>-<os>``, e.g. ``x86_64-linux``."""
    arch = normalize_arch(machine if machine is not None else _platform.machine())
    os_name = normalize_os(system if system is not None else sys.platform)
    return f"{arch}-{os_name}"
