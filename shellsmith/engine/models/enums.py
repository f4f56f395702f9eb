"""Shared enumerations used across the engine."""

from __future__ import annotations

from enum import StrEnum

# -- Hook --------------------------------------------------------------------


class CommandKind(StrEnum):
    """Discriminator for hook command variants."""

    SHELL = "shell"
    TOOLCHAIN = "toolchain"


class CommandStatus(StrEnum):
    OK = "ok"
    FAILED = "failed"
    SKIPPED = "skipped"


class OutputStream(StrEnum):
    STDOUT = "stdout"
    STDERR = "stderr"


# -- Sources -----------------------------------------------------------------


class SourceScheme(StrEnum):
    """Locator schemes understood by the input registry."""

    GITHUB = "github"
    PATH = "path"
    FILE = "file"
