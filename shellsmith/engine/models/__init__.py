"""Data models for the environment engine."""

from shellsmith.engine.models.descriptor import (
    ALL_SUPPORTED,
    DEFAULT_SHELL,
    Descriptor,
    HookCommand,
    InputRef,
    PackageRef,
    ShellCommand,
    ShellSpec,
    ToolchainCommand,
)
from shellsmith.engine.models.enums import (
    CommandKind,
    CommandStatus,
    OutputStream,
    SourceScheme,
)
from shellsmith.engine.models.environment import (
    ActivatedShell,
    CommandResult,
    HookResult,
    ResolvedEnvironment,
    ResolvedPackage,
)
from shellsmith.engine.models.lock import LockedInput, LockRecord

__all__ = [
    "ALL_SUPPORTED",
    "DEFAULT_SHELL",
    "ActivatedShell",
    "CommandKind",
    "CommandResult",
    "CommandStatus",
    "Descriptor",
    "HookCommand",
    "HookResult",
    "InputRef",
    "LockRecord",
    "LockedInput",
    "OutputStream",
    "PackageRef",
    "ResolvedEnvironment",
    "ResolvedPackage",
    "ShellCommand",
    "ShellSpec",
    "SourceScheme",
    "ToolchainCommand",
]
