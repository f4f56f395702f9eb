"""Error taxonomy for the environment engine.

Every error carries a ``context`` mapping (input, platform, package, command
index, ...) so the CLI can print an actionable one-liner without re-running at
a higher verbosity.  None of these are retried by the core.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from shellsmith.engine.models.environment import HookResult


class ShellsmithError(Exception):
    """Base class for all engine failures."""

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.context: dict[str, Any] = {k: v for k, v in context.items() if v is not None}


# ---------------------------------------------------------------------------
# Descriptor loading
# ---------------------------------------------------------------------------


class DescriptorError(ShellsmithError, ValueError):
    """Descriptor could not be turned into a validated model."""


class DescriptorParseError(DescriptorError):
    """Malformed descriptor syntax."""

    def __init__(self, reason: str, *, source: str, line: int | None = None, column: int | None = None) -> None:
        where = source if line is None else f"{source}:{line}:{column or 1}"
        super().__init__(f"{where}: invalid descriptor syntax: {reason}", source=source, line=line, column=column)
        self.reason = reason
        self.source = source
        self.line = line
        self.column = column


class DescriptorValidationError(DescriptorError):
    """Descriptor parsed but violates a structural rule."""

    def __init__(self, reason: str, *, source: str, location: str | None = None) -> None:
        where = f"{source} [{location}]" if location else source
        super().__init__(f"{where}: {reason}", source=source, location=location)
        self.reason = reason
        self.source = source
        self.location = location


# ---------------------------------------------------------------------------
# Input registry
# ---------------------------------------------------------------------------


class UnresolvableInputError(ShellsmithError, LookupError):
    """An input could not be resolved to a revision (lookup or network failure)."""

    def __init__(self, name: str, locator: str, reason: str) -> None:
        super().__init__(f"Input '{name}' ({locator}) could not be resolved: {reason}", input=name, locator=locator)
        self.name = name
        self.locator = locator
        self.reason = reason


class RevisionConflictError(ShellsmithError, ValueError):
    """A locked revision disagrees with what the descriptor asks for."""

    def __init__(
        self,
        name: str,
        *,
        requested: str | None,
        locked: str,
        requested_locator: str | None = None,
        locked_locator: str | None = None,
    ) -> None:
        if requested_locator is not None and locked_locator is not None and requested_locator != locked_locator:
            detail = f"descriptor source '{requested_locator}' but lock records '{locked_locator}'"
        else:
            detail = f"descriptor pins '{requested}' but lock records '{locked}'"
        super().__init__(
            f"Revision conflict for input '{name}': {detail}",
            input=name,
            requested=requested,
            locked=locked,
            requested_locator=requested_locator,
            locked_locator=locked_locator,
        )
        self.name = name
        self.requested = requested
        self.locked = locked


# ---------------------------------------------------------------------------
# Platform resolution / materialization
# ---------------------------------------------------------------------------


class UnsupportedPlatformError(ShellsmithError, LookupError):
    """The requested platform is not declared by the shell."""

    def __init__(self, platform: str, *, shell: str, supported: list[str]) -> None:
        listed = ", ".join(supported) or "<none>"
        super().__init__(
            f"Platform '{platform}' is not supported by shell '{shell}' (supported: {listed})",
            platform=platform,
            shell=shell,
        )
        self.platform = platform
        self.shell = shell
        self.supported = supported


class PackageNotFoundError(ShellsmithError, LookupError):
    """A package is absent from its input's store for the given platform."""

    def __init__(self, name: str, platform: str, *, input_name: str | None = None, handle: str | None = None) -> None:
        origin = f" in input '{input_name}'" if input_name else ""
        super().__init__(
            f"Package '{name}' not found{origin} for platform '{platform}'",
            package=name,
            platform=platform,
            input=input_name,
            handle=handle,
        )
        self.name = name
        self.platform = platform
        self.input_name = input_name


class MaterializationError(ShellsmithError, RuntimeError):
    """Resolved environment cannot be activated from the local store."""

    def __init__(self, package: str, path: str, reason: str) -> None:
        super().__init__(f"Cannot materialize package '{package}' at {path}: {reason}", package=package, path=path)
        self.package = package
        self.path = path
        self.reason = reason


# ---------------------------------------------------------------------------
# Execution
# ---------------------------------------------------------------------------


class OperationTimeoutError(ShellsmithError, TimeoutError):
    """A registry lookup or hook command exceeded the caller-supplied timeout."""

    def __init__(self, operation: str, timeout: float, **context: Any) -> None:
        detail = ", ".join(f"{k}={v}" for k, v in context.items() if v is not None)
        suffix = f" ({detail})" if detail else ""
        super().__init__(f"{operation} timed out after {timeout}s{suffix}", operation=operation, **context)
        self.operation = operation
        self.timeout = timeout


class HookExecutionError(ShellsmithError, RuntimeError):
    """A hook command exited non-zero."""

    def __init__(self, result: HookResult) -> None:
        failed = result.failed_command
        if failed is not None:
            message = f"Hook command #{failed.index} `{failed.command}` exited with code {result.exit_code}"
            super().__init__(message, command_index=failed.index, command=failed.command, exit_code=result.exit_code)
        else:
            super().__init__(f"Hook exited with code {result.exit_code}", exit_code=result.exit_code)
        self.result = result


class InvocationCancelledError(ShellsmithError):
    """The caller signalled cancellation between two steps."""

    def __init__(self, stage: str, *, completed: int, result: HookResult | None = None, **context: Any) -> None:
        super().__init__(f"{stage} cancelled after {completed} completed step(s)", stage=stage, completed=completed, **context)
        self.stage = stage
        self.completed = completed
        self.result = result
