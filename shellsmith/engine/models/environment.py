"""Resolution and execution result models.

Domain objects produced per invocation and never persisted.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field

from shellsmith.engine.models.enums import CommandStatus

# -- Resolution --------------------------------------------------------------


class ResolvedPackage(BaseModel):
    """A package located in its input's content-addressed store."""

    model_config = ConfigDict(frozen=True)

    name: str
    input: str
    revision: str
    handle: str
    path: Path
    search_paths: tuple[str, ...] = ()


class ResolvedEnvironment(BaseModel):
    """Concrete dependency set for one platform, in resolution order."""

    platform: str
    shell: str
    packages: dict[str, ResolvedPackage] = Field(default_factory=dict)
    search_paths: list[str] = Field(default_factory=list)
    variables: dict[str, str] = Field(default_factory=dict)


# -- Activation --------------------------------------------------------------


class ActivatedShell(BaseModel):
    """Materialized runtime environment ready for command execution."""

    model_config = ConfigDict(frozen=True)

    platform: str
    shell: str
    env: dict[str, str]
    search_paths: tuple[str, ...] = ()
    toolchains: frozenset[str] = frozenset()
    cwd: Path | None = None

    def is_activated(self, manager: str) -> bool:
        return manager in self.toolchains


# -- Hook --------------------------------------------------------------------


class CommandResult(BaseModel):
    index: int
    command: str
    status: CommandStatus
    exit_code: int = 0
    stdout: str = ""
    stderr: str = ""
    duration: float = 0.0


class HookResult(BaseModel):
    """Terminal artifact of one hook run."""

    exit_code: int = 0
    stdout: str = ""
    stderr: str = ""
    duration: float = 0.0
    commands: list[CommandResult] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.exit_code == 0

    @property
    def failed_command(self) -> CommandResult | None:
        for result in self.commands:
            if result.status == CommandStatus.FAILED:
                return result
        return None

    def check(self) -> HookResult:
        """Return self, or raise ``HookExecutionError`` on a non-zero exit code."""
        if self.exit_code != 0:
            from shellsmith.engine.errors import HookExecutionError

            raise HookExecutionError(self)
        return self
