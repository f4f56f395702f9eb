"""Descriptor data models.

Pure Pydantic models for the declarative environment document: named
inputs, one or more shell outputs, and the tagged hook command variants.
They are produced by the descriptor loader and are immutable afterwards.
"""

from __future__ import annotations

from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field

ALL_SUPPORTED = "default"
"""Platform-set sentinel meaning "every platform in the default list"."""

DEFAULT_SHELL = "default"

TOOLCHAIN_MANAGERS: frozenset[str] = frozenset({"rustup", "pyenv", "nvm", "sdkman", "ghcup", "juliaup"})
"""Packages whose presence makes toolchain hook commands meaningful."""

# -- Inputs ------------------------------------------------------------------


class InputRef(BaseModel):
    """A named external source of packages."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str
    locator: str = Field(description="Source locator, e.g. 'github:NixOS/nixpkgs/nixos-unstable'")
    revision: str | None = Field(default=None, description="Pinned content revision; None while unpinned")

    @property
    def is_pinned(self) -> bool:
        return self.revision is not None

    def pinned(self, revision: str) -> InputRef:
        """Return a copy carrying *revision*."""
        return self.model_copy(update={"revision": revision})


class PackageRef(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str
    input: str


# -- Hook commands -----------------------------------------------------------


class ShellCommand(BaseModel):
    """Plain command line run through the system shell."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: Literal["shell"] = "shell"
    command: str


class ToolchainCommand(BaseModel):
    """Command driving a toolchain manager (``rustup component add ...``).

    Only meaningful when the manager package is part of the environment.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: Literal["toolchain"] = "toolchain"
    manager: str
    command: str


HookCommand = Annotated[ShellCommand | ToolchainCommand, Field(discriminator="kind")]


# -- Shell outputs -----------------------------------------------------------


class ShellSpec(BaseModel):
    """One shell output: platform predicate, dependency list and hook."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    platforms: tuple[str, ...] | Literal["default"] = ALL_SUPPORTED
    packages: tuple[PackageRef, ...] = ()
    hook: tuple[HookCommand, ...] = ()
    env: dict[str, str] = Field(default_factory=dict)
    input: str | None = Field(default=None, description="Default input for bare package names")

    @property
    def all_supported(self) -> bool:
        return self.platforms == ALL_SUPPORTED


# -- Top-level descriptor ----------------------------------------------------


class Descriptor(BaseModel):
    """Validated environment descriptor."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    description: str | None = None
    inputs: tuple[InputRef, ...] = ()
    shells: dict[str, ShellSpec] = Field(default_factory=dict)

    def input(self, name: str) -> InputRef:
        """Look up an input by name.  Raises ``KeyError`` if undeclared."""
        for ref in self.inputs:
            if ref.name == name:
                return ref
        raise KeyError(name)

    def shell(self, name: str = DEFAULT_SHELL) -> ShellSpec:
        """Look up a shell output by name.  Raises ``KeyError`` if undeclared."""
        return self.shells[name]
