"""Descriptor loader -- raw YAML text to a validated ``Descriptor``.

Document layout::

    description: Rust development environment
    inputs:
      nixpkgs: github:NixOS/nixpkgs/nixos-unstable
      toolset: {url: "path:./toolset", rev: "sha256:..."}
    shells:
      default:
        platforms: default            # or a list of platform ids
        input: nixpkgs                # default input for bare package names
        packages: [rustup, pkg-config, "toolset#compiler"]
        hook:
          - rustup component add rust-src rust-analyzer
        env: {RUST_BACKTRACE: "1"}

A descriptor with a single shell may put ``platforms`` / ``input`` /
``packages`` / ``hook`` / ``env`` at the top level instead of under
``shells.default``.  ``inputs`` may also be a list of ``{name, url, rev}``
mappings.

Loading is a pure transform: identical text yields equal descriptors.
"""

from __future__ import annotations

import shlex
from pathlib import Path, PurePosixPath
from typing import Any

import yaml
from pydantic import ValidationError

from shellsmith.engine.errors import DescriptorParseError, DescriptorValidationError
from shellsmith.engine.models.descriptor import (
    ALL_SUPPORTED,
    DEFAULT_SHELL,
    TOOLCHAIN_MANAGERS,
    Descriptor,
    HookCommand,
    ShellCommand,
    ToolchainCommand,
)
from shellsmith.engine.models.enums import CommandKind

_TOP_LEVEL_KEYS = {"description", "inputs", "shells"}
_SHELL_KEYS = {"platforms", "input", "packages", "hook", "env"}
_INPUT_KEYS = {"url", "rev"}
_PLATFORM_ALIASES = {ALL_SUPPORTED, "all"}
# Computed by the materializer; a declared env must not replace them.
_RESERVED_ENV = {"PATH", "PKG_CONFIG_PATH"}
_RESERVED_ENV_PREFIX = "SHELLSMITH_"

# ---------------------------------------------------------------------------
# YAML parsing
# ---------------------------------------------------------------------------


class _DuplicateKeyError(yaml.MarkedYAMLError):
    """Mapping declares the same key twice."""

    def __init__(self, key: Any, mark: yaml.Mark | None) -> None:
        super().__init__(problem=f"duplicate key '{key}'", problem_mark=mark)
        self.key = key


class _DescriptorYAMLLoader(yaml.SafeLoader):
    """SafeLoader that rejects duplicate mapping keys instead of overwriting."""

    def construct_mapping(self, node: yaml.MappingNode, deep: bool = False) -> dict[Any, Any]:
        seen: set[Any] = set()
        for key_node, _ in node.value:
            key = self.construct_object(key_node, deep=deep)
            if not isinstance(key, str | int | float | bool | None):
                continue  # unhashable keys are rejected by the base constructor
            if key in seen:
                raise _DuplicateKeyError(key, key_node.start_mark)
            seen.add(key)
        return super().construct_mapping(node, deep=deep)


def _parse_yaml(raw: str, source: str) -> Any:
    try:
        return yaml.load(raw, Loader=_DescriptorYAMLLoader)  # noqa: S506 -- SafeLoader subclass
    except _DuplicateKeyError as exc:
        mark = exc.problem_mark
        location = f"line {mark.line + 1}" if mark is not None else None
        raise DescriptorValidationError(f"duplicate key '{exc.key}'", source=source, location=location) from None
    except yaml.MarkedYAMLError as exc:
        mark = exc.problem_mark or exc.context_mark
        line = mark.line + 1 if mark is not None else None
        column = mark.column + 1 if mark is not None else None
        raise DescriptorParseError(exc.problem or str(exc), source=source, line=line, column=column) from None
    except yaml.YAMLError as exc:
        raise DescriptorParseError(str(exc), source=source) from None


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_descriptor(raw: str, *, source: str = "<string>") -> Descriptor:
    """Parse and validate descriptor text.

    Raises
    ------
    DescriptorParseError:
        The text is not well-formed YAML.
    DescriptorValidationError:
        Duplicate input names, a package naming an undeclared input, an
        empty platform set, unknown keys or wrong value types.
    """
    data = _parse_yaml(raw, source)
    return _Validator(source).descriptor(data)


def load_descriptor_file(path: str | Path) -> Descriptor:
    path = Path(path)
    try:
        raw = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        raise DescriptorValidationError("descriptor file not found", source=str(path)) from None
    return load_descriptor(raw, source=str(path))


def dump_descriptor(descriptor: Descriptor) -> str:
    """Render *descriptor* back to YAML; ``load_descriptor`` of the result is equal."""
    inputs: dict[str, Any] = {}
    for ref in descriptor.inputs:
        inputs[ref.name] = {"url": ref.locator, "rev": ref.revision} if ref.revision else ref.locator

    shells: dict[str, Any] = {}
    for name, shell in descriptor.shells.items():
        body: dict[str, Any] = {
            "platforms": ALL_SUPPORTED if shell.all_supported else list(shell.platforms),
        }
        if shell.input is not None:
            body["input"] = shell.input
        body["packages"] = [f"{pkg.input}#{pkg.name}" for pkg in shell.packages]
        body["hook"] = [_dump_command(cmd) for cmd in shell.hook]
        if shell.env:
            body["env"] = dict(shell.env)
        shells[name] = body

    document: dict[str, Any] = {}
    if descriptor.description is not None:
        document["description"] = descriptor.description
    document["inputs"] = inputs
    document["shells"] = shells
    return yaml.safe_dump(document, sort_keys=False, allow_unicode=True)


def _dump_command(command: HookCommand) -> str | dict[str, str]:
    # Plain strings re-classify to the same variant; anything else keeps its tag.
    if classify_hook_command(command.command) == command:
        return command.command
    return command.model_dump(mode="json")


def classify_hook_command(line: str) -> HookCommand:
    """Map a hook line to its command variant.

    Lines whose program is a known toolchain manager become
    ``ToolchainCommand``; everything else is a plain ``ShellCommand``.
    """
    try:
        tokens = shlex.split(line)
    except ValueError:
        tokens = line.split()
    if tokens:
        program = PurePosixPath(tokens[0]).name
        if program in TOOLCHAIN_MANAGERS:
            return ToolchainCommand(manager=program, command=line)
    return ShellCommand(command=line)


# ---------------------------------------------------------------------------
# Structural validation
# ---------------------------------------------------------------------------


class _Validator:
    """Turns the raw YAML tree into ``Descriptor`` kwargs, failing with locations."""

    def __init__(self, source: str) -> None:
        self.source = source

    def fail(self, reason: str, location: str | None = None) -> DescriptorValidationError:
        return DescriptorValidationError(reason, source=self.source, location=location)

    # -- Document --------------------------------------------------------------

    def descriptor(self, data: Any) -> Descriptor:
        if not isinstance(data, dict):
            raise self.fail("descriptor must be a mapping")

        shorthand = {key for key in data if key in _SHELL_KEYS}
        unknown = set(data) - _TOP_LEVEL_KEYS - _SHELL_KEYS
        if unknown:
            raise self.fail(f"unknown key(s): {', '.join(sorted(map(str, unknown)))}")
        if shorthand and "shells" in data:
            raise self.fail(f"top-level {', '.join(sorted(shorthand))} cannot be combined with 'shells'")

        description = data.get("description")
        if description is not None and not isinstance(description, str):
            raise self.fail("must be a string", "description")

        inputs = self.inputs(data.get("inputs", {}))
        declared = {item["name"] for item in inputs}

        raw_shells = {DEFAULT_SHELL: {key: data[key] for key in shorthand}} if shorthand else data.get("shells")
        if not isinstance(raw_shells, dict) or not raw_shells:
            raise self.fail("at least one shell must be declared", "shells")

        shells = {}
        for name, body in raw_shells.items():
            if not isinstance(name, str) or not name:
                raise self.fail("shell names must be non-empty strings", "shells")
            shells[name] = self.shell(name, body, declared)

        try:
            return Descriptor.model_validate({"description": description, "inputs": inputs, "shells": shells})
        except ValidationError as exc:
            first = exc.errors()[0]
            location = ".".join(str(part) for part in first["loc"])
            raise self.fail(first["msg"], location) from None

    # -- Inputs ----------------------------------------------------------------

    def inputs(self, raw: Any) -> list[dict[str, Any]]:
        if raw is None:
            return []
        if isinstance(raw, dict):
            entries = [(f"inputs.{name}", name, value) for name, value in raw.items()]
        elif isinstance(raw, list):
            entries = []
            for i, item in enumerate(raw):
                if not isinstance(item, dict) or "name" not in item:
                    raise self.fail("list entries must be mappings with a 'name'", f"inputs[{i}]")
                body = {key: value for key, value in item.items() if key != "name"}
                entries.append((f"inputs[{i}]", item["name"], body))
        else:
            raise self.fail("must be a mapping or a list", "inputs")

        result: list[dict[str, Any]] = []
        seen: set[str] = set()
        for location, name, value in entries:
            if not isinstance(name, str) or not name:
                raise self.fail("input names must be non-empty strings", location)
            if name in seen:
                raise self.fail(f"duplicate input name '{name}'", location)
            seen.add(name)
            result.append(self.input(location, name, value))
        return result

    def input(self, location: str, name: str, value: Any) -> dict[str, Any]:
        if isinstance(value, str):
            locator, revision = value, None
        elif isinstance(value, dict):
            unknown = set(value) - _INPUT_KEYS
            if unknown:
                raise self.fail(f"unknown key(s): {', '.join(sorted(map(str, unknown)))}", location)
            locator, revision = value.get("url"), value.get("rev")
        else:
            raise self.fail("must be a locator string or a {url, rev} mapping", location)

        if not isinstance(locator, str) or ":" not in locator:
            raise self.fail("'url' must be a locator such as 'github:owner/repo' or 'path:./dir'", location)
        if revision is not None and (not isinstance(revision, str) or not revision):
            raise self.fail("'rev' must be a non-empty string", location)
        return {"name": name, "locator": locator, "revision": revision}

    # -- Shells ----------------------------------------------------------------

    def shell(self, name: str, body: Any, declared: set[str]) -> dict[str, Any]:
        location = f"shells.{name}"
        if body is None:
            body = {}
        if not isinstance(body, dict):
            raise self.fail("must be a mapping", location)
        unknown = set(body) - _SHELL_KEYS
        if unknown:
            raise self.fail(f"unknown key(s): {', '.join(sorted(map(str, unknown)))}", location)

        default_input = body.get("input")
        if default_input is not None and default_input not in declared:
            raise self.fail(f"default input '{default_input}' is not declared", f"{location}.input")

        return {
            "platforms": self.platforms(body.get("platforms", ALL_SUPPORTED), f"{location}.platforms"),
            "input": default_input,
            "packages": self.packages(body.get("packages", []), default_input, declared, f"{location}.packages"),
            "hook": self.hook(body.get("hook", []), f"{location}.hook"),
            "env": self.env(body.get("env", {}), f"{location}.env"),
        }

    def platforms(self, raw: Any, location: str) -> tuple[str, ...] | str:
        if isinstance(raw, str):
            return ALL_SUPPORTED if raw in _PLATFORM_ALIASES else (raw,)
        if not isinstance(raw, list):
            raise self.fail("must be 'default' or a list of platform ids", location)
        if not raw:
            raise self.fail("platform set must not be empty", location)
        platforms: list[str] = []
        for i, item in enumerate(raw):
            if not isinstance(item, str) or not item:
                raise self.fail("platform ids must be non-empty strings", f"{location}[{i}]")
            if item not in platforms:
                platforms.append(item)
        return tuple(platforms)

    def packages(self, raw: Any, default_input: str | None, declared: set[str], location: str) -> list[dict[str, str]]:
        if not isinstance(raw, list):
            raise self.fail("must be a list", location)

        result: list[dict[str, str]] = []
        for i, item in enumerate(raw):
            where = f"{location}[{i}]"
            if isinstance(item, str):
                input_name, sep, name = item.rpartition("#")
                if not sep:
                    if default_input is None:
                        raise self.fail(f"package '{item}' names no input and the shell has no default 'input'", where)
                    input_name = default_input
            elif isinstance(item, dict) and set(item) <= {"name", "input"} and "name" in item:
                name = item["name"]
                input_name = item.get("input", default_input)
                if input_name is None:
                    raise self.fail(f"package '{name}' names no input and the shell has no default 'input'", where)
            else:
                raise self.fail("must be 'input#name', 'name' or a {name, input} mapping", where)

            if not isinstance(name, str) or not name:
                raise self.fail("package names must be non-empty strings", where)
            if input_name not in declared:
                raise self.fail(f"package '{name}' references undeclared input '{input_name}'", where)
            result.append({"name": name, "input": input_name})
        return result

    def hook(self, raw: Any, location: str) -> list[Any]:
        if isinstance(raw, str):
            # Multi-line script form: one command per non-blank, non-comment line.
            raw = [line.strip() for line in raw.splitlines()]
            raw = [line for line in raw if line and not line.startswith("#")]
        if not isinstance(raw, list):
            raise self.fail("must be a list of commands or a script string", location)

        commands: list[Any] = []
        for i, item in enumerate(raw):
            where = f"{location}[{i}]"
            if isinstance(item, str):
                if not item.strip():
                    raise self.fail("commands must not be blank", where)
                commands.append(classify_hook_command(item))
            elif isinstance(item, dict):
                kind = item.get("kind", CommandKind.SHELL.value)
                if not isinstance(kind, str) or kind not in {k.value for k in CommandKind}:
                    raise self.fail(f"unknown command kind {kind!r}", where)
                if kind == CommandKind.TOOLCHAIN and "manager" not in item and isinstance(item.get("command"), str):
                    item = {**item, "manager": classify_hook_command(item["command"]).model_dump().get("manager")}
                commands.append({**item, "kind": kind})
            else:
                raise self.fail("must be a command string or a {kind, command} mapping", where)
        return commands

    def env(self, raw: Any, location: str) -> dict[str, str]:
        if not isinstance(raw, dict):
            raise self.fail("must be a mapping", location)
        result: dict[str, str] = {}
        for key, value in raw.items():
            if not isinstance(key, str) or not key:
                raise self.fail("variable names must be non-empty strings", location)
            if key in _RESERVED_ENV or key.startswith(_RESERVED_ENV_PREFIX):
                raise self.fail(f"variable '{key}' is set by shellsmith and cannot be declared", location)
            if isinstance(value, bool):
                result[key] = "1" if value else ""
            elif isinstance(value, str | int | float):
                result[key] = str(value)
            else:
                raise self.fail("values must be scalars", f"{location}.{key}")
        return result
