"""Unit tests for the platform resolver (fake source, temporary store)."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from shellsmith.engine.errors import InvocationCancelledError, PackageNotFoundError, UnsupportedPlatformError
from shellsmith.engine.execution.loader import load_descriptor
from shellsmith.engine.execution.resolver import (
    check_platform,
    resolve_environment,
    resolve_platforms,
    supported_platforms,
)
from shellsmith.engine.models.enums import SourceScheme
from shellsmith.engine.registry import InputRegistry
from shellsmith.engine.sources.base import content_handle
from shellsmith.engine.store.local import LocalPackageStore

TOOLS = "github:acme/tools"
EXTRAS = "github:acme/extras"

DESCRIPTOR = f"""\
inputs:
  tools: {{url: "{TOOLS}", rev: r1}}
  extras: {{url: "{EXTRAS}", rev: e1}}
shells:
  default:
    platforms: [x86_64-linux, aarch64-darwin]
    packages: [tools#compiler, tools#linker, extras#compiler, extras#docs]
    env: {{CC: compiler}}
  anywhere:
    platforms: default
    packages: [tools#compiler]
"""

TOOLS_HANDLE = content_handle(TOOLS, "r1")
EXTRAS_HANDLE = content_handle(EXTRAS, "e1")

# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def descriptor():
    return load_descriptor(DESCRIPTOR)


@pytest.fixture
def registry(fake_source) -> InputRegistry:
    fake_source.publish(TOOLS, "r1")
    fake_source.publish(EXTRAS, "e1")
    return InputRegistry({SourceScheme.GITHUB: fake_source})


@pytest.fixture
def store(store_root, make_package) -> LocalPackageStore:
    for platform in ("x86_64-linux", "aarch64-darwin"):
        make_package(TOOLS_HANDLE, platform, "compiler", executables={"cc": "echo tools-cc"})
        make_package(TOOLS_HANDLE, platform, "linker")
        make_package(EXTRAS_HANDLE, platform, "compiler", executables={"cc": "echo extras-cc"})
        make_package(EXTRAS_HANDLE, platform, "docs", executables={"docgen": "true"})
    return LocalPackageStore(store_root)


# ---------------------------------------------------------------------------
# Platform checks
# ---------------------------------------------------------------------------


def test_supported_platforms_default_list(descriptor) -> None:
    assert supported_platforms(descriptor.shell("anywhere"), ["x86_64-linux"]) == ["x86_64-linux"]
    assert supported_platforms(descriptor.shell()) == ["x86_64-linux", "aarch64-darwin"]


def test_check_platform_unknown_shell(descriptor) -> None:
    with pytest.raises(UnsupportedPlatformError) as exc_info:
        check_platform(descriptor, "x86_64-linux", shell="nope")
    assert exc_info.value.supported == []


async def test_unsupported_platform_fails_before_any_lookup(descriptor) -> None:
    registry = MagicMock()
    registry.locate = AsyncMock()
    store = MagicMock()
    store.lookup = AsyncMock()

    with pytest.raises(UnsupportedPlatformError) as exc_info:
        await resolve_environment(descriptor, "x86_64-windows", registry=registry, store=store)

    assert exc_info.value.platform == "x86_64-windows"
    assert exc_info.value.supported == ["x86_64-linux", "aarch64-darwin"]
    registry.locate.assert_not_called()
    store.lookup.assert_not_called()


async def test_default_platform_set(descriptor, registry, store) -> None:
    options = {"registry": registry, "store": store, "shell": "anywhere", "default_platforms": ["aarch64-darwin"]}

    env = await resolve_environment(descriptor, "aarch64-darwin", **options)
    assert list(env.packages) == ["compiler"]

    with pytest.raises(UnsupportedPlatformError):
        await resolve_environment(descriptor, "x86_64-linux", **options)


# ---------------------------------------------------------------------------
# Resolution
# ---------------------------------------------------------------------------


async def test_resolve_environment(descriptor, registry, store, store_root, fake_source) -> None:
    env = await resolve_environment(descriptor, "x86_64-linux", registry=registry, store=store)

    assert env.platform == "x86_64-linux"
    assert env.shell == "default"
    assert list(env.packages) == ["compiler", "linker", "docs"]

    compiler = env.packages["compiler"]
    assert compiler.input == "tools"
    assert compiler.revision == "r1"
    assert compiler.path == store_root / TOOLS_HANDLE / "x86_64-linux" / "compiler"
    assert compiler.search_paths == (str(compiler.path / "bin"),)

    # Packages without bin/ contribute their artifact directory.
    assert env.packages["linker"].search_paths == (str(env.packages["linker"].path),)

    assert env.search_paths == [
        str(store_root / TOOLS_HANDLE / "x86_64-linux" / "compiler" / "bin"),
        str(store_root / TOOLS_HANDLE / "x86_64-linux" / "linker"),
        str(store_root / EXTRAS_HANDLE / "x86_64-linux" / "docs" / "bin"),
    ]
    assert env.variables == {
        "SHELLSMITH_PLATFORM": "x86_64-linux",
        "SHELLSMITH_SHELL": "default",
        "SHELLSMITH_INPUT_TOOLS_REV": "r1",
        "SHELLSMITH_INPUT_EXTRAS_REV": "e1",
        "CC": "compiler",
    }
    # Each input is looked up once, however many packages it provides.
    assert sorted(fake_source.calls) == [(EXTRAS, "e1"), (TOOLS, "r1")]


async def test_first_declared_package_wins(descriptor, registry, store) -> None:
    env = await resolve_environment(descriptor, "x86_64-linux", registry=registry, store=store)

    compiler = env.packages["compiler"]
    assert compiler.input == "tools"
    assert compiler.handle == TOOLS_HANDLE
    assert not any(EXTRAS_HANDLE in path and "compiler" in path for path in env.search_paths)


async def test_resolution_is_stable(descriptor, registry, store) -> None:
    first = await resolve_environment(descriptor, "x86_64-linux", registry=registry, store=store)
    second = await resolve_environment(descriptor, "x86_64-linux", registry=registry, store=store)
    assert first == second


async def test_package_missing_from_store(descriptor, registry, store_root) -> None:
    empty_store = LocalPackageStore(store_root / "elsewhere")

    with pytest.raises(PackageNotFoundError) as exc_info:
        await resolve_environment(descriptor, "x86_64-linux", registry=registry, store=empty_store)

    assert exc_info.value.name == "compiler"
    assert exc_info.value.input_name == "tools"
    assert exc_info.value.platform == "x86_64-linux"
    assert exc_info.value.context["handle"] == TOOLS_HANDLE


async def test_cancellation_between_lookups(descriptor, registry, store) -> None:
    cancel = asyncio.Event()
    cancel.set()

    with pytest.raises(InvocationCancelledError) as exc_info:
        await resolve_environment(descriptor, "x86_64-linux", registry=registry, store=store, cancel=cancel)

    assert exc_info.value.stage == "resolve"
    assert exc_info.value.completed == 0


# ---------------------------------------------------------------------------
# Concurrent platforms
# ---------------------------------------------------------------------------


async def test_resolve_platforms_shares_registry(descriptor, registry, store, fake_source) -> None:
    result = await resolve_platforms(descriptor, ["aarch64-darwin", "x86_64-linux"], registry=registry, store=store)

    assert list(result) == ["aarch64-darwin", "x86_64-linux"]
    assert result["x86_64-linux"].packages["compiler"].handle == TOOLS_HANDLE
    assert result["aarch64-darwin"].platform == "aarch64-darwin"
    assert len(fake_source.calls) == 2


async def test_resolve_platforms_checks_all_platforms_first(descriptor, store) -> None:
    registry = MagicMock()
    registry.locate = AsyncMock()

    with pytest.raises(UnsupportedPlatformError):
        await resolve_platforms(descriptor, ["x86_64-linux", "riscv64-linux"], registry=registry, store=store)
    registry.locate.assert_not_called()


async def test_resolve_platforms_surfaces_plain_error(descriptor, registry, store, store_root) -> None:
    (store_root / TOOLS_HANDLE / "aarch64-darwin" / "linker").rmdir()

    with pytest.raises(PackageNotFoundError) as exc_info:
        await resolve_platforms(descriptor, ["x86_64-linux", "aarch64-darwin"], registry=registry, store=store)
    assert exc_info.value.platform == "aarch64-darwin"
