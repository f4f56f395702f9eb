"""Shared test fixtures: settings, a fake input source and a package store.

Everything runs against temporary directories; no network access is
needed.  GitHub lookups are exercised through ``httpx.MockTransport``.
"""

from __future__ import annotations

import asyncio
import os
from collections.abc import Callable, Iterator
from pathlib import Path

import pytest

from shellsmith.engine.settings import ShellsmithSettings, get_settings
from shellsmith.engine.sources.base import SourceLookupError, SourceRevision, content_handle


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Drop SHELLSMITH_* variables from the developer's shell and reset the cache."""
    for key in [k for k in os.environ if k.startswith("SHELLSMITH_")]:
        monkeypatch.delenv(key)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def store_root(tmp_path: Path) -> Path:
    root = tmp_path / "store"
    root.mkdir()
    return root


@pytest.fixture
def settings(store_root: Path) -> ShellsmithSettings:
    return ShellsmithSettings(store_root=str(store_root), registry_timeout=5.0, _env_file=None)


# ---------------------------------------------------------------------------
# Package store
# ---------------------------------------------------------------------------


@pytest.fixture
def make_package(store_root: Path) -> Callable[..., Path]:
    """Create ``{store}/{handle}/{platform}/{name}`` with optional executables.

    ``executables`` maps a program name to its shell-script body; each is
    written to ``bin/<name>`` with the executable bit set.
    """

    def _make(
        handle: str,
        platform: str,
        name: str,
        *,
        executables: dict[str, str] | None = None,
        pkgconfig: bool = False,
    ) -> Path:
        artifact = store_root / handle / platform / name
        artifact.mkdir(parents=True, exist_ok=True)
        for program, body in (executables or {}).items():
            bin_dir = artifact / "bin"
            bin_dir.mkdir(exist_ok=True)
            script = bin_dir / program
            script.write_text(f"#!/bin/sh\n{body}\n")
            script.chmod(0o755)
        if pkgconfig:
            (artifact / "lib" / "pkgconfig").mkdir(parents=True, exist_ok=True)
        return artifact

    return _make


# ---------------------------------------------------------------------------
# Input source
# ---------------------------------------------------------------------------


class FakeSource:
    """In-memory ``InputSource`` that records every lookup.

    ``publish`` moves a locator's latest revision; previously published
    revisions stay resolvable when pinned.  ``gate`` (when set) blocks each
    lookup until the event fires, and ``errors`` are raised first, in order.
    """

    def __init__(self, gate: asyncio.Event | None = None) -> None:
        self.latest: dict[str, str] = {}
        self.available: dict[str, set[str]] = {}
        self.calls: list[tuple[str, str | None]] = []
        self.errors: list[Exception] = []
        self.gate = gate

    def publish(self, locator: str, revision: str) -> None:
        self.latest[locator] = revision
        self.available.setdefault(locator, set()).add(revision)

    async def resolve(self, locator: str, revision: str | None = None) -> SourceRevision:
        self.calls.append((locator, revision))
        if self.gate is not None:
            await self.gate.wait()
        if self.errors:
            raise self.errors.pop(0)

        if locator not in self.latest:
            msg = f"unknown locator {locator}"
            raise SourceLookupError(msg)
        if revision is None:
            revision = self.latest[locator]
        elif revision not in self.available[locator]:
            msg = f"revision '{revision}' does not exist"
            raise SourceLookupError(msg)
        return SourceRevision(revision=revision, handle=content_handle(locator, revision))


@pytest.fixture
def fake_source() -> FakeSource:
    return FakeSource()


@pytest.fixture
def fake_source_factory() -> Callable[..., FakeSource]:
    return FakeSource
