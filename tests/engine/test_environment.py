"""Unit tests for environment materialization (temporary store, no processes)."""

from __future__ import annotations

import os
from pathlib import Path

import pytest

from shellsmith.engine.errors import MaterializationError
from shellsmith.engine.execution.environment import materialize, render_exports
from shellsmith.engine.models.environment import ActivatedShell, ResolvedEnvironment, ResolvedPackage

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _package(name: str, path: Path, *, input_name: str = "tools") -> ResolvedPackage:
    bin_dir = path / "bin"
    search = str(bin_dir) if bin_dir.is_dir() else str(path)
    return ResolvedPackage(
        name=name,
        input=input_name,
        revision="r1",
        handle="h1",
        path=path,
        search_paths=(search,),
    )


def _resolved(*packages: ResolvedPackage, variables: dict[str, str] | None = None) -> ResolvedEnvironment:
    return ResolvedEnvironment(
        platform="x86_64-linux",
        shell="default",
        packages={pkg.name: pkg for pkg in packages},
        search_paths=[path for pkg in packages for path in pkg.search_paths],
        variables=variables or {"SHELLSMITH_PLATFORM": "x86_64-linux"},
    )


@pytest.fixture
def artifacts(make_package) -> dict[str, Path]:
    return {
        "compiler": make_package("h1", "x86_64-linux", "compiler", executables={"cc": "true"}),
        "openssl": make_package("h1", "x86_64-linux", "openssl", pkgconfig=True),
        "rustup": make_package("h1", "x86_64-linux", "rustup", executables={"rustup": "true"}),
    }


BASE_ENV = {"PATH": os.pathsep.join(["/usr/local/bin", "/usr/bin"]), "HOME": "/home/dev", "LANG": "C.UTF-8"}

# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------


def test_path_puts_packages_first(artifacts: dict[str, Path]) -> None:
    resolved = _resolved(_package("compiler", artifacts["compiler"]), _package("openssl", artifacts["openssl"]))

    shell = materialize(resolved, base_env=BASE_ENV)

    assert shell.env["PATH"].split(os.pathsep) == [
        str(artifacts["compiler"] / "bin"),
        str(artifacts["openssl"]),
        "/usr/local/bin",
        "/usr/bin",
    ]
    assert shell.search_paths == (str(artifacts["compiler"] / "bin"), str(artifacts["openssl"]))
    assert shell.env["HOME"] == "/home/dev"


def test_inherited_path_is_deduplicated(artifacts: dict[str, Path]) -> None:
    compiler_bin = str(artifacts["compiler"] / "bin")
    base = {"PATH": os.pathsep.join([compiler_bin, "/usr/bin"])}

    shell = materialize(_resolved(_package("compiler", artifacts["compiler"])), base_env=base)

    assert shell.env["PATH"].split(os.pathsep) == [compiler_bin, "/usr/bin"]


def test_pkg_config_path(artifacts: dict[str, Path]) -> None:
    resolved = _resolved(_package("openssl", artifacts["openssl"]))

    shell = materialize(resolved, base_env={**BASE_ENV, "PKG_CONFIG_PATH": "/usr/lib/pkgconfig"})

    assert shell.env["PKG_CONFIG_PATH"].split(os.pathsep) == [
        str(artifacts["openssl"] / "lib" / "pkgconfig"),
        "/usr/lib/pkgconfig",
    ]


def test_no_pkg_config_path_without_pkgconfig_dirs(artifacts: dict[str, Path]) -> None:
    shell = materialize(_resolved(_package("compiler", artifacts["compiler"])), base_env=BASE_ENV)
    assert "PKG_CONFIG_PATH" not in shell.env


def test_toolchain_managers_are_activated(artifacts: dict[str, Path]) -> None:
    resolved = _resolved(_package("compiler", artifacts["compiler"]), _package("rustup", artifacts["rustup"]))

    shell = materialize(resolved, base_env=BASE_ENV)

    assert shell.toolchains == frozenset({"rustup"})
    assert shell.is_activated("rustup")
    assert not shell.is_activated("pyenv")
    assert shell.env["SHELLSMITH_TOOLCHAINS"] == "rustup"


def test_variables_and_marker(artifacts: dict[str, Path], tmp_path: Path) -> None:
    resolved = _resolved(
        _package("compiler", artifacts["compiler"]),
        variables={"SHELLSMITH_PLATFORM": "x86_64-linux", "LANG": "en_US.UTF-8"},
    )

    shell = materialize(resolved, base_env=BASE_ENV, cwd=tmp_path)

    assert shell.env["SHELLSMITH_ACTIVE"] == "1"
    assert shell.env["SHELLSMITH_PLATFORM"] == "x86_64-linux"
    assert shell.env["LANG"] == "en_US.UTF-8"
    assert shell.cwd == tmp_path
    assert BASE_ENV["LANG"] == "C.UTF-8"


def test_missing_artifact(tmp_path: Path) -> None:
    resolved = _resolved(_package("ghost", tmp_path / "ghost"))

    with pytest.raises(MaterializationError) as exc_info:
        materialize(resolved, base_env=BASE_ENV)
    assert exc_info.value.package == "ghost"
    assert "missing" in exc_info.value.reason


def test_artifact_that_is_not_a_directory(tmp_path: Path) -> None:
    bogus = tmp_path / "bogus"
    bogus.write_text("not a package")

    with pytest.raises(MaterializationError, match="not a directory"):
        materialize(_resolved(_package("bogus", bogus)), base_env=BASE_ENV)


def test_render_exports_only_lists_changes(artifacts: dict[str, Path]) -> None:
    resolved = _resolved(
        _package("compiler", artifacts["compiler"]),
        variables={"GREETING": "hello world"},
    )
    shell = materialize(resolved, base_env=BASE_ENV)

    exports = render_exports(shell, base_env=BASE_ENV).splitlines()

    assert "export GREETING='hello world'" in exports
    assert "export SHELLSMITH_ACTIVE=1" in exports
    assert any(line.startswith("export PATH=") for line in exports)
    assert not any(line.startswith("export HOME=") for line in exports)
    assert exports == sorted(exports)


def test_render_exports_empty() -> None:
    shell = ActivatedShell(platform="x86_64-linux", shell="default", env=dict(BASE_ENV))
    assert render_exports(shell, base_env=BASE_ENV) == ""
