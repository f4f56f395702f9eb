"""Tests for the hook executor (real /bin/sh subprocesses)."""

from __future__ import annotations

import asyncio
import os
import time
from pathlib import Path

import pytest

from shellsmith.engine.errors import HookExecutionError, InvocationCancelledError, OperationTimeoutError
from shellsmith.engine.execution.hooks import run_hook
from shellsmith.engine.models.descriptor import ShellCommand, ToolchainCommand
from shellsmith.engine.models.enums import CommandStatus, OutputStream
from shellsmith.engine.models.environment import ActivatedShell

pytestmark = pytest.mark.skipif(os.name != "posix", reason="hook tests use POSIX shell commands")


@pytest.fixture
def shell(tmp_path: Path) -> ActivatedShell:
    return ActivatedShell(
        platform="x86_64-linux",
        shell="default",
        env={**os.environ, "GREETING": "hello from shellsmith"},
        cwd=tmp_path,
    )


async def test_commands_run_in_order(shell: ActivatedShell) -> None:
    result = await run_hook(shell, ["echo one", ShellCommand(command="echo two")])

    assert result.ok
    assert result.exit_code == 0
    assert result.stdout == "one\ntwo\n"
    assert [c.status for c in result.commands] == [CommandStatus.OK, CommandStatus.OK]
    assert result.check() is result


async def test_fail_fast(shell: ActivatedShell, tmp_path: Path) -> None:
    result = await run_hook(shell, ["true", "exit 3", "touch marker"])

    assert result.exit_code == 3
    assert not (tmp_path / "marker").exists()
    assert len(result.commands) == 2
    assert result.failed_command is not None
    assert result.failed_command.index == 1

    with pytest.raises(HookExecutionError) as exc_info:
        result.check()
    assert exc_info.value.context == {"command_index": 1, "command": "exit 3", "exit_code": 3}


async def test_environment_and_cwd(shell: ActivatedShell, tmp_path: Path) -> None:
    result = await run_hook(shell, ['echo "$GREETING"', "pwd"])

    assert result.stdout.splitlines() == ["hello from shellsmith", str(tmp_path.resolve())]


async def test_stderr_is_captured(shell: ActivatedShell) -> None:
    result = await run_hook(shell, ["echo oops >&2"])
    assert result.stderr == "oops\n"
    assert result.stdout == ""


async def test_output_callback(shell: ActivatedShell) -> None:
    lines: list[tuple[int, OutputStream, str]] = []

    await run_hook(
        shell,
        ["echo first", "echo second >&2"],
        on_output=lambda index, stream, line: lines.append((index, stream, line)),
    )

    assert lines == [(0, OutputStream.STDOUT, "first"), (1, OutputStream.STDERR, "second")]


async def test_toolchain_command_skipped_when_manager_absent(shell: ActivatedShell, tmp_path: Path) -> None:
    result = await run_hook(
        shell,
        [ToolchainCommand(manager="rustup", command="rustup component add rust-src"), "touch after"],
    )

    assert result.exit_code == 0
    assert [c.status for c in result.commands] == [CommandStatus.SKIPPED, CommandStatus.OK]
    assert (tmp_path / "after").exists()


async def test_toolchain_command_runs_when_manager_present(shell: ActivatedShell) -> None:
    activated = shell.model_copy(update={"toolchains": frozenset({"rustup"})})

    result = await run_hook(activated, [ToolchainCommand(manager="rustup", command="echo toolchain")])

    assert result.commands[0].status == CommandStatus.OK
    assert result.stdout == "toolchain\n"


async def test_timeout_kills_command(shell: ActivatedShell) -> None:
    started = time.monotonic()

    with pytest.raises(OperationTimeoutError) as exc_info:
        await run_hook(shell, ["sleep 30"], timeout=0.3)

    assert time.monotonic() - started < 10
    assert exc_info.value.context["command_index"] == 0


async def test_cancel_before_start(shell: ActivatedShell) -> None:
    cancel = asyncio.Event()
    cancel.set()

    with pytest.raises(InvocationCancelledError) as exc_info:
        await run_hook(shell, ["echo never"], cancel=cancel)

    assert exc_info.value.completed == 0
    assert exc_info.value.result is not None
    assert exc_info.value.result.commands == []


async def test_cancel_between_commands(shell: ActivatedShell, tmp_path: Path) -> None:
    cancel = asyncio.Event()

    with pytest.raises(InvocationCancelledError) as exc_info:
        await run_hook(
            shell,
            ["echo first", "touch second"],
            cancel=cancel,
            on_output=lambda *_: cancel.set(),
        )

    assert exc_info.value.stage == "hook"
    assert exc_info.value.completed == 1
    assert exc_info.value.result.stdout == "first\n"
    assert not (tmp_path / "second").exists()


async def test_long_output_line(shell: ActivatedShell) -> None:
    lines: list[str] = []

    result = await run_hook(
        shell,
        ["head -c 200000 /dev/zero | tr '\\0' a", "echo after"],
        on_output=lambda index, stream, line: lines.append(line),
    )

    assert result.exit_code == 0
    assert result.stdout == "a" * 200000 + "after\n"
    assert lines == ["a" * 200000, "after"]


async def test_timeout_kills_background_children(shell: ActivatedShell) -> None:
    started = time.monotonic()

    with pytest.raises(OperationTimeoutError):
        await run_hook(shell, ["sleep 30 & echo started"], timeout=0.3)

    assert time.monotonic() - started < 10
