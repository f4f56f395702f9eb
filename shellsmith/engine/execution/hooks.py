"""Hook executor -- runs post-provision commands inside an activated shell.

Commands run one at a time through the system shell with the activated
environment.  Execution is fail-fast: the first non-zero exit stops the run
and becomes the ``HookResult`` exit code.  Nothing is rolled back; hook
commands are expected to be idempotent.

``ToolchainCommand`` entries only run when their manager is activated in the
shell; otherwise they are recorded as skipped.

A command is finished once its stdout and stderr reach EOF.  Background
children that inherit those pipes (``daemon &``) keep the command open until
they exit; set a timeout to bound them, since expiry kills the whole process
group.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
import signal
import time
from typing import TYPE_CHECKING

from shellsmith.engine.errors import InvocationCancelledError, OperationTimeoutError
from shellsmith.engine.models.descriptor import ShellCommand, ToolchainCommand
from shellsmith.engine.models.enums import CommandStatus, OutputStream
from shellsmith.engine.models.environment import CommandResult, HookResult

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from shellsmith.engine.models.descriptor import HookCommand
    from shellsmith.engine.models.environment import ActivatedShell

    OutputCallback = Callable[[int, OutputStream, str], None]

logger = logging.getLogger(__name__)

_READ_CHUNK = 65536


async def run_hook(
    shell: ActivatedShell,
    commands: Sequence[HookCommand | str],
    *,
    timeout: float | None = None,
    cancel: asyncio.Event | None = None,
    on_output: OutputCallback | None = None,
) -> HookResult:
    """Run *commands* sequentially in *shell*.

    Parameters
    ----------
    shell:
        Activated environment (from ``materialize``).
    commands:
        Hook commands; bare strings are treated as ``ShellCommand``.
    timeout:
        Per-command limit in seconds.  On expiry the child is killed and
        ``OperationTimeoutError`` is raised.
    cancel:
        Cooperative cancellation signal, checked between commands.
    on_output:
        Called as ``on_output(index, stream, line)`` for every output line.

    Returns
    -------
    HookResult
        Exit code of the first failing command (0 if all succeeded) plus the
        captured output of every command that ran.
    """
    start = time.monotonic()
    results: list[CommandResult] = []

    for index, command in enumerate(commands):
        if isinstance(command, str):
            command = ShellCommand(command=command)

        if cancel is not None and cancel.is_set():
            so_far = _summarize(results, start)
            raise InvocationCancelledError("hook", completed=len(results), result=so_far, command_index=index)

        if isinstance(command, ToolchainCommand) and not shell.is_activated(command.manager):
            logger.warning(
                "Skipping hook command #%d `%s`: toolchain manager '%s' is not part of the environment",
                index,
                command.command,
                command.manager,
            )
            results.append(CommandResult(index=index, command=command.command, status=CommandStatus.SKIPPED))
            continue

        result = await _run_command(shell, index, command.command, timeout=timeout, on_output=on_output)
        results.append(result)
        if result.exit_code != 0:
            logger.error("Hook command #%d `%s` exited with %d", index, command.command, result.exit_code)
            break

    return _summarize(results, start)


# ---------------------------------------------------------------------------
# Internals
# ---------------------------------------------------------------------------


async def _run_command(
    shell: ActivatedShell,
    index: int,
    command: str,
    *,
    timeout: float | None,
    on_output: OutputCallback | None,
) -> CommandResult:
    logger.info("Running hook command #%d: %s", index, command)
    started = time.monotonic()
    stdout: list[str] = []
    stderr: list[str] = []

    process = await asyncio.create_subprocess_shell(
        command,
        stdin=asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
        env=shell.env,
        cwd=shell.cwd,
        start_new_session=os.name == "posix",
    )
    try:
        async with asyncio.timeout(timeout):
            await asyncio.gather(
                _pump(process.stdout, index, OutputStream.STDOUT, stdout, on_output),
                _pump(process.stderr, index, OutputStream.STDERR, stderr, on_output),
            )
            exit_code = await process.wait()
    except TimeoutError as exc:
        # The shell may be gone while its background children still hold the pipes.
        _kill(process)
        raise OperationTimeoutError("hook command", timeout or 0, command_index=index, command=command) from exc
    finally:
        if process.returncode is None:
            _kill(process)
            await process.wait()

    return CommandResult(
        index=index,
        command=command,
        status=CommandStatus.OK if exit_code == 0 else CommandStatus.FAILED,
        exit_code=exit_code,
        stdout="".join(stdout),
        stderr="".join(stderr),
        duration=time.monotonic() - started,
    )


async def _pump(
    reader: asyncio.StreamReader | None,
    index: int,
    stream: OutputStream,
    sink: list[str],
    on_output: OutputCallback | None,
) -> None:
    # Lines may exceed the reader's buffer limit, so no readline().
    if reader is None:
        return
    pending = b""
    while chunk := await reader.read(_READ_CHUNK):
        *lines, pending = (pending + chunk).split(b"\n")
        for line in lines:
            _emit(line.decode("utf-8", errors="replace") + "\n", index, stream, sink, on_output)
    if pending:
        _emit(pending.decode("utf-8", errors="replace"), index, stream, sink, on_output)


def _emit(text: str, index: int, stream: OutputStream, sink: list[str], on_output: OutputCallback | None) -> None:
    sink.append(text)
    logger.debug("[hook #%d %s] %s", index, stream, text.rstrip("\n"))
    if on_output is not None:
        on_output(index, stream, text.rstrip("\n"))


def _kill(process: asyncio.subprocess.Process) -> None:
    """Kill the child and, on POSIX, its whole process group."""
    with contextlib.suppress(ProcessLookupError):
        if os.name == "posix":
            os.killpg(process.pid, signal.SIGKILL)
        else:
            process.kill()


def _summarize(results: list[CommandResult], start: float) -> HookResult:
    exit_code = next((r.exit_code for r in results if r.status == CommandStatus.FAILED), 0)
    return HookResult(
        exit_code=exit_code,
        stdout="".join(r.stdout for r in results),
        stderr="".join(r.stderr for r in results),
        duration=time.monotonic() - start,
        commands=results,
    )


async def run_interactive(shell: ActivatedShell, program: str) -> int:
    """Start *program* interactively inside *shell* and return its exit code.

    stdio is inherited from the caller; the hook has already run by now.
    """
    logger.info("Entering %s shell for %s (%s)", shell.shell, shell.platform, program)
    process = await asyncio.create_subprocess_exec(program, env=shell.env, cwd=shell.cwd)
    try:
        return await process.wait()
    finally:
        if process.returncode is None:
            _kill_child(process)
            await process.wait()


def _kill_child(process: asyncio.subprocess.Process) -> None:
    with contextlib.suppress(ProcessLookupError):
        process.kill()
