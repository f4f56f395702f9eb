import asyncio
import json
import sys
from collections.abc import Coroutine
from pathlib import Path
from typing import Any, TypeVar

import click

from shellsmith.engine.errors import HookExecutionError, ShellsmithError
from shellsmith.engine.models.descriptor import DEFAULT_SHELL
from shellsmith.engine.models.enums import OutputStream

T = TypeVar("T")

DEFAULT_DESCRIPTOR = Path("shellsmith.yaml")

descriptor_option = click.option(
    "--descriptor",
    "-f",
    type=click.Path(path_type=Path, dir_okay=False),
    default=DEFAULT_DESCRIPTOR,
    show_default=True,
    help="Environment descriptor to load.",
)
shell_option = click.option("--shell", "shell_name", default=DEFAULT_SHELL, show_default=True, help="Shell output.")
offline_option = click.option(
    "--offline/--online",
    default=None,
    help="Air-gapped mode: use only locked revisions (default: from SHELLSMITH_OFFLINE).",
)


def _run(coro: Coroutine[Any, Any, T]) -> T:
    """Run an engine coroutine, turning engine errors into a one-line CLI error."""
    try:
        return asyncio.run(coro)
    except ShellsmithError as exc:
        raise click.ClickException(str(exc)) from exc


def _echo_hook_line(index: int, stream: OutputStream, line: str) -> None:
    # stdout is reserved for --print-env and command output.
    click.echo(line, err=True)


def _echo_command_line(index: int, stream: OutputStream, line: str) -> None:
    click.echo(line, err=stream == OutputStream.STDERR)


@click.group()
@click.option("--log-level", default=None, help="Log level (default: from SHELLSMITH_LOG_LEVEL or INFO).")
@click.pass_context
def main(ctx: click.Context, log_level: str | None) -> None:
    """shellsmith - reproducible development shells from a declarative descriptor."""
    from shellsmith.engine.log import setup_logging
    from shellsmith.engine.settings import get_settings

    settings = get_settings()
    setup_logging(log_level or settings.log_level, settings.log_levels)
    ctx.obj = settings


@main.command()
@descriptor_option
@click.option("--platform", default=None, help="Target platform (default: current host).")
@shell_option
@offline_option
@click.option("--no-hook", is_flag=True, default=False, help="Skip the post-provision hook.")
@click.option("--command", "-c", "command", default=None, help="Run COMMAND in the shell instead of going interactive.")
@click.option("--print-env", is_flag=True, default=False, help="Print export lines for the environment and exit.")
@click.pass_obj
def develop(
    settings: Any,
    descriptor: Path,
    platform: str | None,
    shell_name: str,
    offline: bool | None,
    no_hook: bool,
    command: str | None,
    print_env: bool,
) -> None:
    """Enter (or script) the development shell."""
    from shellsmith.engine.execution import coordinator
    from shellsmith.engine.execution.environment import render_exports
    from shellsmith.engine.execution.hooks import run_hook, run_interactive

    result = _run(
        coordinator.develop(
            descriptor,
            settings=settings,
            platform=platform,
            shell=shell_name,
            run_hooks=not no_hook,
            offline=offline,
            on_output=_echo_hook_line,
        )
    )

    if result.hook is not None:
        try:
            result.hook.check()
        except HookExecutionError as exc:
            click.echo(f"Error: {exc}", err=True)
            sys.exit(exc.result.exit_code)

    if print_env:
        click.echo(render_exports(result.shell), nl=False)
        return

    if command is not None:
        outcome = _run(run_hook(result.shell, [command], on_output=_echo_command_line))
        sys.exit(outcome.exit_code)

    if not sys.stdin.isatty():
        # Non-interactive: the hook's exit code (0 here) is the result.
        return

    sys.exit(_run(run_interactive(result.shell, settings.resolve_shell())))


@main.command()
@descriptor_option
@click.option("--platform", "platforms", multiple=True, help="Platform to resolve (repeatable; default: host).")
@shell_option
@offline_option
@click.pass_obj
def resolve(settings: Any, descriptor: Path, platforms: tuple[str, ...], shell_name: str, offline: bool | None) -> None:
    """Resolve one or more platforms concurrently and print the result as JSON."""
    from shellsmith.engine.execution import coordinator

    resolved = _run(
        coordinator.resolve(descriptor, list(platforms), settings=settings, shell=shell_name, offline=offline)
    )
    payload = {platform: env.model_dump(mode="json") for platform, env in resolved.items()}
    click.echo(json.dumps(payload, indent=2))


@main.command()
@descriptor_option
@click.option("--update", is_flag=True, default=False, help="Ignore existing lock entries and re-pin to latest.")
@click.pass_obj
def lock(settings: Any, descriptor: Path, update: bool) -> None:
    """Pin every input and write the lock file."""
    from shellsmith.engine.execution import coordinator

    record = _run(coordinator.lock(descriptor, settings=settings, update=update))
    for name, entry in record.inputs.items():
        click.echo(f"{name}\t{entry.locator}\t{entry.revision}")


@main.command()
@descriptor_option
@click.pass_obj
def show(settings: Any, descriptor: Path) -> None:
    """Print the validated descriptor as JSON."""
    from shellsmith.engine.execution.loader import load_descriptor_file
    from shellsmith.engine.execution.resolver import supported_platforms

    try:
        loaded = load_descriptor_file(descriptor)
    except ShellsmithError as exc:
        raise click.ClickException(str(exc)) from exc

    payload = loaded.model_dump(mode="json")
    for name, spec in loaded.shells.items():
        payload["shells"][name]["supported_platforms"] = supported_platforms(spec, settings.default_platforms)
    click.echo(json.dumps(payload, indent=2))


if __name__ == "__main__":
    main()
