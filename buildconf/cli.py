"""Command line interface for the configure front end."""
from __future__ import annotations

from pathlib import Path
from typing import Iterable, Mapping
import sys

from core.command_runner import CommandError, CommandRunner, SubprocessCommandRunner

from .build import BuildTreeOrchestrator
from .console import Console
from .environment import ContextBuilder
from .errors import ConfigurationError, ConfigureError, ToolBootstrapError
from .maintenance import Prompt, install_python_toolchain, run_cleanup_prompt
from .options import ResolvedArguments, resolve_arguments, validate_configuration
from .settings import Settings, load_settings
from .toolchains import ToolProvisioner

HELP_TEXT = """\
Configures the build with the specified toolchain.

If configure has already been run before, running configure
will simply reconfigure the build with no changes.

Usage: configure <options>

  --cleanup                         Clean up everything.

  --install-python-toolchain        Install python in local virtualenv.

  --with-system-cmake (default)     Use system cmake, if available.
  --no-system-cmake

  --with-ccache (default)           Use ccache, if available.
  --no-ccache

  --with-capi (default)             Build C API.
  --with-capi-framework             Build C API as macOS framework (macOS only)
  --no-capi                         Skip building the C API.

  --with-python (default)           Build python components.
  --no-python

  --with-visualization (default)    Build the visualization client.
  --no-visualization

  --release-opt-for-size            Optimize for size.
  --target-ios                      Build for iOS (macOS only)

  --with-remotefs (default)         Include capabilities for remote file access.
  --no-remotefs                     Disable remote file access.

  --virtualenv VIRTUALENV_EXE       Path to virtualenv executable (otherwise looks in $PATH).

  --yes                             Defaults to yes on a prompt

  --verbose                         Print probes and full commands.

  -D var=value                      Specify definitions to be passed on to cmake.

Settings are read from configure.toml (or .json/.yaml/.yml) in the
current directory, or from the file named by $BUILDCONF_CONFIG.

Example: configure

Cleanup all build directories
Example: configure --cleanup
"""


def _report_error(exc: Exception) -> None:
    print(f"Error: {exc}")
    if isinstance(exc, ConfigurationError):
        print("To get help, run configure --help")


def _handle_install_python_toolchain(
    request: ResolvedArguments,
    settings: Settings,
    workspace: Path,
    *,
    runner: CommandRunner,
    context: ContextBuilder,
    console: Console,
) -> int:
    layout = settings.layout(workspace)
    virtualenv = context.virtualenv(request.configuration.virtualenv)
    try:
        install_python_toolchain(layout, runner, console, virtualenv=virtualenv)
    except ToolBootstrapError as exc:
        _report_error(exc)
        cause = exc.__cause__
        if isinstance(cause, CommandError) and cause.result.returncode > 0:
            return cause.result.returncode
        return exc.exit_code
    return 0


def _handle_configure(
    request: ResolvedArguments,
    settings: Settings,
    workspace: Path,
    *,
    runner: CommandRunner,
    context: ContextBuilder,
    console: Console,
) -> None:
    configuration = request.configuration
    validate_configuration(configuration)
    layout = settings.layout(workspace)

    if configuration.python:
        install_python_toolchain(
            layout,
            runner,
            console,
            virtualenv=context.virtualenv(configuration.virtualenv),
        )

    console.section("BUILD CONFIGURATION")
    console.info(f"System Information: {context.system().describe()}")
    for line in configuration.summary():
        console.debug(line)

    provisioner = ToolProvisioner(layout=layout, command_runner=runner, console=console, context=context)
    toolchain = provisioner.provision(configuration)

    orchestrator = BuildTreeOrchestrator(
        layout=layout,
        command_runner=runner,
        console=console,
        environment=context.search_paths(layout),
        generator_args=context.generator_arguments(settings.generator),
    )
    orchestrator.run(configuration, toolchain)


def execute(
    tokens: Iterable[str],
    workspace: Path,
    *,
    runner: CommandRunner | None = None,
    env: Mapping[str, str] | None = None,
    console: Console | None = None,
    prompt: Prompt = input,
) -> int:
    """Run one configure invocation and return the process exit status."""

    console = console or Console()
    context = ContextBuilder(env)
    try:
        settings = load_settings(workspace, context.environment())
        console.set_level(settings.log_level)
        request = resolve_arguments(tokens, base=settings.base)
    except ConfigurationError as exc:
        _report_error(exc)
        return exc.exit_code

    if request.show_help:
        print(HELP_TEXT)
        return 1
    if request.verbose:
        console.set_level("debug")

    runner = runner or SubprocessCommandRunner()

    if request.cleanup:
        run_cleanup_prompt(settings.layout(workspace), console, assume_yes=request.assume_yes, prompt=prompt)
        return 0

    if request.install_python_toolchain:
        return _handle_install_python_toolchain(
            request, settings, workspace, runner=runner, context=context, console=console
        )

    try:
        _handle_configure(request, settings, workspace, runner=runner, context=context, console=console)
    except ConfigureError as exc:
        _report_error(exc)
        return exc.exit_code
    return 0


def main(argv: Iterable[str] | None = None) -> int:
    tokens = list(sys.argv[1:] if argv is None else argv)
    return execute(tokens, Path.cwd())


__all__ = ["HELP_TEXT", "execute", "main"]
