"""
Cleanup and python toolchain maintenance actions.
"""
from __future__ import annotations

from typing import Callable
import shutil

from core.command_runner import CommandError, CommandRunner

from .console import Console
from .errors import ToolBootstrapError
from .settings import BuildLayout

Prompt = Callable[[str], str]

CLEANUP_WARNING = "This script completely erases all build folders including dependencies!"
CLEANUP_QUESTION = "Are you sure you want to continue? (yes or no)"
PYTHON_TOOLCHAIN_FAILURE = "Error reported installing the python toolchain."


def run_cleanup(layout: BuildLayout, console: Console) -> None:
    """Remove both build trees and every dependency directory."""
    console.info("cleaning up")
    for target in layout.cleanup_targets():
        if target.is_dir() and not target.is_symlink():
            shutil.rmtree(target)
        elif target.exists() or target.is_symlink():
            target.unlink()


def run_cleanup_prompt(
    layout: BuildLayout,
    console: Console,
    *,
    assume_yes: bool,
    prompt: Prompt = input,
) -> bool:
    print(CLEANUP_WARNING)
    if assume_yes:
        answer = "yes"
    else:
        print(CLEANUP_QUESTION)
        try:
            answer = prompt("")
        except EOFError:
            answer = ""

    if answer.strip() == "yes":
        run_cleanup(layout, console)
        return True
    print("Doing nothing!")
    return False


def install_python_toolchain(
    layout: BuildLayout,
    runner: CommandRunner,
    console: Console,
    *,
    virtualenv: str | None,
) -> None:
    console.info("Installing python toolchain.")
    console.info(f"Using virtualenv at {virtualenv or '<PATH lookup>'}.")
    script = layout.scripts_dir / "install_python_toolchain.sh"
    env = {"VIRTUALENV": virtualenv} if virtualenv else {}
    try:
        runner.run(
            [str(script)],
            cwd=layout.workspace,
            env=env,
            note="Install python toolchain",
            stream=True,
        )
    except (CommandError, OSError) as exc:
        raise ToolBootstrapError(PYTHON_TOOLCHAIN_FAILURE) from exc


__all__ = ["install_python_toolchain", "run_cleanup", "run_cleanup_prompt"]
