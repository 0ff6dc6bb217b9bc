"""Utilities for executing external tools and recording invocations."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Mapping, Sequence
import os
import shlex
import subprocess


@dataclass
class CommandResult:
    """Represents the outcome of an executed command."""

    command: Sequence[str]
    returncode: int
    stdout: str
    stderr: str
    streamed: bool = False

    @property
    def succeeded(self) -> bool:
        return self.returncode == 0


class CommandError(RuntimeError):
    """Raised when a command fails."""

    def __init__(self, result: CommandResult):
        message = f"Command failed with exit code {result.returncode}: {format_command(result.command)}"
        if result.streamed:
            message = f"{message}\nstdout/stderr already streamed above."
        else:
            message = (
                f"{message}\n"
                f"stdout: {result.stdout}\n"
                f"stderr: {result.stderr}"
            )
        super().__init__(message)
        self.result = result


def format_command(command: Sequence[str]) -> str:
    return " ".join(shlex.quote(str(part)) for part in command)


class CommandRunner:
    """Abstract command runner interface."""

    def run(
        self,
        command: Sequence[str],
        *,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
        check: bool = True,
        note: str | None = None,
        stream: bool = False,
    ) -> CommandResult:
        raise NotImplementedError

    def format_command(self, command: Sequence[str]) -> str:
        return format_command(command)


class SubprocessCommandRunner(CommandRunner):
    """Command runner that executes commands via :mod:`subprocess`.

    ``env`` entries are layered over the current process environment. With
    ``stream=True`` the child writes straight to the terminal, which is what
    long-running configure and bootstrap steps want.
    """

    @staticmethod
    def _merge_environment(env: Mapping[str, str] | None) -> Dict[str, str] | None:
        if env is None:
            return None
        merged = os.environ.copy()
        merged.update(env)
        return merged

    def _finalize(self, result: CommandResult, *, check: bool) -> CommandResult:
        if check and result.returncode != 0:
            raise CommandError(result)
        return result

    def run(
        self,
        command: Sequence[str],
        *,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
        check: bool = True,
        note: str | None = None,
        stream: bool = False,
    ) -> CommandResult:
        argv = [str(part) for part in command]
        merged_env = self._merge_environment(env)
        if not stream:
            process = subprocess.run(
                argv,
                cwd=str(cwd) if cwd else None,
                env=merged_env,
                capture_output=True,
                text=True,
                check=False,
            )
            return self._finalize(
                CommandResult(
                    command=argv,
                    returncode=process.returncode,
                    stdout=process.stdout,
                    stderr=process.stderr,
                ),
                check=check,
            )

        process = subprocess.run(
            argv,
            cwd=str(cwd) if cwd else None,
            env=merged_env,
            check=False,
        )

        return self._finalize(
            CommandResult(
                command=argv,
                returncode=process.returncode,
                stdout="",
                stderr="",
                streamed=True,
            ),
            check=check,
        )


@dataclass(slots=True)
class RecordedCommand:
    command: List[str]
    cwd: str | None
    env: Dict[str, str]
    note: str | None
    stream: bool

    @property
    def executable(self) -> str:
        return Path(self.command[0]).name if self.command else ""


Responder = Callable[[RecordedCommand], "CommandResult | int | str | None"]


@dataclass(slots=True)
class _Response:
    returncode: int = 0
    stdout: str = ""
    stderr: str = ""
    callback: Responder | None = None


class RecordingCommandRunner(CommandRunner):
    """Command runner that records commands instead of executing them.

    Responses can be scripted per executable name with :meth:`respond`, so a
    probe such as ``cmake --version`` returns canned output while every other
    command succeeds silently.
    """

    def __init__(self) -> None:
        self.commands: List[RecordedCommand] = []
        self._responses: Dict[str, _Response] = {}

    def respond(
        self,
        executable: str,
        *,
        returncode: int = 0,
        stdout: str = "",
        stderr: str = "",
        callback: Responder | None = None,
    ) -> None:
        """Script the result for commands whose program name is ``executable``."""

        self._responses[Path(executable).name] = _Response(
            returncode=returncode,
            stdout=stdout,
            stderr=stderr,
            callback=callback,
        )

    @staticmethod
    def _record_entry(
        *,
        command: Sequence[str],
        cwd: Path | None,
        env: Mapping[str, str] | None,
        note: str | None,
        stream: bool,
    ) -> RecordedCommand:
        return RecordedCommand(
            command=[str(part) for part in command],
            cwd=str(cwd) if cwd else None,
            env=dict(env) if env else {},
            note=note,
            stream=stream,
        )

    def run(
        self,
        command: Sequence[str],
        *,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
        check: bool = True,
        note: str | None = None,
        stream: bool = False,
    ) -> CommandResult:
        record = self._record_entry(command=command, cwd=cwd, env=env, note=note, stream=stream)
        self.commands.append(record)

        response = self._responses.get(record.executable, _Response())
        result = CommandResult(
            command=record.command,
            returncode=response.returncode,
            stdout=response.stdout,
            stderr=response.stderr,
            streamed=stream,
        )
        if response.callback is not None:
            outcome = response.callback(record)
            if isinstance(outcome, CommandResult):
                result = outcome
            elif isinstance(outcome, int):
                result.returncode = outcome
            elif isinstance(outcome, str):
                result.stdout = outcome

        if check and result.returncode != 0:
            raise CommandError(result)
        return result

    def iter_commands(self) -> Iterable[RecordedCommand]:
        return iter(self.commands)

    def commands_for(self, executable: str) -> List[RecordedCommand]:
        name = Path(executable).name
        return [record for record in self.commands if record.executable == name]


__all__ = [
    "CommandError",
    "CommandResult",
    "CommandRunner",
    "RecordedCommand",
    "RecordingCommandRunner",
    "SubprocessCommandRunner",
    "format_command",
]
