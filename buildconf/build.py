"""Release and debug build tree configuration."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, List, Mapping, Sequence
import shutil

from core.command_runner import CommandRunner

from .console import Console
from .errors import BuildInvocationError
from .options import BuildConfiguration, render_definitions
from .settings import BuildLayout
from .toolchains import ToolchainSpec

CACHE_MARKER = "CMakeCache.txt"
STALE_BINDINGS = Path("src/unity/python/turicreate/cython")


class BuildProfile(str, Enum):
    """CMake build type and the tree it is configured in."""

    OPTIMIZED = "Release"
    DEBUGGABLE = "Debug"

    @property
    def build_type(self) -> str:
        return self.value

    def directory(self, layout: BuildLayout) -> Path:
        if self is BuildProfile.OPTIMIZED:
            return layout.release_dir
        return layout.debug_dir


PROFILE_ORDER: Sequence[BuildProfile] = (BuildProfile.OPTIMIZED, BuildProfile.DEBUGGABLE)


@dataclass(slots=True)
class BuildStep:
    """One planned CMake configure invocation."""

    description: str
    profile: BuildProfile
    command: Sequence[str]
    cwd: Path
    env: Dict[str, str] = field(default_factory=dict)


class BuildTreeOrchestrator:
    """Configures the release and debug trees in order, stopping at the first failure."""

    def __init__(
        self,
        *,
        layout: BuildLayout,
        command_runner: CommandRunner,
        console: Console,
        environment: Mapping[str, str] | None = None,
        generator_args: Sequence[str] = (),
    ) -> None:
        self._layout = layout
        self._runner = command_runner
        self._console = console
        self._environment = dict(environment or {})
        self._generator_args = list(generator_args)

    def _configure_command(
        self,
        *,
        profile: BuildProfile,
        toolchain: ToolchainSpec,
        definitions: Sequence[str],
    ) -> List[str]:
        command: List[str] = [str(toolchain.cmake), *self._generator_args]
        command.extend(["-D", f"CMAKE_BUILD_TYPE={profile.build_type}"])
        command.extend(["-D", f"CMAKE_C_COMPILER={toolchain.cc}"])
        command.extend(["-D", f"CMAKE_CXX_COMPILER={toolchain.cxx}"])
        for definition in definitions:
            command.extend(["-D", definition])
        command.append(str(self._layout.workspace))
        return command

    def plan(self, configuration: BuildConfiguration, toolchain: ToolchainSpec) -> List[BuildStep]:
        definitions = render_definitions(configuration)
        steps: List[BuildStep] = []
        for profile in PROFILE_ORDER:
            steps.append(
                BuildStep(
                    description=f"Configure {profile.build_type} tree",
                    profile=profile,
                    command=self._configure_command(
                        profile=profile,
                        toolchain=toolchain,
                        definitions=definitions,
                    ),
                    cwd=profile.directory(self._layout),
                    env=dict(self._environment),
                )
            )
        return steps

    def remove_stale_bindings(self) -> None:
        for profile in PROFILE_ORDER:
            stale = profile.directory(self._layout) / STALE_BINDINGS
            if stale.exists():
                self._console.debug(f"Removing stale bindings in {stale}")
                shutil.rmtree(stale)

    @staticmethod
    def prepare_directory(directory: Path) -> None:
        directory.mkdir(parents=True, exist_ok=True)
        (directory / CACHE_MARKER).unlink(missing_ok=True)

    def execute(self, steps: Sequence[BuildStep]) -> None:
        self.remove_stale_bindings()
        for step in steps:
            self._console.section(step.profile.build_type)
            self.prepare_directory(step.cwd)
            self._console.info(self._runner.format_command(step.command))
            try:
                result = self._runner.run(
                    step.command,
                    cwd=step.cwd,
                    env=step.env,
                    check=False,
                    note=step.description,
                    stream=True,
                )
            except OSError as exc:
                raise BuildInvocationError(step.profile.build_type, 1, reason=str(exc)) from exc
            if not result.succeeded:
                raise BuildInvocationError(step.profile.build_type, result.returncode)

    def run(self, configuration: BuildConfiguration, toolchain: ToolchainSpec) -> List[BuildStep]:
        steps = self.plan(configuration, toolchain)
        self.execute(steps)
        return steps


__all__ = ["BuildProfile", "BuildStep", "BuildTreeOrchestrator", "CACHE_MARKER", "PROFILE_ORDER", "STALE_BINDINGS"]
