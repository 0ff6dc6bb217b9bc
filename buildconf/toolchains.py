"""Compiler discovery, compiler shims and CMake provisioning."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import List, Sequence, Tuple
import os
import shutil
import tempfile

from core.command_runner import CommandError, CommandRunner, format_command

from .console import Console
from .environment import ContextBuilder
from .errors import ToolBootstrapError, ToolchainNotFoundError
from .options import BuildConfiguration, Option
from .settings import BUNDLED_CMAKE_VERSION, BuildLayout
from .versions import VersionTriple, extract_version, meets_minimum

MINIMUM_CMAKE_VERSION = "3.5.1"
CACHE_TOOL = "ccache"
BOOTSTRAP_FAILURE = "Error reported installing CMake."

CC_CANDIDATES: Tuple[str, ...] = ("cc", "gcc", "clang")
CXX_CANDIDATES: Tuple[str, ...] = ("cxx", "c++", "g++", "clang++")
DARWIN_CC_CANDIDATES: Tuple[str, ...] = ("clang",)
DARWIN_CXX_CANDIDATES: Tuple[str, ...] = ("clang++",)

SHIM_MODE = 0o755


@dataclass(frozen=True)
class WrappedCommand:
    """An underlying command plus an optional launcher placed in front of it."""

    command: str
    prefix: Tuple[str, ...] = ()

    @property
    def wrapped(self) -> bool:
        return bool(self.prefix)

    def argv(self, arguments: Sequence[str] = ()) -> List[str]:
        return [*self.prefix, self.command, *arguments]

    def render_script(self) -> str:
        return f'#!/bin/bash -e\nexec {format_command(self.argv())} "$@"\n'


@dataclass(frozen=True)
class ToolchainSpec:
    """Compiler shims and the CMake executable handed to every build tree."""

    cc: Path
    cxx: Path
    cmake: Path
    cc_command: WrappedCommand
    cxx_command: WrappedCommand

    @property
    def cc_wrapped(self) -> bool:
        return self.cc_command.wrapped

    @property
    def cxx_wrapped(self) -> bool:
        return self.cxx_command.wrapped


def write_shim(path: Path, command: WrappedCommand) -> Path:
    """Atomically (re)write an executable shim script at ``path``."""

    path.parent.mkdir(parents=True, exist_ok=True)
    handle, temp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=path.parent)
    temp_path = Path(temp_name)
    try:
        with os.fdopen(handle, "w", encoding="utf-8") as stream:
            stream.write(command.render_script())
        temp_path.chmod(SHIM_MODE)
        os.replace(temp_path, path)
    except BaseException:
        temp_path.unlink(missing_ok=True)
        raise
    return path


class ToolProvisioner:
    """Resolves the compilers and the CMake executable used for configuration."""

    def __init__(
        self,
        *,
        layout: BuildLayout,
        command_runner: CommandRunner,
        console: Console,
        context: ContextBuilder | None = None,
    ) -> None:
        self._layout = layout
        self._runner = command_runner
        self._console = console
        self._context = context or ContextBuilder()

    def _discover(self, language: str, variable: str, candidates: Tuple[str, ...]) -> str:
        override = self._context.get(variable)
        if override:
            self._console.debug(f"Using {variable} from the environment: {override}")
            return shutil.which(override) or override

        for candidate in candidates:
            resolved = shutil.which(candidate)
            if resolved:
                return resolved
            self._console.debug(f"{language} compiler candidate '{candidate}' not found")
        raise ToolchainNotFoundError(language, candidates, variable)

    def discover_compilers(self) -> Tuple[str, str]:
        if self._context.system().is_darwin:
            cc_candidates, cxx_candidates = DARWIN_CC_CANDIDATES, DARWIN_CXX_CANDIDATES
        else:
            cc_candidates, cxx_candidates = CC_CANDIDATES, CXX_CANDIDATES
        cc = self._discover("C", "CC", cc_candidates)
        cxx = self._discover("C++", "CXX", cxx_candidates)
        self._console.info(f"CC = {cc}")
        self._console.info(f"CXX = {cxx}")
        return cc, cxx

    def _launcher(self, configuration: BuildConfiguration) -> Tuple[str, ...]:
        if not configuration.enabled(Option.CACHE_ACCELERATION):
            self._console.info("Not using ccache.")
            return ()
        cache = shutil.which(CACHE_TOOL)
        if not cache:
            self._console.info("ccache not found; not using ccache.")
            return ()
        self._console.info(f"Using ccache from {cache}.")
        return (cache,)

    def provision_compilers(self, configuration: BuildConfiguration) -> Tuple[Path, Path, WrappedCommand, WrappedCommand]:
        cc, cxx = self.discover_compilers()
        prefix = self._launcher(configuration)
        cc_command = WrappedCommand(cc, prefix)
        cxx_command = WrappedCommand(cxx, prefix)
        shim_dir = self._layout.shim_dir
        cc_shim = write_shim(shim_dir / "cc", cc_command)
        cxx_shim = write_shim(shim_dir / "cxx", cxx_command)
        self._console.debug(f"Wrote compiler shims {cc_shim} and {cxx_shim}")
        return cc_shim, cxx_shim, cc_command, cxx_command

    def detect_cmake_version(self, cmake: Path) -> str:
        try:
            result = self._runner.run([str(cmake), "--version"], check=False, note="Probe CMake version")
        except OSError as exc:
            self._console.debug(f"'{cmake} --version' could not start: {exc}")
            return "0"
        if not result.succeeded:
            self._console.debug(f"'{cmake} --version' exited with {result.returncode}")
            return "0"
        return extract_version(result.stdout)

    def bootstrap_cmake(self, *, cc: Path, cxx: Path) -> Path:
        self._console.info("Running script to build bundled cmake version.")
        script = self._layout.scripts_dir / "cmake_setup.sh"
        command = [str(script), str(self._layout.cmake_source), str(self._layout.deps_prefix)]
        try:
            self._runner.run(
                command,
                cwd=self._layout.workspace,
                env={**self._context.search_paths(self._layout), "CC": str(cc), "CXX": str(cxx)},
                note=f"Bootstrap CMake {BUNDLED_CMAKE_VERSION}",
                stream=True,
            )
        except (CommandError, OSError) as exc:
            raise ToolBootstrapError(BOOTSTRAP_FAILURE) from exc

        bundled = self._layout.bundled_cmake
        if not bundled.is_file():
            raise ToolBootstrapError(BOOTSTRAP_FAILURE)
        return bundled

    def provision_cmake(self, configuration: BuildConfiguration, *, cc: Path, cxx: Path) -> Path:
        """Return a CMake executable that satisfies :data:`MINIMUM_CMAKE_VERSION`.

        The bundled copy under the dependency prefix is built when no system
        CMake exists, when the system one is too old, or when
        ``--no-system-cmake`` asks for it and it is not built yet. A bundled
        copy that already exists always wins over the system one.
        """

        self._console.info("Checking for CMake.")
        bundled = self._layout.bundled_cmake
        system_cmake = shutil.which("cmake")
        if not system_cmake:
            return self.bootstrap_cmake(cc=cc, cxx=cxx)

        if not configuration.enabled(Option.SYSTEM_BUILD_TOOL):
            self._console.info("Forcing use of bundled cmake.")
            if not bundled.is_file():
                return self.bootstrap_cmake(cc=cc, cxx=cxx)

        candidate = bundled if bundled.is_file() else Path(system_cmake)

        self._console.info("Testing existing cmake version...")
        detected = self.detect_cmake_version(candidate)
        self._console.info(f"Detected {VersionTriple.parse(detected)}. Required {MINIMUM_CMAKE_VERSION}")
        if meets_minimum(detected, MINIMUM_CMAKE_VERSION):
            self._console.info(f"CMake version is good; using {candidate}.")
            return candidate
        return self.bootstrap_cmake(cc=cc, cxx=cxx)

    def provision(self, configuration: BuildConfiguration) -> ToolchainSpec:
        cc_shim, cxx_shim, cc_command, cxx_command = self.provision_compilers(configuration)
        cmake = self.provision_cmake(configuration, cc=cc_shim, cxx=cxx_shim)
        return ToolchainSpec(
            cc=cc_shim,
            cxx=cxx_shim,
            cmake=cmake,
            cc_command=cc_command,
            cxx_command=cxx_command,
        )


__all__ = [
    "BOOTSTRAP_FAILURE",
    "MINIMUM_CMAKE_VERSION",
    "ToolProvisioner",
    "ToolchainSpec",
    "WrappedCommand",
    "write_shim",
]
