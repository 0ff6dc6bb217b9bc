"""Host detection and the environment handed to CMake and helper scripts."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Mapping
import os
import platform
import shlex

from .settings import BuildLayout


@dataclass(slots=True)
class SystemContext:
    os_name: str
    architecture: str
    version: str

    @property
    def is_darwin(self) -> bool:
        return self.os_name == "darwin"

    def describe(self) -> str:
        return f"{self.os_name} {self.architecture} {self.version}".strip()


def _prepend_path(entries: list[str], existing: str | None) -> str:
    parts = list(entries)
    if existing:
        parts.append(existing)
    return os.pathsep.join(parts)


class ContextBuilder:
    """Collects host facts and derives the environment for subprocesses."""

    def __init__(self, env: Mapping[str, str] | None = None) -> None:
        self._env = dict(env) if env is not None else dict(os.environ)

    def environment(self) -> Mapping[str, str]:
        return self._env

    def get(self, key: str) -> str | None:
        value = self._env.get(key)
        return value if value else None

    def system(self) -> SystemContext:
        return SystemContext(
            os_name=platform.system().lower(),
            architecture=platform.machine(),
            version=platform.version(),
        )

    def search_paths(self, layout: BuildLayout) -> Dict[str, str]:
        """Library and include search paths with the dependency prefix in front."""

        prefix = layout.deps_prefix
        return {
            "LD_LIBRARY_PATH": _prepend_path(
                [str(prefix / "lib"), str(prefix / "lib64")],
                self._env.get("LD_LIBRARY_PATH"),
            ),
            "INCLUDE_PATH": _prepend_path([str(prefix / "include")], self._env.get("INCLUDE_PATH")),
        }

    def virtualenv(self, override: str | None) -> str | None:
        if override:
            return override
        return self.get("VIRTUALENV")

    def generator_arguments(self, configured: str | None) -> list[str]:
        raw = self.get("GENERATOR")
        if raw:
            return shlex.split(raw)
        if configured:
            return ["-G", configured]
        return []


__all__ = ["ContextBuilder", "SystemContext"]
