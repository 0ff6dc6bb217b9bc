"""Optional settings file and workspace directory layout."""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping
import os

from core.config_loader import find_config_file, load_config_file, normalize_string_list, reject_unknown_keys

from .console import Console
from .errors import ConfigurationError
from .options import FLAG_EFFECTS, TARGET_IOS_FLAG, BuildConfiguration, Option, apply_effects

SETTINGS_STEM = "configure"
SETTINGS_ENV = "BUILDCONF_CONFIG"
BUNDLED_CMAKE_VERSION = "3.9.3"

_SECTIONS = ("options", "configure", "paths")
_CONFIGURE_KEYS = ("definitions", "generator", "virtualenv", "log_level")
_PATH_KEYS = ("release_dir", "debug_dir", "deps_prefix", "deps_build", "deps_env", "scripts_dir")


@dataclass(frozen=True)
class BuildLayout:
    """Absolute locations of every directory configure reads or writes."""

    workspace: Path
    release_dir: Path
    debug_dir: Path
    deps_prefix: Path
    deps_build: Path
    deps_env: Path
    scripts_dir: Path

    @classmethod
    def for_workspace(cls, workspace: Path, overrides: Mapping[str, str] | None = None) -> "BuildLayout":
        overrides = overrides or {}

        def resolve(key: str, default: str) -> Path:
            path = Path(overrides.get(key, default)).expanduser()
            return path if path.is_absolute() else workspace / path

        return cls(
            workspace=workspace,
            release_dir=resolve("release_dir", "release"),
            debug_dir=resolve("debug_dir", "debug"),
            deps_prefix=resolve("deps_prefix", "deps/local"),
            deps_build=resolve("deps_build", "deps/build"),
            deps_env=resolve("deps_env", "deps/env"),
            scripts_dir=resolve("scripts_dir", "scripts"),
        )

    @property
    def shim_dir(self) -> Path:
        return self.deps_prefix / "bin"

    @property
    def bundled_cmake(self) -> Path:
        return self.deps_prefix / "bin" / "cmake"

    @property
    def cmake_source(self) -> Path:
        return self.workspace / "deps" / "src" / f"cmake-{BUNDLED_CMAKE_VERSION}"

    def cleanup_targets(self) -> List[Path]:
        return [self.release_dir, self.debug_dir, self.deps_prefix, self.deps_build, self.deps_env]


@dataclass(frozen=True)
class Settings:
    base: BuildConfiguration = field(default_factory=BuildConfiguration)
    layout_overrides: Mapping[str, str] = field(default_factory=dict)
    generator: str | None = None
    log_level: str = "info"
    source: Path | None = None

    def layout(self, workspace: Path) -> BuildLayout:
        return BuildLayout.for_workspace(workspace, self.layout_overrides)


def _options_from_mapping(section: Mapping[str, Any]) -> Dict[Option, bool]:
    values: Dict[Option, bool] = dict(BuildConfiguration().options)
    for raw_key, raw_value in section.items():
        try:
            option = Option.from_setting_key(str(raw_key))
        except ValueError as exc:
            raise ConfigurationError(f"[options] {exc}", token=str(raw_key)) from exc
        if not isinstance(raw_value, bool):
            raise ConfigurationError(f"[options] '{raw_key}' must be true or false", token=str(raw_key))
        if option is Option.IOS_TARGET and raw_value:
            apply_effects(values, FLAG_EFFECTS[TARGET_IOS_FLAG])
        else:
            values[option] = raw_value
    return values


def settings_from_mapping(data: Mapping[str, Any], *, source: Path | None = None) -> Settings:
    """Build :class:`Settings` from a decoded settings file."""

    label = f"Settings file '{source}'" if source else "Settings"
    try:
        reject_unknown_keys(data, _SECTIONS, label=label)
        options_section = data.get("options", {})
        configure_section = data.get("configure", {})
        paths_section = data.get("paths", {})
        for name, section in (("options", options_section), ("configure", configure_section), ("paths", paths_section)):
            if not isinstance(section, Mapping):
                raise ValueError(f"{label} section [{name}] must be a table")
        reject_unknown_keys(configure_section, _CONFIGURE_KEYS, label=f"{label} [configure]")
        reject_unknown_keys(paths_section, _PATH_KEYS, label=f"{label} [paths]")
        definitions = normalize_string_list(configure_section.get("definitions"), field_name="definitions")
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(str(exc)) from exc

    virtualenv = configure_section.get("virtualenv")
    generator = configure_section.get("generator")
    log_level = str(configure_section.get("log_level", "info")).strip().lower()
    if log_level not in Console.LEVELS:
        raise ConfigurationError(f"{label} [configure] log_level must be one of: {', '.join(Console.LEVELS)}")

    base = BuildConfiguration(
        options=_options_from_mapping(options_section),
        definitions=tuple(definitions),
        virtualenv=str(virtualenv) if virtualenv else None,
    )
    return Settings(
        base=base,
        layout_overrides={str(key): str(value) for key, value in paths_section.items()},
        generator=str(generator).strip() if generator else None,
        log_level=log_level,
        source=source,
    )


def locate_settings_file(workspace: Path, env: Mapping[str, str] | None = None) -> Path | None:
    env = os.environ if env is None else env
    explicit = env.get(SETTINGS_ENV)
    if explicit:
        path = Path(explicit).expanduser()
        if not path.is_absolute():
            path = workspace / path
        if not path.is_file():
            raise ConfigurationError(f"{SETTINGS_ENV} points to a missing file: {path}")
        return path
    try:
        return find_config_file(workspace, SETTINGS_STEM)
    except ValueError as exc:
        raise ConfigurationError(str(exc)) from exc


def load_settings(workspace: Path, env: Mapping[str, str] | None = None) -> Settings:
    """Load workspace settings, falling back to built-in defaults when no file exists."""

    path = locate_settings_file(workspace, env)
    if path is None:
        return Settings()
    try:
        data = load_config_file(path)
    except (OSError, TypeError, ValueError) as exc:
        raise ConfigurationError(f"Could not read settings file '{path}': {exc}") from exc
    return settings_from_mapping(data, source=path)


__all__ = [
    "BUNDLED_CMAKE_VERSION",
    "BuildLayout",
    "SETTINGS_ENV",
    "Settings",
    "load_settings",
    "locate_settings_file",
    "settings_from_mapping",
]
