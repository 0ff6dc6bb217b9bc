"""Flag parsing, option resolution and CMake definition rendering."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Dict, Iterable, List, Mapping, MutableMapping, Tuple

from .errors import ConfigurationError


class Option(str, Enum):
    PYTHON = "python"
    VISUALIZATION = "visualization"
    CAPI = "capi"
    CAPI_FRAMEWORK = "capi-framework"
    REMOTE_FS = "remote-fs"
    IOS_TARGET = "ios-target"
    SIZE_OPTIMIZED = "size-optimized"
    SYSTEM_BUILD_TOOL = "system-build-tool"
    CACHE_ACCELERATION = "cache-acceleration"

    @property
    def setting_key(self) -> str:
        return self.value.replace("-", "_")

    @classmethod
    def from_setting_key(cls, key: str) -> "Option":
        normalized = key.strip().lower().replace("_", "-")
        for option in cls:
            if option.value == normalized:
                return option
        raise ValueError(f"Unknown option '{key}'")


DEFAULT_OPTIONS: Mapping[Option, bool] = MappingProxyType(
    {
        Option.PYTHON: True,
        Option.VISUALIZATION: True,
        Option.CAPI: True,
        Option.CAPI_FRAMEWORK: False,
        Option.REMOTE_FS: True,
        Option.IOS_TARGET: False,
        Option.SIZE_OPTIMIZED: False,
        Option.SYSTEM_BUILD_TOOL: True,
        Option.CACHE_ACCELERATION: True,
    }
)

Effects = Tuple[Tuple[Option, bool], ...]

TARGET_IOS_FLAG = "--target-ios"

# Every toggle a flag performs, applied together when the flag is consumed.
FLAG_EFFECTS: Mapping[str, Effects] = MappingProxyType(
    {
        "--with-system-cmake": ((Option.SYSTEM_BUILD_TOOL, True),),
        "--no-system-cmake": ((Option.SYSTEM_BUILD_TOOL, False),),
        "--with-ccache": ((Option.CACHE_ACCELERATION, True),),
        "--no-ccache": ((Option.CACHE_ACCELERATION, False),),
        "--with-capi": ((Option.CAPI, True),),
        "--with-capi-framework": ((Option.CAPI, True), (Option.CAPI_FRAMEWORK, True)),
        "--no-capi": ((Option.CAPI, False),),
        "--with-python": ((Option.PYTHON, True),),
        "--no-python": ((Option.PYTHON, False),),
        "--with-visualization": ((Option.VISUALIZATION, True),),
        "--no-visualization": ((Option.VISUALIZATION, False),),
        "--with-remotefs": ((Option.REMOTE_FS, True),),
        "--no-remotefs": ((Option.REMOTE_FS, False),),
        "--release-opt-for-size": ((Option.SIZE_OPTIMIZED, True),),
        TARGET_IOS_FLAG: (
            (Option.IOS_TARGET, True),
            (Option.PYTHON, False),
            (Option.CAPI, True),
            (Option.SIZE_OPTIMIZED, True),
        ),
    }
)

ACTION_FLAGS: Mapping[str, str] = MappingProxyType(
    {
        "--cleanup": "cleanup",
        "--install-python-toolchain": "install_python_toolchain",
        "--yes": "assume_yes",
        "--verbose": "verbose",
    }
)

HELP_FLAG = "--help"
DEFINE_FLAG = "-D"
VIRTUALENV_FLAG = "--virtualenv"
VALUE_FLAGS = (DEFINE_FLAG, VIRTUALENV_FLAG)


def apply_effects(values: MutableMapping[Option, bool], effects: Effects) -> None:
    for option, value in effects:
        values[option] = value


@dataclass(frozen=True)
class BuildConfiguration:
    """Resolved option values shared read-only by every later stage."""

    options: Mapping[Option, bool] = field(default_factory=lambda: dict(DEFAULT_OPTIONS))
    definitions: Tuple[str, ...] = ()
    virtualenv: str | None = None

    def __post_init__(self) -> None:
        merged: Dict[Option, bool] = dict(DEFAULT_OPTIONS)
        for key, value in self.options.items():
            merged[Option(key)] = bool(value)
        object.__setattr__(self, "options", MappingProxyType(merged))
        object.__setattr__(self, "definitions", tuple(self.definitions))

    def enabled(self, option: Option) -> bool:
        return self.options[option]

    @property
    def python(self) -> bool:
        return self.enabled(Option.PYTHON)

    def summary(self) -> List[str]:
        lines = [f"{option.value}: {'on' if self.options[option] else 'off'}" for option in Option]
        if self.virtualenv:
            lines.append(f"virtualenv: {self.virtualenv}")
        for definition in self.definitions:
            lines.append(f"-D {definition}")
        return lines


@dataclass(frozen=True)
class ResolvedArguments:
    configuration: BuildConfiguration
    cleanup: bool = False
    install_python_toolchain: bool = False
    assume_yes: bool = False
    verbose: bool = False
    show_help: bool = False


def _check_definition(value: str) -> str:
    key, separator, _ = value.partition("=")
    if not separator or not key.strip():
        raise ConfigurationError(
            f"Definition '{value}' passed to {DEFINE_FLAG} must have the form key=value",
            token=value,
        )
    return value


def resolve_arguments(tokens: Iterable[str], *, base: BuildConfiguration | None = None) -> ResolvedArguments:
    """Parse ``tokens`` in a single pass on top of ``base``.

    Toggles are last-write-wins, ``-D`` values accumulate in the order given,
    and ``--help`` stops parsing at once. Cross-option checks are left to
    :func:`validate_configuration` so that maintenance actions such as
    ``--cleanup`` work with any combination of toggles.
    """

    start = base or BuildConfiguration()
    values: Dict[Option, bool] = dict(start.options)
    definitions: List[str] = list(start.definitions)
    virtualenv = start.virtualenv
    actions: Dict[str, bool] = {name: False for name in ACTION_FLAGS.values()}
    show_help = False

    pending = list(tokens)
    index = 0
    while index < len(pending):
        token = pending[index]
        if token == HELP_FLAG:
            show_help = True
            break

        effects = FLAG_EFFECTS.get(token)
        if effects is not None:
            apply_effects(values, effects)
        elif token in ACTION_FLAGS:
            actions[ACTION_FLAGS[token]] = True
        elif token in VALUE_FLAGS:
            if index + 1 >= len(pending):
                raise ConfigurationError(f"Option {token} requires a value", token=token)
            index += 1
            value = pending[index]
            if token == DEFINE_FLAG:
                definitions.append(_check_definition(value))
            else:
                virtualenv = value
        else:
            raise ConfigurationError(f"Unrecognized option: {token}", token=token)
        index += 1

    configuration = BuildConfiguration(
        options=values,
        definitions=tuple(definitions),
        virtualenv=virtualenv,
    )
    return ResolvedArguments(configuration=configuration, show_help=show_help, **actions)


def validate_configuration(configuration: BuildConfiguration) -> None:
    if configuration.enabled(Option.PYTHON) and not configuration.enabled(Option.VISUALIZATION):
        raise ConfigurationError(
            "Visualization client libraries (--with-visualization) required for python build."
        )


def _flag(name: str, enabled: bool) -> str:
    return f"{name}={1 if enabled else 0}"


def render_definitions(configuration: BuildConfiguration) -> Tuple[str, ...]:
    """Render ``configuration`` into the ordered ``key=value`` list handed to CMake.

    Python and visualization are always rendered explicitly as ``1`` or ``0``.
    """

    validate_configuration(configuration)
    enabled = configuration.enabled

    rendered: List[str] = list(configuration.definitions)
    rendered.append(_flag("TC_BUILD_PYTHON", enabled(Option.PYTHON)))

    if enabled(Option.SIZE_OPTIMIZED):
        rendered.append("RELEASE_OPT_FOR_SIZE=1")

    if enabled(Option.CAPI):
        rendered.append("TC_BUILD_CAPI=1")
        if enabled(Option.CAPI_FRAMEWORK):
            rendered.append("TC_BUILD_CAPI_FRAMEWORK=1")
        if enabled(Option.IOS_TARGET):
            rendered.extend(["ARCH=arm64", "TC_BUILD_IOS=1"])
    else:
        rendered.append("TC_BUILD_CAPI=0")

    rendered.append(_flag("TC_BUILD_VISUALIZATION_CLIENT", enabled(Option.VISUALIZATION)))

    if enabled(Option.REMOTE_FS):
        rendered.append("TC_ENABLE_REMOTEFS=1")
    else:
        rendered.extend(["TC_ENABLE_REMOTEFS=0", "TC_NO_CURL=1"])

    return tuple(rendered)


__all__ = [
    "ACTION_FLAGS",
    "BuildConfiguration",
    "DEFAULT_OPTIONS",
    "FLAG_EFFECTS",
    "Option",
    "ResolvedArguments",
    "TARGET_IOS_FLAG",
    "apply_effects",
    "render_definitions",
    "resolve_arguments",
    "validate_configuration",
]
