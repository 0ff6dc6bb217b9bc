"""Error taxonomy for configuration and toolchain provisioning failures."""
from __future__ import annotations


class ConfigureError(RuntimeError):
    """Base class for fatal configure failures."""

    exit_code = 1


class ConfigurationError(ConfigureError):
    """Raised for bad flags, missing flag values or invalid option combinations."""

    def __init__(self, message: str, *, token: str | None = None) -> None:
        super().__init__(message)
        self.token = token


class ToolchainNotFoundError(ConfigureError):
    """Raised when no compiler candidate resolves on the host."""

    def __init__(self, language: str, candidates: tuple[str, ...], variable: str) -> None:
        names = "/".join(candidates)
        super().__init__(
            f"{language} compiler not in path with {names}; set manually with {variable}=<comp>"
        )
        self.language = language
        self.candidates = candidates
        self.variable = variable


class ToolBootstrapError(ConfigureError):
    """Raised when an external bootstrap or install script fails."""


class BuildInvocationError(ConfigureError):
    """Raised when CMake exits non-zero or cannot start while configuring a build tree."""

    def __init__(self, profile: str, returncode: int, *, reason: str | None = None) -> None:
        if reason is None:
            message = f"CMake configuration of the {profile} tree failed with exit code {returncode}"
        else:
            message = f"CMake configuration of the {profile} tree could not start: {reason}"
        super().__init__(message)
        self.profile = profile
        self.returncode = returncode

    @property
    def exit_code(self) -> int:  # type: ignore[override]
        return self.returncode if self.returncode > 0 else 1


__all__ = [
    "BuildInvocationError",
    "ConfigurationError",
    "ConfigureError",
    "ToolBootstrapError",
    "ToolchainNotFoundError",
]
