"""Build-configuration front end: toggles in, two configured CMake trees out."""
from __future__ import annotations

from .cli import main

__all__ = ["main"]
