"""Installed version of lazycrate."""

from __future__ import annotations

from importlib.metadata import PackageNotFoundError, version

__all__ = ["__version__"]

try:
	__version__: str = version("lazycrate")
except PackageNotFoundError:
	# Running from a source tree that was never installed
	__version__ = "0.0.0"
