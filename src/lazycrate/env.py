"""Environment-driven settings for lazycrate."""

from __future__ import annotations

import os
from typing import Final

ENV_LAZYCRATE_COMPRESS_THRESHOLD: Final = "LAZYCRATE_COMPRESS_THRESHOLD"
ENV_LAZYCRATE_COMPRESS_LEVEL: Final = "LAZYCRATE_COMPRESS_LEVEL"
ENV_LAZYCRATE_ALLOW_BUILTINS: Final = "LAZYCRATE_ALLOW_BUILTINS"
ENV_LAZYCRATE_AUTO_REGISTER: Final = "LAZYCRATE_AUTO_REGISTER"

DEFAULT_COMPRESS_THRESHOLD: Final = 1024
DEFAULT_COMPRESS_LEVEL: Final = 9

_FALSY = {"0", "false", "False", "no", "off"}
_TRUTHY = {"1", "true", "True", "yes", "on"}


def _read_int(key: str, default: int, *, lo: int, hi: int | None = None) -> int:
	raw = os.environ.get(key)
	if raw is None or raw == "":
		return default
	try:
		value = int(raw)
	except ValueError:
		raise ValueError(f"{key} must be an integer, got {raw!r}") from None
	if value < lo or (hi is not None and value > hi):
		bounds = f">= {lo}" if hi is None else f"between {lo} and {hi}"
		raise ValueError(f"{key} must be {bounds}, got {value}")
	return value


def _read_flag(key: str, default: bool) -> bool:
	raw = os.environ.get(key)
	if raw is None or raw == "":
		return default
	if raw in _TRUTHY:
		return True
	if raw in _FALSY:
		return False
	raise ValueError(f"{key} must be a boolean flag, got {raw!r}")


class LazycrateEnv:
	"""Typed view over the ``LAZYCRATE_*`` environment variables.

	Values are read on every access so that tests and long-running processes
	see changes to ``os.environ``.
	"""

	@property
	def compress_threshold(self) -> int:
		return _read_int(ENV_LAZYCRATE_COMPRESS_THRESHOLD, DEFAULT_COMPRESS_THRESHOLD, lo=0)

	@compress_threshold.setter
	def compress_threshold(self, value: int) -> None:
		os.environ[ENV_LAZYCRATE_COMPRESS_THRESHOLD] = str(value)

	@property
	def compress_level(self) -> int:
		return _read_int(ENV_LAZYCRATE_COMPRESS_LEVEL, DEFAULT_COMPRESS_LEVEL, lo=0, hi=9)

	@compress_level.setter
	def compress_level(self, value: int) -> None:
		os.environ[ENV_LAZYCRATE_COMPRESS_LEVEL] = str(value)

	@property
	def allow_builtins(self) -> bool:
		return _read_flag(ENV_LAZYCRATE_ALLOW_BUILTINS, True)

	@allow_builtins.setter
	def allow_builtins(self, value: bool) -> None:
		os.environ[ENV_LAZYCRATE_ALLOW_BUILTINS] = "1" if value else "0"

	@property
	def auto_register(self) -> bool:
		return _read_flag(ENV_LAZYCRATE_AUTO_REGISTER, True)

	@auto_register.setter
	def auto_register(self, value: bool) -> None:
		os.environ[ENV_LAZYCRATE_AUTO_REGISTER] = "1" if value else "0"


env = LazycrateEnv()

__all__ = [
	"DEFAULT_COMPRESS_LEVEL",
	"DEFAULT_COMPRESS_THRESHOLD",
	"ENV_LAZYCRATE_ALLOW_BUILTINS",
	"ENV_LAZYCRATE_AUTO_REGISTER",
	"ENV_LAZYCRATE_COMPRESS_LEVEL",
	"ENV_LAZYCRATE_COMPRESS_THRESHOLD",
	"LazycrateEnv",
	"env",
]
