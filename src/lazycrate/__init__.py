"""Box arbitrary Python value graphs into compact, self-describing text.

Usage:
    import lazycrate

    unit = lazycrate.box({"when": datetime.now(UTC), "tags": {"a", "b"}})
    value = lazycrate.unbox(unit)

    # Non-blocking variants only offload compression to a worker thread
    unit = await lazycrate.box_async(value)
    value = await lazycrate.unbox_async(unit)
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from lazycrate.crate import Crate, CrateConfig
from lazycrate.errors import (
	BoxError,
	CrateError,
	DeserializeError,
	NotSupportedError,
	SerializeError,
	UnboxError,
)
from lazycrate.registry import HookPair
from lazycrate.values import (
	UNDEFINED,
	ArrayBuffer,
	DataView,
	SharedArrayBuffer,
	Token,
	Uint8ClampedArray,
	Undefined,
)
from lazycrate.version import __version__

_default: Crate | None = None


def default_crate() -> Crate:
	"""The crate behind the module-level functions, configured from the environment."""
	global _default
	if _default is None:
		_default = Crate()
	return _default


def reset_default_crate() -> None:
	"""Drop the default crate so the next call rebuilds it from the environment."""
	global _default
	_default = None


def box(*args: Any) -> str:
	return default_crate().box(*args)


def unbox(*args: Any) -> Any:
	return default_crate().unbox(*args)


async def box_async(*args: Any) -> str:
	return await default_crate().box_async(*args)


async def unbox_async(*args: Any) -> Any:
	return await default_crate().unbox_async(*args)


def register(
	cls: type | None = None,
	*,
	name: str | None = None,
	box: Callable[[Any], Any] | None = None,
	unbox: Callable[[Any], Any] | None = None,
) -> Any:
	return default_crate().register(cls, name=name, box=box, unbox=unbox)


def register_function(fn: Callable[..., Any] | None = None, *, name: str | None = None) -> Any:
	return default_crate().register_function(fn, name=name)


__all__ = [
	"UNDEFINED",
	"ArrayBuffer",
	"BoxError",
	"Crate",
	"CrateConfig",
	"CrateError",
	"DataView",
	"DeserializeError",
	"HookPair",
	"NotSupportedError",
	"SerializeError",
	"SharedArrayBuffer",
	"Token",
	"UnboxError",
	"Uint8ClampedArray",
	"Undefined",
	"__version__",
	"box",
	"box_async",
	"default_crate",
	"register",
	"register_function",
	"reset_default_crate",
	"unbox",
	"unbox_async",
]
