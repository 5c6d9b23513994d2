"""Registries for user types and functions.

Decoding never evaluates text. A custom class or function is referenced by
name in the encoded unit, and the name is resolved here on both sides. The
decode environment must therefore register the same names as the encode
environment.
"""

from __future__ import annotations

import inspect
import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Literal, TypeAlias

from lazycrate.errors import SerializeError
from lazycrate.kinds import type_name_of

logger = logging.getLogger(__name__)

FunctionKind: TypeAlias = Literal["function", "async", "generator", "async_generator"]

BOX_HOOK = "__box__"
UNBOX_HOOK = "__unbox__"


@dataclass(frozen=True, slots=True)
class HookPair:
	"""Compact encode/decode override for a class.

	``box`` turns an instance into any encodable value; ``unbox`` rebuilds the
	instance from the decoded value.
	"""

	box: Callable[[Any], Any]
	unbox: Callable[[Any], Any]


@dataclass(frozen=True, slots=True)
class RegisteredType:
	name: str
	cls: type
	hooks: HookPair | None

	@property
	def has_hooks(self) -> bool:
		return self.hooks is not None


def _call_instance_box(obj: Any) -> Any:
	return obj.__box__()


def _class_hook(cls: type, attr: str) -> Callable[[Any], Any] | None:
	raw = inspect.getattr_static(cls, attr, None)
	if raw is None:
		return None
	if attr == BOX_HOOK and not isinstance(raw, (staticmethod, classmethod)):
		return _call_instance_box
	return getattr(cls, attr)


def hooks_for(
	cls: type,
	box: Callable[[Any], Any] | None = None,
	unbox: Callable[[Any], Any] | None = None,
) -> HookPair | None:
	"""Resolve the hook pair of ``cls``.

	Explicit ``box``/``unbox`` arguments win over the ``__box__``/``__unbox__``
	class attributes. Having exactly one of the two is an error.
	"""
	if box is None:
		box = _class_hook(cls, BOX_HOOK)
	if unbox is None:
		unbox = _class_hook(cls, UNBOX_HOOK)
	if box is None and unbox is None:
		return None
	if box is None or unbox is None:
		missing = BOX_HOOK if box is None else UNBOX_HOOK
		raise SerializeError(
			f"{cls.__qualname__} must define both {BOX_HOOK} and {UNBOX_HOOK} (missing {missing})"
		)
	return HookPair(box=box, unbox=unbox)


class TypeRegistry:
	"""Maps type names to classes and their optional hook pair."""

	_by_name: dict[str, RegisteredType]
	_by_cls: dict[type, RegisteredType]

	def __init__(self) -> None:
		self._by_name = {}
		self._by_cls = {}
		self._lock = threading.Lock()

	def register(
		self,
		cls: type,
		*,
		name: str | None = None,
		box: Callable[[Any], Any] | None = None,
		unbox: Callable[[Any], Any] | None = None,
	) -> RegisteredType:
		entry = RegisteredType(
			name=name or type_name_of(cls),
			cls=cls,
			hooks=hooks_for(cls, box, unbox),
		)
		with self._lock:
			previous = self._by_name.get(entry.name)
			if previous is not None and previous.cls is not cls:
				logger.debug("Replacing registered type %s", entry.name)
				self._by_cls.pop(previous.cls, None)
			self._by_name[entry.name] = entry
			self._by_cls[cls] = entry
		return entry

	def ensure(self, cls: type) -> RegisteredType:
		"""Return the entry for ``cls``, registering it on first sight."""
		entry = self._by_cls.get(cls)
		if entry is not None:
			return entry
		name = type_name_of(cls)
		taken = self._by_name.get(name)
		if taken is not None and taken.cls is not cls:
			raise SerializeError(
				f"Type name {name!r} is already registered for another class; register {cls.__qualname__} under an explicit name"
			)
		logger.debug("Registering type %s on first use", name)
		return self.register(cls, name=name)

	def lookup(self, cls: type) -> RegisteredType | None:
		return self._by_cls.get(cls)

	def resolve(self, name: str) -> RegisteredType:
		try:
			return self._by_name[name]
		except KeyError:
			raise KeyError(f"Unknown type {name!r}; register it before unboxing") from None

	def __contains__(self, name: object) -> bool:
		return name in self._by_name

	def __len__(self) -> int:
		return len(self._by_name)


def function_kind(fn: Callable[..., Any]) -> FunctionKind:
	if inspect.isasyncgenfunction(fn):
		return "async_generator"
	if inspect.iscoroutinefunction(fn):
		return "async"
	if inspect.isgeneratorfunction(fn):
		return "generator"
	return "function"


class FunctionRegistry:
	"""Table of named functions that may appear inside encoded units."""

	_by_name: dict[str, Callable[..., Any]]
	_names: dict[int, str]

	def __init__(self) -> None:
		self._by_name = {}
		self._names = {}
		self._lock = threading.Lock()

	def register(self, fn: Callable[..., Any], *, name: str | None = None) -> str:
		if not callable(fn):
			raise TypeError(f"{fn!r} is not callable")
		name = name or type_name_of_function(fn)
		with self._lock:
			previous = self._by_name.get(name)
			if previous is not None and previous is not fn:
				logger.debug("Replacing registered function %s", name)
				self._names.pop(id(previous), None)
			self._by_name[name] = fn
			self._names[id(fn)] = name
		return name

	def ensure(self, fn: Callable[..., Any]) -> str:
		name = self.name_of(fn)
		if name is not None:
			return name
		name = type_name_of_function(fn)
		taken = self._by_name.get(name)
		if taken is not None and taken is not fn:
			raise SerializeError(
				f"Function name {name!r} is already taken by another function; register it under an explicit name"
			)
		logger.debug("Registering function %s on first use", name)
		return self.register(fn, name=name)

	def name_of(self, fn: Callable[..., Any]) -> str | None:
		name = self._names.get(id(fn))
		if name is not None and self._by_name.get(name) is fn:
			return name
		return None

	def resolve(self, name: str) -> Callable[..., Any]:
		try:
			return self._by_name[name]
		except KeyError:
			raise KeyError(f"Unknown function {name!r}; register it before unboxing") from None

	def __contains__(self, name: object) -> bool:
		return name in self._by_name


def type_name_of_function(fn: Callable[..., Any]) -> str:
	module = getattr(fn, "__module__", None) or "builtins"
	qualname = getattr(fn, "__qualname__", None) or getattr(fn, "__name__", None)
	if qualname is None:
		raise SerializeError(f"Cannot name function {fn!r}")
	return f"{module}.{qualname}"


__all__ = [
	"BOX_HOOK",
	"UNBOX_HOOK",
	"FunctionKind",
	"FunctionRegistry",
	"HookPair",
	"RegisteredType",
	"TypeRegistry",
	"function_kind",
	"hooks_for",
	"type_name_of_function",
]
