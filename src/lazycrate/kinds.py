"""Classification of values into the kinds the encoder dispatches on."""

from __future__ import annotations

import enum
import types
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Literal, TypeAlias

from lazycrate.values import Token, Undefined

Kind: TypeAlias = Literal[
	"undefined",
	"null",
	"boolean",
	"number",
	"bigint",
	"string",
	"token",
	"callable",
	"boxed",
	"structured",
]

CATCH_ALL: str = "*"

# Builtin primitives whose strict subclasses are re-wrapped around their literal
BOXABLE_PRIMITIVES: tuple[type, ...] = (int, float, str, bytes)

_PRIMITIVE_KINDS: dict[type, Kind] = {
	type(None): "null",
	Undefined: "undefined",
	bool: "boolean",
	float: "number",
	int: "bigint",
	str: "string",
	Token: "token",
}

_CALLABLE_TYPES: tuple[type, ...] = (
	types.FunctionType,
	types.BuiltinFunctionType,
	types.MethodType,
	types.BuiltinMethodType,
)


@dataclass(frozen=True, slots=True)
class Classification:
	"""Result of classifying a value.

	``type_name`` is the name of the class holding a specific encoder, or
	``CATCH_ALL`` when the value has to go through the catch-all path.
	``derived`` is set when that class is a base of the value's own class.
	"""

	kind: Kind
	type_name: str
	cls: type | None
	derived: bool = False

	@property
	def is_catch_all(self) -> bool:
		return self.type_name == CATCH_ALL


class Classifier:
	"""Decides the kind and type name of a value.

	The decision is made once per Python type and cached; values are never
	inspected beyond ``type(value)``.
	"""

	__slots__: tuple[str, ...] = ("_known", "_cache")
	_known: Mapping[type, Kind]
	_cache: dict[type, Classification]

	def __init__(self, known: Mapping[type, Kind]) -> None:
		self._known = known
		self._cache = {}

	def classify(self, value: Any) -> Classification:
		cls = type(value)
		cached = self._cache.get(cls)
		if cached is None:
			cached = self._classify_type(cls)
			self._cache[cls] = cached
		return cached

	def _classify_type(self, cls: type) -> Classification:
		primitive = _PRIMITIVE_KINDS.get(cls)
		if primitive is not None:
			return Classification(primitive, cls.__name__, cls)
		kind = self._known.get(cls)
		if kind is not None:
			return Classification(kind, cls.__name__, cls)
		if issubclass(cls, enum.Enum) or issubclass(cls, BOXABLE_PRIMITIVES):
			return Classification("boxed", CATCH_ALL, None)
		if issubclass(cls, _CALLABLE_TYPES):
			return Classification("callable", CATCH_ALL, None)
		# Nearest base with its own encoder
		for base in cls.__mro__[1:]:
			kind = self._known.get(base)
			if kind is not None:
				return Classification(kind, base.__name__, base, derived=True)
		return Classification("structured", CATCH_ALL, None)


def type_name_of(cls: type) -> str:
	"""Registry name of a class: its module followed by its qualified name."""
	return f"{cls.__module__}.{cls.__qualname__}"


def has_native_state(cls: type) -> bool:
	"""Whether instances of ``cls`` keep state outside ``__dict__`` and ``__slots__``.

	That is the case when a class along the MRO, other than ``object``, either
	allocates through a native ``__new__`` or is a native class whose instances
	are larger than a bare ``object`` and carry no ``__dict__``.
	"""
	for klass in cls.__mro__:
		if klass is object:
			continue
		new = klass.__dict__.get("__new__")
		if new is not None and not isinstance(new, staticmethod):
			return True
		if (
			"__slots__" not in klass.__dict__
			and klass.__dictoffset__ == 0
			and klass.__basicsize__ > object.__basicsize__
		):
			return True
	return False


__all__ = [
	"BOXABLE_PRIMITIVES",
	"CATCH_ALL",
	"Classification",
	"Classifier",
	"Kind",
	"has_native_state",
	"type_name_of",
]
