"""Rebuilds values from the nodes produced by ``lazycrate.encoder``.

Decoding is a lookup of each node's tag in a fixed table. Custom classes and
functions are resolved by name through the registries.
"""

from __future__ import annotations

import array
import base64
import builtins
import collections
import datetime as dt
import decimal
import math
import re
import types
from collections.abc import Callable
from typing import Any, TypeAlias

from lazycrate.encoder import (
	BIGINT_ARRAYS,
	BUILTIN_ERRORS,
	CLAMPED_ARRAY,
	DERIVABLE_BASES,
	EPOCH,
	FLOAT_ARRAYS,
	typed_array_name,
)
from lazycrate.registry import UNBOX_HOOK, FunctionRegistry, TypeRegistry
from lazycrate.values import (
	UNDEFINED,
	ArrayBuffer,
	DataView,
	SharedArrayBuffer,
	Uint8ClampedArray,
)

DecodeFn: TypeAlias = Callable[[list[Any]], Any]

ERROR_TYPES: dict[str, type[BaseException]] = BUILTIN_ERRORS

_NUMBERS: dict[str, float] = {
	"NaN": math.nan,
	"Infinity": math.inf,
	"-Infinity": -math.inf,
}


def _typecodes() -> dict[str, str]:
	# 64-bit variants prefer "q"/"Q", whose width does not depend on the platform
	codes: dict[str, str] = {}
	for typecode in "bBhHiIqQlLfd":
		name = typed_array_name(typecode, array.array(typecode).itemsize)
		codes.setdefault(name, typecode)
	return codes


TYPECODES: dict[str, str] = _typecodes()


class Decoder:
	registry: TypeRegistry
	functions: FunctionRegistry
	_table: dict[str, DecodeFn]

	def __init__(self, registry: TypeRegistry, functions: FunctionRegistry) -> None:
		self.registry = registry
		self.functions = functions
		self._table = {
			"Undefined": lambda _node: UNDEFINED,
			"Num": self._decode_number,
			"BigInt": lambda node: int(node[1]),
			"Complex": lambda node: complex(self.decode(node[1]), self.decode(node[2])),
			"Decimal": lambda node: decimal.Decimal(node[1]),
			"Map": self._decode_map,
			"OrderedDict": lambda node: collections.OrderedDict(self._decode_pairs(node[1:])),
			"DefaultDict": self._decode_default_dict,
			"Counter": lambda node: collections.Counter(dict(self._decode_pairs(node[1:]))),
			"Set": self._decode_set,
			"FrozenSet": self._decode_set,
			"Array": self._decode_array,
			"Deque": lambda node: collections.deque((self.decode(item) for item in node[1]), node[2]),
			"Tuple": lambda node: tuple(self.decode(item) for item in node[1]),
			"Object": lambda node: types.SimpleNamespace(**self._decode_fields(node[1])),
			"Date": self._decode_date,
			"Day": lambda node: dt.date.fromisoformat(node[1]),
			"Pattern": lambda node: re.compile(self.decode(node[1]), node[2]),
			"Bytes": self._decode_bytes,
			"ByteArray": self._decode_bytes,
			"ArrayBuffer": lambda node: ArrayBuffer(node[1]),
			"SharedArrayBuffer": lambda node: SharedArrayBuffer(node[1]),
			"DataView": lambda node: DataView(self.decode(node[1]), node[2], node[3]),
			"TypedArray": self._decode_typed_array,
			"Error": self._decode_error,
			"CustomError": self._decode_custom_error,
			"Function": lambda node: self.functions.resolve(node[1]),
			"Builtin": self._decode_builtin,
			"Boxed": self._decode_boxed,
			"Custom": self._decode_custom,
			"Instance": self._decode_instance,
			"Derived": self._decode_derived,
		}

	def load(self, document: Any) -> Any:
		"""Decode a whole unit: check its type preamble, then its value."""
		if not isinstance(document, dict) or "value" not in document:
			raise ValueError("Encoded unit must be an object with a 'value' entry")
		for definition in document.get("types", []):
			entry = self.registry.resolve(definition["name"])
			if definition.get("hooks") and entry.hooks is None:
				raise ValueError(f"Type {entry.name!r} was boxed with hooks but is registered without them")
		return self.decode(document["value"])

	def decode(self, node: Any) -> Any:
		if node is None or isinstance(node, (bool, float, str)):
			return node
		if isinstance(node, int):
			raise ValueError(f"Untagged integer {node!r}; integers must be tagged as BigInt")
		if not isinstance(node, list) or not node or not isinstance(node[0], str):
			raise ValueError(f"Malformed node {node!r}")
		decode = self._table.get(node[0])
		if decode is None:
			raise ValueError(f"Unknown tag {node[0]!r}")
		return decode(node)

	def _decode_number(self, node: list[Any]) -> float:
		return _NUMBERS[node[1]]

	def _decode_pairs(self, rest: list[Any]) -> list[tuple[Any, Any]]:
		# An empty mapping may omit its pair list
		pairs = rest[0] if rest else []
		return [(self.decode(key), self.decode(value)) for key, value in pairs]

	def _decode_map(self, node: list[Any]) -> dict[Any, Any]:
		return dict(self._decode_pairs(node[1:]))

	def _decode_default_dict(self, node: list[Any]) -> collections.defaultdict[Any, Any]:
		_, factory, pairs = node
		return collections.defaultdict(
			None if factory is None else self.decode(factory), self._decode_pairs([pairs])
		)

	def _decode_set(self, node: list[Any]) -> set[Any] | frozenset[Any]:
		items = (self.decode(item) for item in node[1]) if len(node) > 1 else ()
		return frozenset(items) if node[0] == "FrozenSet" else set(items)

	def _decode_array(self, node: list[Any]) -> list[Any]:
		if isinstance(node[1], int):
			return [UNDEFINED] * node[1]
		return [self.decode(item) for item in node[1]]

	def _decode_fields(self, fields: dict[str, Any]) -> dict[str, Any]:
		return {key: self.decode(value) for key, value in fields.items()}

	def _restore_fields(self, obj: Any, fields: dict[str, Any]) -> None:
		for key, value in self._decode_fields(fields).items():
			object.__setattr__(obj, key, value)

	def _decode_date(self, node: list[Any]) -> dt.datetime:
		value = EPOCH + dt.timedelta(milliseconds=node[1])
		if len(node) > 2 and node[2] == "naive":
			return value.replace(tzinfo=None)
		return value

	def _decode_bytes(self, node: list[Any]) -> bytes | bytearray:
		data = base64.b64decode(node[1]) if len(node) > 1 else b""
		return bytearray(data) if node[0] == "ByteArray" else data

	def _decode_typed_array(self, node: list[Any]) -> array.array[Any]:
		name = node[1]
		raw = node[2] if len(node) > 2 else []
		if name in BIGINT_ARRAYS or name in FLOAT_ARRAYS:
			items = [self.decode(item) for item in raw]
		else:
			items = raw
		if name == CLAMPED_ARRAY:
			return Uint8ClampedArray(items)
		try:
			typecode = TYPECODES[name]
		except KeyError:
			raise ValueError(f"Unknown typed array {name!r}") from None
		return array.array(typecode, items)

	def _decode_error(self, node: list[Any]) -> BaseException:
		name = node[1]
		if name == "ExceptionGroup":
			_, _, message, stack, causes = node
			error: BaseException = ExceptionGroup(message, [self.decode(cause) for cause in causes])
		else:
			_, _, args, stack = node
			try:
				cls = ERROR_TYPES[name]
			except KeyError:
				raise ValueError(f"Unknown error type {name!r}") from None
			error = cls(*[self.decode(arg) for arg in args])
		error.stack = stack  # pyright: ignore[reportAttributeAccessIssue]
		return error

	def _decode_custom_error(self, node: list[Any]) -> BaseException:
		_, name, args, stack, fields = node
		entry = self.registry.resolve(name)
		if not issubclass(entry.cls, BaseException):
			raise ValueError(f"Type {entry.name!r} is not an exception class")
		args = tuple(self.decode(arg) for arg in args)
		# Allocate without running __init__, whose signature may differ from args
		error = entry.cls.__new__(entry.cls, *args)
		error.args = args
		self._restore_fields(error, fields)
		error.stack = stack  # pyright: ignore[reportAttributeAccessIssue]
		return error

	def _decode_builtin(self, node: list[Any]) -> Any:
		fn = getattr(builtins, node[1], None)
		if not isinstance(fn, (types.BuiltinFunctionType, type)):
			raise ValueError(f"No builtin callable named {node[1]!r}")
		return fn

	def _decode_boxed(self, node: list[Any]) -> Any:
		entry = self.registry.resolve(node[1])
		return entry.cls(self.decode(node[2]))

	def _decode_custom(self, node: list[Any]) -> Any:
		entry = self.registry.resolve(node[1])
		if entry.hooks is None:
			raise ValueError(f"Type {entry.name!r} has no {UNBOX_HOOK} hook")
		return entry.hooks.unbox(self.decode(node[2]))

	def _decode_instance(self, node: list[Any]) -> Any:
		entry = self.registry.resolve(node[1])
		# Allocate without running __init__, then restore the fields
		obj = entry.cls.__new__(entry.cls)
		self._restore_fields(obj, node[2])
		return obj

	def _decode_derived(self, node: list[Any]) -> Any:
		_, name, content, fields = node
		entry = self.registry.resolve(name)
		data = self.decode(content)
		base = type(data)
		if base not in DERIVABLE_BASES or not issubclass(entry.cls, base):
			raise ValueError(f"Type {entry.name!r} cannot be rebuilt from {base.__qualname__}")
		# Built through the base class; the subclass __init__ does not run
		if base is tuple or base is frozenset:
			obj = base.__new__(entry.cls, data)
		else:
			obj = base.__new__(entry.cls)
			base.__init__(obj, *_init_args(data))
		self._restore_fields(obj, fields)
		return obj


def _init_args(data: Any) -> tuple[Any, ...]:
	if isinstance(data, collections.defaultdict):
		return (data.default_factory, data)
	if isinstance(data, collections.deque):
		return (data, data.maxlen)
	return (data,)


__all__ = ["ERROR_TYPES", "TYPECODES", "Decoder"]
