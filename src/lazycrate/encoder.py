"""Encoder dispatch table.

Every value is turned into a JSON-compatible node. Scalars that JSON can
carry without ambiguity (``None``, booleans, finite floats, strings) are
emitted as themselves; every other node is a list whose first element is its
tag, e.g. ``["BigInt", "42"]`` or ``["Map", [[key, value], ...]]``.
"""

from __future__ import annotations

import array
import asyncio
import base64
import builtins
import collections
import concurrent.futures
import datetime as dt
import decimal
import enum
import functools
import logging
import math
import re
import types
import weakref
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import Any, TypeAlias

from lazycrate.errors import CrateError, NotSupportedError, SerializeError, format_stack
from lazycrate.kinds import BOXABLE_PRIMITIVES, Classifier, Kind, has_native_state
from lazycrate.registry import (
	BOX_HOOK,
	UNBOX_HOOK,
	FunctionRegistry,
	RegisteredType,
	TypeRegistry,
	function_kind,
)
from lazycrate.values import (
	ArrayBuffer,
	DataView,
	SharedArrayBuffer,
	Token,
	Uint8ClampedArray,
	Undefined,
)

logger = logging.getLogger(__name__)

Node: TypeAlias = None | bool | float | str | list[Any] | dict[str, Any]
EncodeFn: TypeAlias = Callable[[Any, "EncodingState"], Node]

# Exception classes of the builtins module, encoded by their bare name
BUILTIN_ERRORS: dict[str, type[BaseException]] = {
	name: obj
	for name, obj in vars(builtins).items()
	if isinstance(obj, type) and issubclass(obj, BaseException)
}

# Containers a user class may extend. Subclass instances are rebuilt from the
# base's content plus their own fields.
DERIVABLE_BASES: tuple[type, ...] = (
	dict,
	collections.OrderedDict,
	collections.defaultdict,
	collections.Counter,
	list,
	collections.deque,
	set,
	frozenset,
	tuple,
	bytearray,
)

EPOCH = dt.datetime(1970, 1, 1, tzinfo=dt.UTC)

_INT_ARRAY_NAMES: dict[int, str] = {1: "Int8", 2: "Int16", 4: "Int32", 8: "BigInt64"}
_UINT_ARRAY_NAMES: dict[int, str] = {1: "Uint8", 2: "Uint16", 4: "Uint32", 8: "BigUint64"}
_FLOAT_ARRAY_NAMES: dict[int, str] = {4: "Float32", 8: "Float64"}
BIGINT_ARRAYS = frozenset({"BigInt64Array", "BigUint64Array"})
FLOAT_ARRAYS = frozenset({"Float32Array", "Float64Array"})
CLAMPED_ARRAY = "Uint8ClampedArray"


def typed_array_name(typecode: str, itemsize: int) -> str:
	if typecode in "bhilq":
		names = _INT_ARRAY_NAMES
	elif typecode in "BHILQ":
		names = _UINT_ARRAY_NAMES
	elif typecode in "fd":
		names = _FLOAT_ARRAY_NAMES
	else:
		raise NotSupportedError(f"array typecode {typecode!r} has no fixed-width numeric form")
	return names[itemsize] + "Array"


def datetime_to_millis(value: dt.datetime) -> int:
	if value.tzinfo is None:
		value = value.replace(tzinfo=dt.UTC)
	delta = value - EPOCH
	return (delta.days * 86_400 + delta.seconds) * 1000 + delta.microseconds // 1000


@dataclass(slots=True)
class EncodingState:
	"""Per-call bookkeeping.

	``types`` holds every custom type captured so far, in first-capture order.
	Each type is captured once no matter how many instances refer to it.
	"""

	types: dict[str, RegisteredType] = field(default_factory=dict)
	active: set[int] = field(default_factory=set)

	def capture(self, entry: RegisteredType) -> None:
		if entry.name not in self.types:
			self.types[entry.name] = entry

	def preamble(self) -> list[dict[str, Any]]:
		return [{"name": entry.name, "hooks": entry.has_hooks} for entry in self.types.values()]


@dataclass(frozen=True, slots=True)
class EncoderEntry:
	kind: Kind
	cls: type
	encode: EncodeFn


class Encoder:
	"""Walks a value graph and produces its node.

	The dispatch table is built once per encoder. Lookup is by the exact type
	of the value. A subclass of a class in the table is encoded through
	``_encode_derived``; types with no such base go through the catch-all
	encoder of their kind.
	"""

	registry: TypeRegistry
	functions: FunctionRegistry
	allow_builtins: bool
	auto_register: bool
	classifier: Classifier
	_table: dict[type, EncoderEntry]
	_catch_all: dict[Kind, EncodeFn]

	def __init__(
		self,
		registry: TypeRegistry,
		functions: FunctionRegistry,
		*,
		allow_builtins: bool = True,
		auto_register: bool = True,
	) -> None:
		self.registry = registry
		self.functions = functions
		self.allow_builtins = allow_builtins
		self.auto_register = auto_register
		self._table = {entry.cls: entry for entry in self._entries()}
		self._catch_all = {
			"structured": self._encode_instance,
			"boxed": self._encode_boxed,
			"callable": self._encode_function,
		}
		self.classifier = Classifier({cls: entry.kind for cls, entry in self._table.items()})

	def _entries(self) -> list[EncoderEntry]:
		entries = [
			EncoderEntry("null", type(None), lambda _v, _s: None),
			EncoderEntry("undefined", Undefined, lambda _v, _s: ["Undefined"]),
			EncoderEntry("boolean", bool, lambda v, _s: v),
			EncoderEntry("number", float, self._encode_number),
			EncoderEntry("number", complex, self._encode_complex),
			EncoderEntry("number", decimal.Decimal, lambda v, _s: ["Decimal", str(v)]),
			EncoderEntry("bigint", int, self._encode_bigint),
			EncoderEntry("string", str, lambda v, _s: v),
			EncoderEntry("token", Token, self._not_supported),
			EncoderEntry("callable", types.FunctionType, self._encode_function),
			EncoderEntry("callable", types.BuiltinFunctionType, self._encode_builtin),
			EncoderEntry("callable", types.MethodType, self._not_supported),
			EncoderEntry("callable", type, self._encode_class),
			# Structures
			EncoderEntry("structured", dict, self._encode_map),
			EncoderEntry("structured", collections.OrderedDict, self._encode_ordered_dict),
			EncoderEntry("structured", collections.defaultdict, self._encode_default_dict),
			EncoderEntry("structured", collections.Counter, self._encode_counter),
			EncoderEntry("structured", set, self._encode_set),
			EncoderEntry("structured", frozenset, self._encode_set),
			EncoderEntry("structured", list, self._encode_array),
			EncoderEntry("structured", collections.deque, self._encode_deque),
			EncoderEntry("structured", tuple, self._encode_tuple),
			EncoderEntry("structured", types.SimpleNamespace, self._encode_object),
			# Time
			EncoderEntry("structured", dt.datetime, self._encode_date),
			EncoderEntry("structured", dt.date, self._encode_day),
			# Patterns
			EncoderEntry("structured", re.Pattern, self._encode_pattern),
			# Binary
			EncoderEntry("structured", bytes, self._encode_bytes),
			EncoderEntry("structured", bytearray, self._encode_bytes),
			EncoderEntry("structured", ArrayBuffer, self._encode_array_buffer),
			EncoderEntry("structured", SharedArrayBuffer, self._encode_array_buffer),
			EncoderEntry("structured", DataView, self._encode_data_view),
			EncoderEntry("structured", array.array, self._encode_typed_array),
			EncoderEntry("structured", Uint8ClampedArray, self._encode_typed_array),
			# Errors
			EncoderEntry("structured", BaseException, self._encode_error),
			EncoderEntry("structured", ExceptionGroup, self._encode_error_group),
		]
		# Recognized, never implemented
		unsupported: tuple[type, ...] = (
			weakref.finalize,
			weakref.ref,
			weakref.WeakKeyDictionary,
			weakref.WeakValueDictionary,
			weakref.WeakSet,
			asyncio.Future,
			asyncio.Task,
			concurrent.futures.Future,
			types.CoroutineType,
			types.GeneratorType,
			types.AsyncGeneratorType,
			types.ModuleType,
			functools.partial,
			memoryview,
			types.MethodWrapperType,
			types.WrapperDescriptorType,
			types.MethodDescriptorType,
			types.ClassMethodDescriptorType,
		)
		entries.extend(EncoderEntry("structured", cls, self._not_supported) for cls in unsupported)
		return entries

	def encode(self, value: Any, state: EncodingState) -> Node:
		classification = self.classifier.classify(value)
		if classification.is_catch_all:
			encode = self._catch_all.get(classification.kind)
			if encode is None:
				raise NotSupportedError(
					f"Type <{classification.kind}> with name <{type(value).__qualname__}> is not implemented"
				)
		elif classification.derived:
			encode = functools.partial(self._encode_derived, base=classification.cls)
		else:
			encode = self._table[classification.cls].encode  # pyright: ignore[reportArgumentType]

		if classification.kind == "structured":
			marker = id(value)
			if marker in state.active:
				raise SerializeError(f"Circular reference to {type(value).__qualname__}")
			state.active.add(marker)
			try:
				return self._call(encode, value, state)
			finally:
				state.active.discard(marker)
		return self._call(encode, value, state)

	def _call(self, encode: EncodeFn, value: Any, state: EncodingState) -> Node:
		try:
			return encode(value, state)
		except CrateError:
			raise
		except Exception as exc:
			raise SerializeError(f"Failed to encode {type(value).__qualname__}: {exc}") from exc

	def _not_supported(self, value: Any, state: EncodingState) -> Node:
		raise NotSupportedError(f"Type <{type(value).__qualname__}> is not supported")

	# Primitives

	def _encode_number(self, value: float, state: EncodingState | None = None) -> Node:
		if math.isnan(value):
			return ["Num", "NaN"]
		if math.isinf(value):
			return ["Num", "Infinity" if value > 0 else "-Infinity"]
		return value

	def _encode_bigint(self, value: int, state: EncodingState | None = None) -> Node:
		return ["BigInt", str(value)]

	def _encode_complex(self, value: complex, state: EncodingState) -> Node:
		return ["Complex", self._encode_number(value.real), self._encode_number(value.imag)]

	def _encode_boxed(self, value: Any, state: EncodingState) -> Node:
		entry = self._type_entry(type(value), state)
		if entry.hooks is not None:
			return ["Custom", entry.name, self.encode(entry.hooks.box(value), state)]
		if isinstance(value, enum.Enum):
			raw = value.value
		else:
			# The stored literal, even when the subclass overrides __str__ or __float__
			base = next(base for base in BOXABLE_PRIMITIVES if isinstance(value, base))
			raw = base.__getnewargs__(value)[0]
		return ["Boxed", entry.name, self.encode(raw, state)]

	# Structures

	def _encode_pairs(self, items: Iterable[tuple[Any, Any]], state: EncodingState) -> list[Node]:
		return [[self.encode(k, state), self.encode(v, state)] for k, v in items]

	def _encode_map(self, value: dict[Any, Any], state: EncodingState) -> Node:
		if not value:
			return ["Map"]
		return ["Map", self._encode_pairs(dict.items(value), state)]

	def _encode_ordered_dict(self, value: collections.OrderedDict[Any, Any], state: EncodingState) -> Node:
		if not value:
			return ["OrderedDict"]
		return ["OrderedDict", self._encode_pairs(value.items(), state)]

	def _encode_default_dict(self, value: collections.defaultdict[Any, Any], state: EncodingState) -> Node:
		factory = value.default_factory
		return [
			"DefaultDict",
			None if factory is None else self.encode(factory, state),
			self._encode_pairs(value.items(), state),
		]

	def _encode_counter(self, value: collections.Counter[Any], state: EncodingState) -> Node:
		return ["Counter", self._encode_pairs(value.items(), state)]

	def _encode_set(self, value: set[Any] | frozenset[Any], state: EncodingState) -> Node:
		tag = "FrozenSet" if isinstance(value, frozenset) else "Set"
		if not value:
			return [tag]
		return [tag, [self.encode(item, state) for item in value]]

	def _encode_array(self, value: list[Any], state: EncodingState) -> Node:
		if all(isinstance(item, Undefined) for item in value):
			return ["Array", len(value)]
		return ["Array", [self.encode(item, state) for item in value]]

	def _encode_deque(self, value: collections.deque[Any], state: EncodingState) -> Node:
		return ["Deque", [self.encode(item, state) for item in value], value.maxlen]

	def _encode_tuple(self, value: tuple[Any, ...], state: EncodingState) -> Node:
		return ["Tuple", [self.encode(item, state) for item in value]]

	def _encode_object(self, value: types.SimpleNamespace, state: EncodingState) -> Node:
		return ["Object", self._encode_fields(vars(value), state)]

	def _encode_fields(self, fields: dict[str, Any], state: EncodingState) -> dict[str, Node]:
		out: dict[str, Node] = {}
		for key, entry in fields.items():
			if not isinstance(key, str):
				raise SerializeError(f"Field names must be strings, got {key!r}")
			out[key] = self.encode(entry, state)
		return out

	# Time and patterns

	def _encode_date(self, value: dt.datetime, state: EncodingState) -> Node:
		if value.tzinfo is None:
			return ["Date", datetime_to_millis(value), "naive"]
		return ["Date", datetime_to_millis(value)]

	def _encode_day(self, value: dt.date, state: EncodingState) -> Node:
		return ["Day", value.isoformat()]

	def _encode_pattern(self, value: re.Pattern[Any], state: EncodingState) -> Node:
		return ["Pattern", self.encode(value.pattern, state), value.flags]

	# Binary

	def _encode_bytes(self, value: bytes | bytearray, state: EncodingState) -> Node:
		tag = "ByteArray" if isinstance(value, bytearray) else "Bytes"
		if not value:
			return [tag]
		return [tag, base64.b64encode(value).decode("ascii")]

	def _encode_array_buffer(self, value: ArrayBuffer, state: EncodingState) -> Node:
		# Contents are not preserved: the buffer comes back zero-filled
		return [type(value).__name__, value.byte_length]

	def _encode_data_view(self, value: DataView, state: EncodingState) -> Node:
		return ["DataView", self.encode(value.buffer, state), value.byte_offset, value.byte_length]

	def _encode_typed_array(self, value: array.array[Any], state: EncodingState) -> Node:
		if isinstance(value, Uint8ClampedArray):
			name = CLAMPED_ARRAY
		else:
			name = typed_array_name(value.typecode, value.itemsize)
		if len(value) == 0:
			return ["TypedArray", name]
		if name in BIGINT_ARRAYS:
			items: list[Any] = [self._encode_bigint(item) for item in value]
		elif name in FLOAT_ARRAYS:
			items = [self._encode_number(item) for item in value]
		else:
			items = value.tolist()
		return ["TypedArray", name, items]

	# Errors

	def _encode_error(self, value: BaseException, state: EncodingState) -> Node:
		cls = type(value)
		if BUILTIN_ERRORS.get(cls.__name__) is cls:
			args = [self.encode(arg, state) for arg in value.args]
			return ["Error", cls.__name__, args, _stack_of(value)]
		entry = self._type_entry(cls, state)
		if entry.hooks is not None:
			return ["Custom", entry.name, self.encode(entry.hooks.box(value), state)]
		args = [self.encode(arg, state) for arg in value.args]
		fields = {key: item for key, item in instance_fields(value).items() if key != "stack"}
		return ["CustomError", entry.name, args, _stack_of(value), self._encode_fields(fields, state)]

	def _encode_error_group(self, value: ExceptionGroup[Exception], state: EncodingState) -> Node:
		causes = [self.encode(cause, state) for cause in value.exceptions]
		return ["Error", "ExceptionGroup", value.message, _stack_of(value), causes]

	# Functions

	def _encode_function(self, value: Callable[..., Any], state: EncodingState) -> Node:
		owner = getattr(value, "__self__", None)
		if owner is not None and not isinstance(owner, types.ModuleType):
			raise NotSupportedError(f"Bound method {value!r} cannot be boxed")
		if self.auto_register:
			name = self.functions.ensure(value)
		else:
			name = self.functions.name_of(value)
			if name is None:
				raise SerializeError(f"Function {value!r} is not registered")
		return ["Function", name, function_kind(value)]

	def _encode_builtin(self, value: types.BuiltinFunctionType, state: EncodingState) -> Node:
		name = value.__name__
		if getattr(builtins, name, None) is not value:
			return self._encode_function(value, state)
		if not self.allow_builtins:
			raise NotSupportedError(f"Builtin callable {name!r} cannot be boxed when builtins are disabled")
		# Resolved by name on decode; the decoding interpreter must expose the same builtin
		logger.debug("Encoding builtin callable %s by name", name)
		return ["Builtin", name]

	def _encode_class(self, value: type, state: EncodingState) -> Node:
		if getattr(builtins, value.__name__, None) is not value:
			raise NotSupportedError(f"Class objects such as {value.__qualname__} cannot be boxed")
		if not self.allow_builtins:
			raise NotSupportedError(
				f"Builtin class {value.__name__!r} cannot be boxed when builtins are disabled"
			)
		return ["Builtin", value.__name__]

	# User classes

	def _type_entry(self, cls: type, state: EncodingState) -> RegisteredType:
		if self.auto_register:
			entry = self.registry.ensure(cls)
		else:
			entry = self.registry.lookup(cls)
			if entry is None:
				raise SerializeError(f"Type {cls.__qualname__} is not registered")
		state.capture(entry)
		return entry

	def _encode_instance(self, value: Any, state: EncodingState) -> Node:
		entry = self._type_entry(type(value), state)
		if entry.hooks is not None:
			return ["Custom", entry.name, self.encode(entry.hooks.box(value), state)]
		if has_native_state(type(value)):
			raise NotSupportedError(
				f"Type <{type(value).__qualname__}> keeps native state; define {BOX_HOOK}/{UNBOX_HOOK} to box it"
			)
		return ["Instance", entry.name, self._encode_fields(instance_fields(value), state)]

	def _encode_derived(self, value: Any, state: EncodingState, *, base: type) -> Node:
		"""Encode an instance of a user subclass of a class with its own encoder."""
		if issubclass(base, BaseException):
			return self._encode_error(value, state)
		if base is type:
			return self._encode_class(value, state)
		entry = self._type_entry(type(value), state)
		if entry.hooks is not None:
			return ["Custom", entry.name, self.encode(entry.hooks.box(value), state)]
		if base is types.SimpleNamespace:
			# All of a namespace's state is in its __dict__
			return ["Instance", entry.name, self._encode_fields(instance_fields(value), state)]
		if base not in DERIVABLE_BASES:
			raise NotSupportedError(
				f"Subclass {type(value).__qualname__} of {base.__qualname__} needs {BOX_HOOK}/{UNBOX_HOOK} hooks"
			)
		content = self._table[base].encode(value, state)
		return ["Derived", entry.name, content, self._encode_fields(instance_fields(value), state)]


def _stack_of(value: BaseException) -> str:
	stack = getattr(value, "stack", None)
	if isinstance(stack, str):
		return stack
	return format_stack(value)


def instance_fields(value: Any) -> dict[str, Any]:
	"""Instance attributes from ``__dict__`` and from ``__slots__`` along the MRO."""
	fields: dict[str, Any] = dict(vars(value)) if hasattr(value, "__dict__") else {}
	for cls in type(value).__mro__:
		slots = cls.__dict__.get("__slots__", ())
		if isinstance(slots, str):
			slots = (slots,)
		for slot in slots:
			if slot in ("__dict__", "__weakref__") or slot in fields:
				continue
			if hasattr(value, slot):
				fields[slot] = getattr(value, slot)
	return fields


__all__ = [
	"BIGINT_ARRAYS",
	"BUILTIN_ERRORS",
	"CLAMPED_ARRAY",
	"DERIVABLE_BASES",
	"EPOCH",
	"FLOAT_ARRAYS",
	"Encoder",
	"EncoderEntry",
	"EncodingState",
	"Node",
	"datetime_to_millis",
	"instance_fields",
	"typed_array_name",
]
