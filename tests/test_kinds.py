import collections
import concurrent.futures
import datetime as dt
import enum
import functools
import json
import math
import re
import threading
import types
import weakref
from typing import Any

import pytest
from lazycrate import (
	BoxError,
	Crate,
	CrateConfig,
	NotSupportedError,
	SerializeError,
	Token,
	Uint8ClampedArray,
	UNDEFINED,
	UnboxError,
)
from lazycrate.kinds import CATCH_ALL, Classifier, type_name_of


def clone(crate: Crate, value: object) -> object:
	return crate.unbox(crate.box(value))


def plain_function(x: int) -> int:
	return x * 2


async def async_function() -> int:
	return 1


def generator_function():
	yield 1


async def async_generator_function():
	yield 1


class Color(enum.Enum):
	RED = "red"
	BLUE = "blue"


class Level(enum.IntEnum):
	LOW = 1
	HIGH = 2


class Tag(str):
	pass


class Meters(float):
	pass


class Slotted:
	__slots__ = ("a", "b")

	def __init__(self, a: int, b: int) -> None:
		self.a = a
		self.b = b


class Holder:
	def __init__(self, payload: Any) -> None:
		self.payload = payload

	def method(self) -> None:
		pass


class Shout(str):
	def __str__(self) -> str:
		return self.upper() + "!"


class Stamp(dt.datetime):
	pass


class Phasor(complex):
	pass


class Settings(dict):
	def __box__(self) -> list[list[Any]]:
		return sorted([key, value] for key, value in self.items())

	@staticmethod
	def __unbox__(data: list[list[Any]]) -> "Settings":
		return Settings(data)


# ----------------------------------------------------------------------------
# Classification
# ----------------------------------------------------------------------------


def test_classifier_caches_per_type(crate: Crate):
	classifier = crate.encoder.classifier
	first = classifier.classify(1.5)
	assert first.kind == "number"
	assert classifier.classify(2.5) is first


def test_classifier_catch_all_kinds():
	classifier = Classifier({})
	assert classifier.classify(Color.RED).kind == "boxed"
	assert classifier.classify(Color.RED).is_catch_all
	assert classifier.classify(Tag("x")).kind == "boxed"
	assert classifier.classify(Holder(1)).kind == "structured"
	assert classifier.classify(Holder(1)).type_name == CATCH_ALL
	assert classifier.classify(plain_function).kind == "callable"


def test_classifier_primitives():
	classifier = Classifier({})
	assert classifier.classify(None).kind == "null"
	assert classifier.classify(UNDEFINED).kind == "undefined"
	assert classifier.classify(True).kind == "boolean"
	assert classifier.classify(1).kind == "bigint"
	assert classifier.classify("s").kind == "string"
	assert classifier.classify(Token()).kind == "token"


def test_type_name_is_module_and_qualname():
	assert type_name_of(Holder) == f"{Holder.__module__}.Holder"


# ----------------------------------------------------------------------------
# Functions
# ----------------------------------------------------------------------------


@pytest.mark.parametrize(
	("fn", "kind"),
	[
		(plain_function, "function"),
		(async_function, "async"),
		(generator_function, "generator"),
		(async_generator_function, "async_generator"),
	],
)
def test_functions_resolve_to_the_same_object(crate: Crate, fn: Any, kind: str):
	node = json.loads(crate.box(fn))["value"]
	assert node == ["Function", f"{fn.__module__}.{fn.__qualname__}", kind]
	assert crate.unbox(crate.box(fn)) is fn


def test_registered_function_is_callable_after_unboxing(crate: Crate):
	result = clone(crate, {"double": plain_function})
	assert result["double"](21) == 42


def test_function_registered_under_explicit_name(crate: Crate):
	@crate.register_function(name="ops.triple")
	def triple(x: int) -> int:
		return x * 3

	unit = crate.box(triple)
	assert '"ops.triple"' in unit
	assert crate.unbox(unit)(2) == 6


def test_unknown_function_fails_on_another_crate(crate: Crate):
	unit = crate.box(plain_function)
	other = Crate(CrateConfig())
	with pytest.raises(UnboxError) as info:
		other.unbox(unit)
	assert "Unknown function" in str(info.value)


def test_name_collision_between_lambdas(crate: Crate):
	first = lambda: 1  # noqa: E731
	second = lambda: 2  # noqa: E731
	crate.box(first)
	with pytest.raises(BoxError) as info:
		crate.box(second)
	assert isinstance(info.value.__cause__, SerializeError)


def test_unregistered_function_without_auto_register():
	crate = Crate(CrateConfig(auto_register=False))
	with pytest.raises(BoxError) as info:
		crate.box(plain_function)
	assert isinstance(info.value.__cause__, SerializeError)
	crate.register_function(plain_function)
	assert crate.unbox(crate.box(plain_function)) is plain_function


class TestBuiltins:
	@pytest.mark.parametrize("fn", [len, print, max, isinstance])
	def test_builtins_by_name(self, crate: Crate, fn: Any):
		unit = crate.box(fn)
		assert json.loads(unit)["value"] == ["Builtin", fn.__name__]
		assert crate.unbox(unit) is fn

	def test_builtins_decode_on_a_fresh_crate(self, crate: Crate):
		assert Crate(CrateConfig()).unbox(crate.box(len)) is len

	def test_module_builtin_goes_through_the_registry(self, crate: Crate):
		unit = crate.box(math.sqrt)
		assert json.loads(unit)["value"] == ["Function", "math.sqrt", "function"]
		assert crate.unbox(unit) is math.sqrt

	def test_builtins_can_be_disabled(self):
		crate = Crate(CrateConfig(allow_builtins=False))
		with pytest.raises(BoxError) as info:
			crate.box(len)
		assert isinstance(info.value.__cause__, NotSupportedError)

	@pytest.mark.parametrize("cls", [int, list, ValueError])
	def test_builtin_classes_by_name(self, crate: Crate, cls: type):
		unit = crate.box(cls)
		assert json.loads(unit)["value"] == ["Builtin", cls.__name__]
		assert crate.unbox(unit) is cls

	def test_builtin_classes_follow_the_builtins_switch(self):
		crate = Crate(CrateConfig(allow_builtins=False))
		with pytest.raises(BoxError) as info:
			crate.box(dict)
		assert isinstance(info.value.__cause__, NotSupportedError)

	def test_unknown_builtin_name(self, crate: Crate):
		with pytest.raises(UnboxError, match="No builtin callable"):
			crate.unbox('{"types":[],"value":["Builtin","definitely_not_a_builtin"]}')


# ----------------------------------------------------------------------------
# Boxed primitives
# ----------------------------------------------------------------------------


class TestBoxed:
	def test_enum_member(self, crate: Crate):
		assert clone(crate, Color.BLUE) is Color.BLUE

	def test_int_enum_member(self, crate: Crate):
		unit = crate.box(Level.HIGH)
		assert json.loads(unit)["value"] == ["Boxed", type_name_of(Level), ["BigInt", "2"]]
		assert crate.unbox(unit) is Level.HIGH

	def test_str_subclass(self, crate: Crate):
		result = clone(crate, Tag("label"))
		assert type(result) is Tag
		assert result == "label"

	def test_float_subclass(self, crate: Crate):
		result = clone(crate, Meters(2.5))
		assert type(result) is Meters
		assert result == 2.5

	def test_boxed_types_are_captured(self, crate: Crate):
		document = json.loads(crate.box([Color.RED, Color.BLUE, Level.LOW]))
		assert [t["name"] for t in document["types"]] == [type_name_of(Color), type_name_of(Level)]

	def test_stored_literal_ignores_overridden_str(self, crate: Crate):
		unit = crate.box(Shout("hey"))
		assert json.loads(unit)["value"] == ["Boxed", type_name_of(Shout), "hey"]
		result = crate.unbox(unit)
		assert type(result) is Shout
		assert str(result) == "HEY!"


# ----------------------------------------------------------------------------
# Plain instances
# ----------------------------------------------------------------------------


class TestInstances:
	def test_instance_fields_without_init(self, crate: Crate):
		result = clone(crate, Holder({"k": [1, 2]}))
		assert type(result) is Holder
		assert result.payload == {"k": [1, 2]}

	def test_slotted_instance(self, crate: Crate):
		result = clone(crate, Slotted(1, "two"))
		assert type(result) is Slotted
		assert (result.a, result.b) == (1, "two")

	def test_instance_node_shape(self, crate: Crate):
		document = json.loads(crate.box(Holder(None)))
		assert document["types"] == [{"name": type_name_of(Holder), "hooks": False}]
		assert document["value"] == ["Instance", type_name_of(Holder), {"payload": None}]

	def test_native_state_is_never_boxed_as_an_empty_instance(self, crate: Crate):
		with pytest.raises(BoxError) as info:
			crate.box({"lock": threading.Lock()})
		assert isinstance(info.value.__cause__, NotSupportedError)
		assert "__box__" in str(info.value)


# ----------------------------------------------------------------------------
# Subclasses of encodable types
# ----------------------------------------------------------------------------


def test_classifier_reports_nearest_known_base(crate: Crate):
	classification = crate.encoder.classifier.classify(collections.Counter())
	assert (classification.kind, classification.derived) == ("structured", False)
	derived = crate.encoder.classifier.classify(Stamp(2024, 1, 1))
	assert derived.derived
	assert derived.cls is dt.datetime
	assert derived.type_name == "datetime"


def test_hooks_take_precedence_over_the_base_encoder(crate: Crate):
	source = Settings(b=2, a=1)
	unit = crate.box(source)
	assert json.loads(unit)["value"][0] == "Custom"
	result = crate.unbox(unit)
	assert type(result) is Settings
	assert result == {"a": 1, "b": 2}


def test_unsupported_subclass_names_the_hooks(crate: Crate):
	with pytest.raises(BoxError) as info:
		crate.box(Stamp(2024, 1, 1))
	assert isinstance(info.value.__cause__, NotSupportedError)
	assert "Stamp" in str(info.value)
	assert "datetime" in str(info.value)


# ----------------------------------------------------------------------------
# Recognized but unsupported kinds
# ----------------------------------------------------------------------------


def _coroutine():
	coro = async_function()
	coro.close()
	return coro


@pytest.mark.parametrize(
	"factory",
	[
		lambda: Token("t"),
		lambda: weakref.ref(Holder(None)),
		lambda: weakref.WeakSet(),
		lambda: concurrent.futures.Future(),
		lambda: (x for x in []),
		_coroutine,
		lambda: math,
		lambda: functools.partial(plain_function, 1),
		lambda: memoryview(b"abc"),
		lambda: str.upper,
		lambda: Holder,
		lambda: threading.Lock(),
		lambda: dt.timedelta(days=1),
		lambda: re.match("a", "a"),
		lambda: Stamp(2024, 1, 1),
		lambda: Phasor(1.5),
		lambda: Holder(None).method,
		lambda: [].append,
	],
)
def test_unsupported_kinds(crate: Crate, factory: Any):
	with pytest.raises(BoxError) as info:
		crate.box(factory())
	assert isinstance(info.value.__cause__, NotSupportedError)


def test_unsupported_kind_nested_in_structure(crate: Crate):
	with pytest.raises(BoxError) as info:
		crate.box({"fine": [1, 2], "bad": Token()})
	assert isinstance(info.value.__cause__, NotSupportedError)


def test_clamped_array_is_supported(crate: Crate):
	assert clone(crate, Uint8ClampedArray([5])).tolist() == [5]


# ----------------------------------------------------------------------------
# Cycles
# ----------------------------------------------------------------------------


class TestCycles:
	def test_self_referencing_list(self, crate: Crate):
		items: list[Any] = [1]
		items.append(items)
		with pytest.raises(BoxError) as info:
			crate.box(items)
		assert isinstance(info.value.__cause__, SerializeError)
		assert "Circular reference" in str(info.value)

	def test_cycle_through_object(self, crate: Crate):
		ns = types.SimpleNamespace()
		ns.me = {"ns": ns}
		with pytest.raises(BoxError) as info:
			crate.box(ns)
		assert isinstance(info.value.__cause__, SerializeError)

	def test_cycle_through_instance(self, crate: Crate):
		holder = Holder(None)
		holder.payload = [holder]
		with pytest.raises(BoxError):
			crate.box(holder)

	def test_repeated_reference_is_not_a_cycle(self, crate: Crate):
		shared = [1, 2]
		assert clone(crate, {"a": shared, "b": shared}) == {"a": [1, 2], "b": [1, 2]}
