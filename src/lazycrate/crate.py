"""The boxing engine and its blocking and non-blocking entry points."""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, TypeVar

from lazycrate.compression import CompressionGate, Compressor, ZlibCompressor
from lazycrate.decoder import Decoder
from lazycrate.encoder import Encoder, EncodingState, Node
from lazycrate.env import (
	DEFAULT_COMPRESS_LEVEL,
	DEFAULT_COMPRESS_THRESHOLD,
	LazycrateEnv,
	env,
)
from lazycrate.errors import (
	BoxError,
	CrateError,
	DeserializeError,
	UnboxError,
)
from lazycrate.registry import FunctionRegistry, RegisteredType, TypeRegistry

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=type)
F = TypeVar("F", bound=Callable[..., Any])


@dataclass(frozen=True)
class CrateConfig:
	"""Settings of a ``Crate``.

	Attributes:
		compress_threshold: units above this many bytes are considered for compression
		compress_level: zlib level used by the default compressor
		allow_builtins: encode members of ``builtins`` by name
		auto_register: register unknown classes and functions while boxing
	"""

	compress_threshold: int = DEFAULT_COMPRESS_THRESHOLD
	compress_level: int = DEFAULT_COMPRESS_LEVEL
	allow_builtins: bool = True
	auto_register: bool = True

	@classmethod
	def from_env(cls, source: LazycrateEnv | None = None) -> CrateConfig:
		source = source or env
		return cls(
			compress_threshold=source.compress_threshold,
			compress_level=source.compress_level,
			allow_builtins=source.allow_builtins,
			auto_register=source.auto_register,
		)


def assemble(state: EncodingState, node: Node) -> str:
	"""Join the captured type preamble and the main node into one unit."""
	return json.dumps(
		{"types": state.preamble(), "value": node},
		separators=(",", ":"),
		ensure_ascii=False,
		allow_nan=False,
	)


def _as_text(args: tuple[Any, ...]) -> str:
	if len(args) != 1:
		raise TypeError("unbox requires 1 argument")
	unit = args[0]
	if isinstance(unit, (bytes, bytearray, memoryview)):
		unit = bytes(unit).decode("utf-8")
	if not isinstance(unit, str):
		raise TypeError(f"Input must be str or bytes, got {type(unit).__name__}")
	if not unit:
		raise ValueError("Unable to unbox empty input")
	return unit


class Crate:
	"""Boxes values into encoded units and unboxes them again.

	A crate owns its type and function registries. Units produced by one crate
	can be unboxed by any crate that registered the same names.
	"""

	config: CrateConfig
	registry: TypeRegistry
	functions: FunctionRegistry
	gate: CompressionGate
	encoder: Encoder
	decoder: Decoder

	def __init__(
		self,
		config: CrateConfig | None = None,
		*,
		compressor: Compressor | None = None,
		registry: TypeRegistry | None = None,
		functions: FunctionRegistry | None = None,
	) -> None:
		self.config = config or CrateConfig.from_env()
		self.registry = registry or TypeRegistry()
		self.functions = functions or FunctionRegistry()
		self.gate = CompressionGate(
			compressor or ZlibCompressor(level=self.config.compress_level),
			threshold=self.config.compress_threshold,
		)
		self.encoder = Encoder(
			self.registry,
			self.functions,
			allow_builtins=self.config.allow_builtins,
			auto_register=self.config.auto_register,
		)
		self.decoder = Decoder(self.registry, self.functions)

	# Registration

	def register(
		self,
		cls: T | None = None,
		*,
		name: str | None = None,
		box: Callable[[Any], Any] | None = None,
		unbox: Callable[[Any], Any] | None = None,
	) -> Any:
		"""Register a class. Usable as ``@crate.register`` or ``@crate.register(name=...)``."""

		def decorator(target: T) -> T:
			self.registry.register(target, name=name, box=box, unbox=unbox)
			return target

		if cls is None:
			return decorator
		return decorator(cls)

	def register_function(self, fn: F | None = None, *, name: str | None = None) -> Any:
		"""Register a function under ``name`` (default ``module.qualname``)."""

		def decorator(target: F) -> F:
			self.functions.register(target, name=name)
			return target

		if fn is None:
			return decorator
		return decorator(fn)

	def lookup(self, cls: type) -> RegisteredType | None:
		return self.registry.lookup(cls)

	# Encoding

	def encode(self, value: Any) -> str:
		"""Encode ``value`` into an uncompressed unit."""
		state = EncodingState()
		node = self.encoder.encode(value, state)
		return assemble(state, node)

	def decode(self, unit: str) -> Any:
		"""Decode an uncompressed unit."""
		try:
			document = json.loads(unit)
			return self.decoder.load(document)
		except CrateError:
			raise
		except Exception as exc:
			raise DeserializeError(f"Unable to decode unit: {exc}") from exc

	def box(self, *args: Any) -> str:
		try:
			if len(args) != 1:
				raise TypeError("box requires 1 argument")
			return self.gate.apply(self.encode(args[0]))
		except Exception as exc:
			raise BoxError(str(exc)) from exc

	def unbox(self, *args: Any) -> Any:
		try:
			text = _as_text(args)
			return self.decode(self.decompress(text))
		except Exception as exc:
			raise UnboxError(str(exc)) from exc

	async def box_async(self, *args: Any) -> str:
		try:
			if len(args) != 1:
				raise TypeError("box requires 1 argument")
			return await self.gate.apply_async(self.encode(args[0]))
		except Exception as exc:
			raise BoxError(str(exc)) from exc

	async def unbox_async(self, *args: Any) -> Any:
		try:
			text = _as_text(args)
			try:
				text = await self.gate.reverse_async(text)
			except Exception as exc:
				raise DeserializeError(f"Unable to decompress unit: {exc}") from exc
			return self.decode(text)
		except Exception as exc:
			raise UnboxError(str(exc)) from exc

	def decompress(self, text: str) -> str:
		"""Reverse compression if the unit carries the marker; plain units pass through."""
		try:
			return self.gate.reverse(text)
		except Exception as exc:
			raise DeserializeError(f"Unable to decompress unit: {exc}") from exc


__all__ = ["Crate", "CrateConfig", "assemble"]
