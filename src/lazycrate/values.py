"""Value kinds with no native Python counterpart.

Python has no ``undefined``, no symbol type, no raw memory region object and
no clamped byte array. These small classes fill the gaps so that every kind
the encoder knows about has a concrete Python shape.
"""

from __future__ import annotations

import array
import math
from collections.abc import Iterable
from typing import Any, Final, SupportsIndex, final, override


@final
class Undefined:
	"""The absent value. Use the ``UNDEFINED`` singleton."""

	__slots__: tuple[str, ...] = ()
	_instance: Undefined | None = None

	def __new__(cls) -> Undefined:
		if cls._instance is None:
			cls._instance = super().__new__(cls)
		return cls._instance

	def __bool__(self) -> bool:
		return False

	@override
	def __repr__(self) -> str:
		return "UNDEFINED"

	def __reduce__(self) -> str:
		return "UNDEFINED"


UNDEFINED: Final = Undefined()


@final
class Token:
	"""A unique opaque token. Two tokens are never equal unless identical."""

	__slots__: tuple[str, ...] = ("description",)
	description: str | None

	def __init__(self, description: str | None = None) -> None:
		self.description = description

	@override
	def __repr__(self) -> str:
		if self.description is None:
			return "Token()"
		return f"Token({self.description!r})"


class ArrayBuffer:
	"""A raw, fixed-length memory region.

	Only the length survives boxing: an unboxed buffer is zero-filled.
	"""

	__slots__: tuple[str, ...] = ("data",)
	data: bytearray

	def __init__(self, byte_length: int = 0) -> None:
		if byte_length < 0:
			raise ValueError("byte_length must be non-negative")
		self.data = bytearray(byte_length)

	@classmethod
	def from_bytes(cls, data: bytes | bytearray | memoryview) -> ArrayBuffer:
		buffer = cls(len(data))
		buffer.data[:] = data
		return buffer

	@property
	def byte_length(self) -> int:
		return len(self.data)

	def __len__(self) -> int:
		return len(self.data)

	@override
	def __eq__(self, other: object) -> bool:
		if not isinstance(other, ArrayBuffer) or type(other) is not type(self):
			return NotImplemented
		return self.data == other.data

	@override
	def __repr__(self) -> str:
		return f"{type(self).__name__}({self.byte_length})"


class SharedArrayBuffer(ArrayBuffer):
	"""Raw memory region meant to be shared between workers."""

	__slots__: tuple[str, ...] = ()


class DataView:
	"""A window of ``byte_length`` bytes into a buffer, starting at ``byte_offset``."""

	__slots__: tuple[str, ...] = ("buffer", "byte_offset", "byte_length")
	buffer: ArrayBuffer
	byte_offset: int
	byte_length: int

	def __init__(
		self,
		buffer: ArrayBuffer,
		byte_offset: int = 0,
		byte_length: int | None = None,
	) -> None:
		if not isinstance(buffer, ArrayBuffer):
			raise TypeError("DataView requires an ArrayBuffer")
		if byte_offset < 0 or byte_offset > buffer.byte_length:
			raise ValueError(f"byte_offset {byte_offset} is outside the buffer")
		if byte_length is None:
			byte_length = buffer.byte_length - byte_offset
		if byte_length < 0 or byte_offset + byte_length > buffer.byte_length:
			raise ValueError(f"byte_length {byte_length} is outside the buffer")
		self.buffer = buffer
		self.byte_offset = byte_offset
		self.byte_length = byte_length

	def tobytes(self) -> bytes:
		return bytes(self.buffer.data[self.byte_offset : self.byte_offset + self.byte_length])

	@override
	def __eq__(self, other: object) -> bool:
		if not isinstance(other, DataView):
			return NotImplemented
		return (
			self.buffer == other.buffer
			and self.byte_offset == other.byte_offset
			and self.byte_length == other.byte_length
		)

	@override
	def __repr__(self) -> str:
		return f"DataView({self.buffer!r}, {self.byte_offset}, {self.byte_length})"


def _clamp_byte(value: Any) -> int:
	number = float(value)
	if math.isnan(number):
		return 0
	if number <= 0:
		return 0
	if number >= 255:
		return 255
	# round half to even
	return round(number)


class Uint8ClampedArray(array.array):  # pyright: ignore[reportMissingTypeArgument]
	"""Unsigned byte array that clamps writes into 0..255 instead of wrapping."""

	def __new__(cls, values: Iterable[Any] = ()) -> Uint8ClampedArray:
		return super().__new__(cls, "B", [_clamp_byte(v) for v in values])

	@override
	def __setitem__(self, index: SupportsIndex | slice, value: Any) -> None:  # pyright: ignore[reportIncompatibleMethodOverride]
		if isinstance(index, slice):
			super().__setitem__(index, array.array("B", [_clamp_byte(v) for v in value]))
		else:
			super().__setitem__(index, _clamp_byte(value))

	def append(self, value: Any) -> None:  # pyright: ignore[reportIncompatibleMethodOverride]
		super().append(_clamp_byte(value))

	@override
	def __repr__(self) -> str:
		return f"Uint8ClampedArray({self.tolist()!r})"


__all__ = [
	"UNDEFINED",
	"ArrayBuffer",
	"DataView",
	"SharedArrayBuffer",
	"Token",
	"Uint8ClampedArray",
	"Undefined",
]
