"""Size-gated compression of encoded units.

A unit larger than the threshold is compressed and base64 encoded. The result
is kept only when it is strictly shorter than the plain unit, and is marked
with a leading ``@`` so that decoding needs no external hint. JSON units
always start with ``{`` so the marker can never be ambiguous.
"""

from __future__ import annotations

import base64
import binascii
import logging
import zlib
from dataclasses import dataclass
from typing import Final, Protocol

from anyio import to_thread

from lazycrate.env import DEFAULT_COMPRESS_LEVEL, DEFAULT_COMPRESS_THRESHOLD

logger = logging.getLogger(__name__)

MARKER: Final = "@"


class Compressor(Protocol):
	def compress(self, data: bytes) -> bytes: ...
	def decompress(self, data: bytes) -> bytes: ...


@dataclass(frozen=True, slots=True)
class ZlibCompressor:
	level: int = DEFAULT_COMPRESS_LEVEL

	def compress(self, data: bytes) -> bytes:
		return zlib.compress(data, self.level)

	def decompress(self, data: bytes) -> bytes:
		return zlib.decompress(data)


def is_compressed(text: str) -> bool:
	return text.startswith(MARKER)


class CompressionGate:
	"""Compresses units over ``threshold`` bytes when it pays off.

	The blocking and the non-blocking paths share the compressor, the
	threshold and the strictly-shorter rule; the non-blocking path only moves
	the compressor call onto a worker thread.
	"""

	__slots__: tuple[str, ...] = ("compressor", "threshold")
	compressor: Compressor
	threshold: int

	def __init__(
		self,
		compressor: Compressor | None = None,
		threshold: int = DEFAULT_COMPRESS_THRESHOLD,
	) -> None:
		self.compressor = compressor or ZlibCompressor()
		self.threshold = threshold

	def wants(self, data: bytes) -> bool:
		return len(data) > self.threshold

	def choose(self, unit: str, data: bytes, compressed: bytes) -> str:
		payload = base64.b64encode(compressed).decode("ascii")
		if len(payload) < len(data):
			logger.debug("Compressed unit from %d to %d bytes", len(data), len(payload) + 1)
			return MARKER + payload
		logger.debug(
			"Kept unit uncompressed (%d bytes, compressed form %d bytes)",
			len(data),
			len(payload),
		)
		return unit

	def apply(self, unit: str) -> str:
		data = unit.encode("utf-8")
		if not self.wants(data):
			return unit
		return self.choose(unit, data, self.compressor.compress(data))

	async def apply_async(self, unit: str) -> str:
		data = unit.encode("utf-8")
		if not self.wants(data):
			return unit
		compressed = await to_thread.run_sync(self.compressor.compress, data)
		return self.choose(unit, data, compressed)

	def reverse(self, text: str) -> str:
		if not is_compressed(text):
			return text
		return self.compressor.decompress(_payload(text)).decode("utf-8")

	async def reverse_async(self, text: str) -> str:
		if not is_compressed(text):
			return text
		data = await to_thread.run_sync(self.compressor.decompress, _payload(text))
		return data.decode("utf-8")


def _payload(text: str) -> bytes:
	try:
		return base64.b64decode(text[len(MARKER) :], validate=True)
	except binascii.Error as exc:
		raise ValueError(f"Compressed unit is not valid base64: {exc}") from exc


__all__ = [
	"MARKER",
	"CompressionGate",
	"Compressor",
	"ZlibCompressor",
	"is_compressed",
]
