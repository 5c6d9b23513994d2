import base64
import json
import zlib
from dataclasses import dataclass

import pytest
from lazycrate import Crate, CrateConfig, UnboxError
from lazycrate.compression import MARKER, CompressionGate, ZlibCompressor, is_compressed

# {"types":[],"value":""} is 23 bytes, so a string of n characters yields 23 + n
EMPTY_UNIT_SIZE = 23


@dataclass
class FixedSizeCompressor:
	"""Returns ``size`` bytes no matter the input, to pin the gate's decision."""

	size: int

	def compress(self, data: bytes) -> bytes:
		return b"\x00" * self.size

	def decompress(self, data: bytes) -> bytes:
		raise AssertionError("not used")


def test_small_units_are_never_compressed(crate: Crate):
	unit = crate.box({"a": 1})
	assert unit.startswith("{")
	assert not is_compressed(unit)


def test_unit_exactly_at_threshold_is_not_compressed(crate: Crate):
	value = "a" * (1024 - EMPTY_UNIT_SIZE)
	unit = crate.box(value)
	assert len(unit.encode("utf-8")) == 1024
	assert unit == json.dumps({"types": [], "value": value}, separators=(",", ":"))


def test_unit_one_byte_over_threshold_is_compressed(crate: Crate):
	value = "a" * (1025 - EMPTY_UNIT_SIZE)
	unit = crate.box(value)
	assert unit.startswith(MARKER)
	assert crate.unbox(unit) == value


def test_compressed_unit_is_marked_base64_zlib(crate: Crate):
	value = {"rows": [{"id": i, "name": "row"} for i in range(200)]}
	unit = crate.box(value)
	assert is_compressed(unit)
	plain = zlib.decompress(base64.b64decode(unit[1:])).decode("utf-8")
	assert plain == crate.encode(value)
	assert crate.unbox(unit) == value


def test_threshold_is_byte_length_not_character_count(crate: Crate):
	# 500 three-byte characters exceed 1024 bytes while staying under 1024 characters
	value = "世" * 500
	unit = crate.box(value)
	assert is_compressed(unit)
	assert crate.unbox(unit) == value


def test_unit_is_kept_when_compression_does_not_pay_off():
	unit = json.dumps({"types": [], "value": "a" * 1500}, separators=(",", ":"))
	gate = CompressionGate(FixedSizeCompressor(4096), threshold=1024)
	assert gate.apply(unit) == unit


class TestTieBreak:
	"""A compressed form is kept only when strictly shorter than the plain unit."""

	unit = json.dumps({"types": [], "value": "a" * 1005}, separators=(",", ":"))

	def test_unit_size(self):
		assert len(self.unit) == 1028

	def test_equal_length_keeps_plain(self):
		# 771 bytes encode to exactly 1028 base64 characters
		gate = CompressionGate(FixedSizeCompressor(771))
		assert gate.apply(self.unit) == self.unit

	def test_shorter_is_compressed(self):
		# 768 bytes encode to 1024 base64 characters
		gate = CompressionGate(FixedSizeCompressor(768))
		result = gate.apply(self.unit)
		assert result.startswith(MARKER)
		assert len(result) == 1025

	def test_longer_keeps_plain(self):
		gate = CompressionGate(FixedSizeCompressor(900))
		assert gate.apply(self.unit) == self.unit


def test_custom_threshold():
	crate = Crate(CrateConfig(compress_threshold=10))
	unit = crate.box("a" * 100)
	assert is_compressed(unit)
	assert crate.unbox(unit) == "a" * 100


def test_custom_compressor_is_used_both_ways():
	calls: list[str] = []

	class RecordingCompressor(ZlibCompressor):
		def compress(self, data: bytes) -> bytes:
			calls.append("compress")
			return super().compress(data)

		def decompress(self, data: bytes) -> bytes:
			calls.append("decompress")
			return super().decompress(data)

	crate = Crate(CrateConfig(), compressor=RecordingCompressor())
	value = ["x"] * 1000
	assert crate.unbox(crate.box(value)) == value
	assert calls == ["compress", "decompress"]


def test_plain_units_pass_through_reverse():
	gate = CompressionGate()
	assert gate.reverse('{"types":[],"value":1.5}') == '{"types":[],"value":1.5}'


def test_invalid_base64_after_marker(crate: Crate):
	with pytest.raises(UnboxError) as info:
		crate.unbox("@not base64!!")
	assert "Unable to decompress" in str(info.value)


def test_invalid_zlib_payload(crate: Crate):
	bogus = MARKER + base64.b64encode(b"definitely not zlib").decode()
	with pytest.raises(UnboxError) as info:
		crate.unbox(bogus)
	assert "Unable to decompress" in str(info.value)


def test_bytes_input_is_accepted(crate: Crate):
	unit = crate.box(["x"] * 1000)
	assert crate.unbox(unit.encode("utf-8")) == ["x"] * 1000
