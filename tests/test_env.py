import os

import lazycrate
import pytest
from lazycrate import CrateConfig
from lazycrate.compression import is_compressed
from lazycrate.env import (
	DEFAULT_COMPRESS_LEVEL,
	DEFAULT_COMPRESS_THRESHOLD,
	ENV_LAZYCRATE_ALLOW_BUILTINS,
	ENV_LAZYCRATE_AUTO_REGISTER,
	ENV_LAZYCRATE_COMPRESS_LEVEL,
	ENV_LAZYCRATE_COMPRESS_THRESHOLD,
	env,
)


def test_defaults():
	assert env.compress_threshold == DEFAULT_COMPRESS_THRESHOLD == 1024
	assert env.compress_level == DEFAULT_COMPRESS_LEVEL == 9
	assert env.allow_builtins is True
	assert env.auto_register is True


def test_values_are_read_from_environment(monkeypatch: pytest.MonkeyPatch):
	monkeypatch.setenv(ENV_LAZYCRATE_COMPRESS_THRESHOLD, "64")
	monkeypatch.setenv(ENV_LAZYCRATE_COMPRESS_LEVEL, "1")
	monkeypatch.setenv(ENV_LAZYCRATE_ALLOW_BUILTINS, "false")
	monkeypatch.setenv(ENV_LAZYCRATE_AUTO_REGISTER, "0")
	assert CrateConfig.from_env() == CrateConfig(
		compress_threshold=64,
		compress_level=1,
		allow_builtins=False,
		auto_register=False,
	)


def test_empty_value_falls_back_to_default(monkeypatch: pytest.MonkeyPatch):
	monkeypatch.setenv(ENV_LAZYCRATE_COMPRESS_THRESHOLD, "")
	assert env.compress_threshold == DEFAULT_COMPRESS_THRESHOLD


@pytest.mark.parametrize(
	("key", "raw"),
	[
		(ENV_LAZYCRATE_COMPRESS_THRESHOLD, "lots"),
		(ENV_LAZYCRATE_COMPRESS_THRESHOLD, "-1"),
		(ENV_LAZYCRATE_COMPRESS_LEVEL, "10"),
		(ENV_LAZYCRATE_ALLOW_BUILTINS, "maybe"),
	],
)
def test_invalid_values_name_the_variable(monkeypatch: pytest.MonkeyPatch, key: str, raw: str):
	monkeypatch.setenv(key, raw)
	with pytest.raises(ValueError, match=key):
		CrateConfig.from_env()


def test_setters_write_to_environment(monkeypatch: pytest.MonkeyPatch):
	# registered with monkeypatch so teardown removes them again
	monkeypatch.setenv(ENV_LAZYCRATE_COMPRESS_THRESHOLD, "1024")
	monkeypatch.setenv(ENV_LAZYCRATE_ALLOW_BUILTINS, "1")
	env.compress_threshold = 2048
	env.allow_builtins = False
	assert os.environ[ENV_LAZYCRATE_COMPRESS_THRESHOLD] == "2048"
	assert os.environ[ENV_LAZYCRATE_ALLOW_BUILTINS] == "0"
	assert env.compress_threshold == 2048
	assert env.allow_builtins is False


def test_default_crate_follows_environment(monkeypatch: pytest.MonkeyPatch):
	monkeypatch.setenv(ENV_LAZYCRATE_COMPRESS_THRESHOLD, "16")
	lazycrate.reset_default_crate()
	unit = lazycrate.box("a" * 64)
	assert is_compressed(unit)
	assert lazycrate.unbox(unit) == "a" * 64


def test_default_crate_is_reused():
	assert lazycrate.default_crate() is lazycrate.default_crate()
	first = lazycrate.default_crate()
	lazycrate.reset_default_crate()
	assert lazycrate.default_crate() is not first


def test_module_level_registration():
	@lazycrate.register(name="env.Celsius")
	class Celsius:
		def __init__(self, degrees: float) -> None:
			self.degrees = degrees

		def __box__(self) -> float:
			return self.degrees

		@staticmethod
		def __unbox__(data: float) -> "Celsius":
			return Celsius(data)

	assert lazycrate.unbox(lazycrate.box(Celsius(21.5))).degrees == 21.5
