import lazycrate
import pytest
from lazycrate import Crate, CrateConfig
from lazycrate.env import (
	ENV_LAZYCRATE_ALLOW_BUILTINS,
	ENV_LAZYCRATE_AUTO_REGISTER,
	ENV_LAZYCRATE_COMPRESS_LEVEL,
	ENV_LAZYCRATE_COMPRESS_THRESHOLD,
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch):  # pyright: ignore[reportUnusedFunction]
	for key in (
		ENV_LAZYCRATE_ALLOW_BUILTINS,
		ENV_LAZYCRATE_AUTO_REGISTER,
		ENV_LAZYCRATE_COMPRESS_LEVEL,
		ENV_LAZYCRATE_COMPRESS_THRESHOLD,
	):
		monkeypatch.delenv(key, raising=False)
	lazycrate.reset_default_crate()
	yield
	lazycrate.reset_default_crate()


@pytest.fixture
def crate() -> Crate:
	return Crate(CrateConfig())
