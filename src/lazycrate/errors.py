from __future__ import annotations

import traceback


class CrateError(Exception):
	"""Base class for every failure raised by lazycrate."""


class SerializeError(CrateError):
	"""An encoder failed while turning a value into a node."""


class NotSupportedError(CrateError):
	"""A recognized kind that is intentionally left without an encoder."""


class DeserializeError(CrateError):
	"""Reconstructing a value from an encoded unit failed."""


class BoxError(CrateError):
	"""Outward failure of a box call. The inner failure is its ``__cause__``."""


class UnboxError(CrateError):
	"""Outward failure of an unbox call. The inner failure is its ``__cause__``."""


def format_stack(exc: BaseException) -> str:
	return "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))


def error_chain(exc: BaseException) -> list[BaseException]:
	"""Walk ``__cause__`` links starting at ``exc``."""
	chain: list[BaseException] = []
	current: BaseException | None = exc
	while current is not None and current not in chain:
		chain.append(current)
		current = current.__cause__
	return chain


__all__ = [
	"BoxError",
	"CrateError",
	"DeserializeError",
	"NotSupportedError",
	"SerializeError",
	"UnboxError",
	"error_chain",
	"format_stack",
]
