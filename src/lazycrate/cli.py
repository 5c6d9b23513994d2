"""
Command-line interface for lazycrate.
Boxes JSON documents, unboxes encoded units and inspects them.
"""
# typer relies on function calls used as default values
# pyright: reportCallInDefaultInitializer=false

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.pretty import Pretty
from rich.table import Table

from lazycrate.compression import MARKER, is_compressed
from lazycrate.crate import Crate, CrateConfig
from lazycrate.errors import CrateError, error_chain
from lazycrate.version import __version__

cli = typer.Typer(
	name="lazycrate",
	help="lazycrate - box Python values into compact self-describing text",
	no_args_is_help=True,
)

console = Console()
err_console = Console(stderr=True)


def _read_input(source: Path | None) -> str:
	if source is None:
		return sys.stdin.read()
	return source.read_text(encoding="utf-8")


def _build_crate(threshold: int | None) -> Crate:
	config = CrateConfig.from_env()
	if threshold is not None:
		config = CrateConfig(
			compress_threshold=threshold,
			compress_level=config.compress_level,
			allow_builtins=config.allow_builtins,
			auto_register=config.auto_register,
		)
	return Crate(config)


def _fail(exc: CrateError) -> typer.Exit:
	for depth, link in enumerate(error_chain(exc)):
		prefix = "❌" if depth == 0 else "   caused by"
		err_console.print(f"{prefix} [bold]{type(link).__name__}[/bold]: {link}", highlight=False)
	return typer.Exit(1)


@cli.callback()
def _main(
	verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logs"),
):
	if verbose:
		logging.basicConfig(
			level=logging.DEBUG,
			format="%(message)s",
			handlers=[RichHandler(console=err_console, show_path=False)],
		)


@cli.command("box")
def box_command(
	source: Path | None = typer.Argument(None, help="JSON document to box (default: stdin)"),
	threshold: int | None = typer.Option(
		None, "--threshold", help="Compression threshold in bytes"
	),
):
	"""Box a JSON document and print the encoded unit."""
	raw = _read_input(source)
	try:
		document = json.loads(raw)
	except json.JSONDecodeError as exc:
		err_console.print(f"❌ Input is not valid JSON: {exc}")
		raise typer.Exit(1) from None
	crate = _build_crate(threshold)
	try:
		unit = crate.box(document)
	except CrateError as exc:
		raise _fail(exc) from None
	typer.echo(unit)


@cli.command("unbox")
def unbox_command(
	source: Path | None = typer.Argument(None, help="Encoded unit (default: stdin)"),
):
	"""Unbox an encoded unit and pretty-print the value."""
	unit = _read_input(source).strip()
	crate = _build_crate(None)
	try:
		value = crate.unbox(unit)
	except CrateError as exc:
		raise _fail(exc) from None
	console.print(Pretty(value))


@cli.command("inspect")
def inspect_command(
	source: Path | None = typer.Argument(None, help="Encoded unit (default: stdin)"),
):
	"""Show compression state, sizes and captured types of an encoded unit."""
	unit = _read_input(source).strip()
	crate = _build_crate(None)
	try:
		plain = crate.decompress(unit)
	except CrateError as exc:
		raise _fail(exc) from None
	try:
		document = json.loads(plain)
	except json.JSONDecodeError as exc:
		err_console.print(f"❌ Unit is not valid: {exc}")
		raise typer.Exit(1) from None

	table = Table(title="Encoded unit", show_header=False)
	table.add_column("Field", style="cyan")
	table.add_column("Value")
	table.add_row("Compressed", f"yes ({MARKER} marker)" if is_compressed(unit) else "no")
	table.add_row("Unit size", f"{len(unit.encode('utf-8'))} bytes")
	table.add_row("Plain size", f"{len(plain.encode('utf-8'))} bytes")
	types = document.get("types", []) if isinstance(document, dict) else []
	names = ", ".join(
		f"{t['name']} (hooks)" if t.get("hooks") else t["name"] for t in types
	)
	table.add_row("Types", names or "-")
	console.print(table)


@cli.command("version")
def version_command():
	"""Print the installed lazycrate version."""
	typer.echo(__version__)


def main():
	"""Main CLI entry point."""
	try:
		cli()
	except Exception:
		err_console.print_exception()
		raise typer.Exit(1) from None


if __name__ == "__main__":
	main()
