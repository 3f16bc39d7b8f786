"""CLI command implementations"""

import asyncio
import logging
from typing import Annotated, Optional

import typer

from litpress.config import Settings, load_config
from litpress.core.errors import LitpressError
from litpress.core.pipeline import list_blocks, run_build, run_clean


def _fail(msg: str, cause: Exception = None) -> None:
    """Print a user-friendly error to stderr and exit 1."""
    typer.echo(f"Error: {msg}", err=True)
    if cause:
        typer.echo(f"  {cause}", err=True)
    raise typer.Exit(1)


def _settings(overrides: dict = None) -> Settings:
    """Load config with standard CLI error handling."""
    try:
        return load_config(overrides=overrides)
    except ValueError as e:
        _fail(str(e))


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
        force=True,
    )


def build_cmd(
    path: Annotated[Optional[str], typer.Argument(help="File or directory to build; defaults to content_dir")] = None,
    out: Annotated[Optional[str], typer.Option("--out-dir", help="Output directory")] = None,
    cache: Annotated[Optional[str], typer.Option("--cache-dir", help="Block cache directory")] = None,
    concurrency: Annotated[Optional[int], typer.Option("--concurrency", help="Documents built at once")] = None,
    dev: Annotated[bool, typer.Option("--dev", help="Development mode (drafts, stack traces)")] = False,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Debug logging")] = False,
    ):
    """Build HTML pages, block modules, and hydration loaders."""
    _configure_logging(verbose)
    settings = _settings(overrides={
        "output_dir": out, "cache_dir": cache,
        "build_concurrency": concurrency, "dev": dev or None,
    })
    source = path or settings.content_dir

    try:
        report = asyncio.run(run_build(source, settings))
    except (RuntimeError, LitpressError) as e:
        _fail(str(e))

    for doc in report.successful:
        typer.echo(f"  built: {doc}")
    for doc, err in report.failed.items():
        typer.echo(f"  failed: {doc}: {err}", err=True)
    typer.echo(
        f"Built {len(report.successful)} document(s) to {settings.output_dir}/ "
        f"({len(report.loaders)} hydration loader(s))"
    )
    if report.failed:
        raise typer.Exit(1)


def clean_cmd(
    doc: Annotated[Optional[str], typer.Option("--doc", help="Only remove entries for this document")] = None,
    ):
    """Remove cached block modules and execution records."""
    settings = _settings()
    try:
        removed = run_clean(settings, doc)
    except (OSError, LitpressError) as e:
        _fail("Clean failed", e)
    if doc:
        typer.echo(f"Removed {len(removed)} cache entr{'y' if len(removed) == 1 else 'ies'} for {doc}")
    else:
        typer.echo(f"Cache cleared: {settings.cache_dir}")


def blocks_cmd(
    path: Annotated[str, typer.Argument(help="Document to inspect")],
    ):
    """List a document's code blocks with their mode, name, and cache key."""
    settings = _settings()
    try:
        listings = list_blocks(path, settings)
    except (OSError, ValueError, LitpressError) as e:
        _fail(f"Cannot read {path}", e)
    if not listings:
        typer.echo("No code blocks found.")
        return
    for item in listings:
        b = item.block
        typer.echo(f"{b.index:>3}  {b.language or '-':<12} {item.mode:<12} {b.name or '-':<16} {item.cache_key or '-'}")
