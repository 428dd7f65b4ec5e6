"""Command-line interface for Blossom.

This module defines the CLI commands using Click framework.

Commands:
- build: Build the site into the output directory, optionally watching for
  changes.
"""

from __future__ import annotations

import functools
import logging
from pathlib import Path

import click

from . import __version__
from .build import BuildError, BuildResult, build_site
from .config import ConfigError, load_config


@click.group()
@click.version_option(version=__version__, prog_name="blossom")
def cli():
    """Blossom static site generator."""


@cli.command()
@click.option("--drafts", is_flag=True, help="Include draft notes")
@click.option("--future", is_flag=True, help="Include notes dated in the future")
@click.option("--strict-links", is_flag=True, help="Exit non-zero on broken internal links")
@click.option("--base", "base_path", default=None, help="Base path prefix, e.g. /myrepo")
@click.option("--site-url", default=None, help="Canonical origin, e.g. https://example.com")
@click.option("--full", is_flag=True, help="Ignore the manifest and rebuild everything")
@click.option("--watch", is_flag=True, help="Rebuild when sources change")
@click.option("-v", "--verbose", is_flag=True, help="Log every build decision")
def build(
    drafts: bool,
    future: bool,
    strict_links: bool,
    base_path: str | None,
    site_url: str | None,
    full: bool,
    watch: bool,
    verbose: bool,
):
    """Build the site into the output directory."""
    _configure_logging(verbose)
    project_root = Path.cwd()
    run = functools.partial(
        build_site,
        project_root,
        include_drafts=drafts,
        include_future=future,
        strict_links=strict_links,
        base_path=base_path,
        site_url=site_url,
    )

    try:
        result = run(full=full)
    except BuildError as exc:
        _report_build_error(project_root, exc)
        raise SystemExit(1) from None
    except ConfigError as exc:
        click.echo(click.style("Build failed:", fg="red", bold=True), err=True)
        click.echo(click.style(f"  Error: {exc}", fg="white"), err=True)
        raise SystemExit(1) from None
    _report_result(result)

    if watch:
        from .watch import SiteWatcher

        config = load_config(project_root, base_path=base_path, site_url=site_url)
        watcher = SiteWatcher(
            project_root,
            lambda: _report_result(run()),
            source_dirs=[config.notes_path, config.public_path, config.css_path, config.js_path],
            ignored=[config.output_path, config.manifest_path],
        )
        click.echo("Watching for changes (Ctrl+C to stop)")
        watcher.serve_forever()
        return

    if strict_links and result.broken_links:
        click.echo(
            click.style(
                f"{len(result.broken_links)} broken internal links (strict mode)",
                fg="red",
                bold=True,
            ),
            err=True,
        )
        raise SystemExit(1)


def _report_result(result: BuildResult) -> None:
    click.echo(
        f"Built {len(result.documents)} posts into {result.output_dir} "
        f"({len(result.rendered)} rendered, {len(result.reused)} reused)"
    )
    for link in result.broken_links:
        click.echo(click.style(f"  Broken link: {link}", fg="yellow"), err=True)


def _report_build_error(project_root: Path, exc: BuildError) -> None:
    try:
        rel_path = exc.source_path.relative_to(project_root)
    except ValueError:
        rel_path = exc.source_path
    click.echo(click.style("Build failed:", fg="red", bold=True), err=True)
    click.echo(click.style(f"  File: {rel_path}", fg="yellow"), err=True)
    click.echo(click.style(f"  Error: {exc.message}", fg="white"), err=True)


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )


def main():
    """Entry point for the CLI application."""
    cli()
