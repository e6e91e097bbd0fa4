"""Almanac CLI — entry point for ingest, rollup, show, and serve commands."""

import click

from almanac import __version__


@click.group()
@click.version_option(version=__version__, package_name="almanac")
def main() -> None:
    """Almanac — behavioral analytics for your journal."""


# Subcommands import analytics and storage only when invoked
from .ingest_cmd import ingest
from .rollup_cmd import rollup
from .serve_cmd import serve
from .show_cmd import show

main.add_command(ingest)
main.add_command(rollup)
main.add_command(show)
main.add_command(serve)
