"""Shared setup logic for CLI commands."""

from __future__ import annotations

import click

config_option = click.option(
    "--config",
    "config_file",
    type=click.Path(exists=True, dir_okay=False),
    default=None,
    help="YAML or JSON config file.",
)


def load_config(config_file: str | None):
    """Load config; the CLI persists aggregates on disk unless told otherwise."""
    from almanac.core.config import Config
    from almanac.core.utils.logging import setup_logging_from_config

    config = Config(config_file=config_file, defaults={"store": {"backend": "local"}})
    setup_logging_from_config(config)
    return config


def build_components(config):
    """Return ``(store, settings, paths)`` for a loaded config."""
    from almanac.analytics.paths import AnalyticsPaths
    from almanac.core.storage import create_store

    validated = config.validated()
    return create_store(config), validated.analytics, AnalyticsPaths(root=validated.store.root)
