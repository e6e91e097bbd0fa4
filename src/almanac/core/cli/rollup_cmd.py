"""almanac rollup — run one reconciliation sweep."""

from __future__ import annotations

import sys

import click

from .common import build_components, config_option, load_config


@click.command()
@config_option
def rollup(config_file: str | None) -> None:
    """Reconcile and decay aggregates for recently active users."""
    from almanac.analytics.rollup import ReconciliationJob
    from almanac.core.utils.async_helpers import run_sync

    config = load_config(config_file)
    store, settings, paths = build_components(config)
    result = run_sync(ReconciliationJob(store, settings=settings, paths=paths).run())

    click.echo(
        f"Rollup complete: {result.users_processed} processed, "
        f"{result.users_skipped} skipped, {len(result.users_failed)} failed"
    )
    for user_result in result.results:
        click.echo(
            f"  {user_result.user_id}: stats_reconciled={user_result.stats_reconciled} "
            f"decayed={user_result.coverage_decayed} refreshed={user_result.entities_refreshed} "
            f"pruned={user_result.entities_pruned}"
        )
    if result.users_failed:
        click.echo(f"Failed users: {', '.join(result.users_failed)}", err=True)
        sys.exit(1)
