"""almanac serve — run the reconciliation sweep on its cron schedule."""

from __future__ import annotations

import asyncio

import click

from .common import build_components, config_option, load_config


@click.command()
@config_option
def serve(config_file: str | None) -> None:
    """Start the scheduler that runs periodic rollups."""
    config = load_config(config_file)
    if not config.validated().scheduler.enabled:
        raise click.ClickException(
            "Scheduler is disabled; set scheduler.enabled: true in the config "
            "or ALMANAC_SCHEDULER__ENABLED=true."
        )
    cron = config.get("scheduler.cron") or {"minute": 0}
    click.echo(f"Starting rollup scheduler (cron={cron}).")
    click.echo("Press Ctrl+C to stop.\n")
    try:
        asyncio.run(_serve(config))
    except KeyboardInterrupt:
        click.echo("Stopped.")


async def _serve(config) -> None:
    from almanac.analytics.rollup import ReconciliationJob
    from almanac.scheduler import RollupScheduler

    store, settings, paths = build_components(config)
    scheduler = RollupScheduler.from_config(ReconciliationJob(store, settings=settings, paths=paths), config)
    scheduler.start()
    try:
        await asyncio.Event().wait()
    finally:
        scheduler.shutdown()
