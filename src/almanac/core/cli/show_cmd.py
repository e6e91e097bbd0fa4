"""almanac show — print a user's coverage, weekly stats and top entities."""

from __future__ import annotations

from datetime import UTC, datetime

import click

from .common import build_components, config_option, load_config


@click.command()
@click.argument("user_id")
@click.option("--entities", "entity_limit", default=5, show_default=True, help="Number of entities to list.")
@config_option
def show(user_id: str, entity_limit: int, config_file: str | None) -> None:
    """Show analytics for USER_ID."""
    from almanac.analytics.periods import Cadence, period_key
    from almanac.analytics.reader import AnalyticsReader
    from almanac.core.utils.async_helpers import run_sync

    config = load_config(config_file)
    store, _settings, paths = build_components(config)
    reader = AnalyticsReader(store, paths=paths)
    key = period_key(datetime.now(UTC), Cadence.WEEKLY)

    async def _load():
        return (
            await reader.coverage(user_id),
            await reader.period_stats(user_id, key),
            await reader.entities(user_id, limit=entity_limit),
        )

    coverage, stats, entities = run_sync(_load())

    click.echo("Life-domain coverage:")
    for domain, score in sorted(coverage.scores().items(), key=lambda kv: kv[1], reverse=True):
        click.echo(f"  {domain:<16} {score:6.1%}  (weight {coverage.domains[domain].raw_weight:.3f})")

    click.echo(f"\n{key}:")
    if stats is None:
        click.echo("  insufficient data")
    else:
        mood = f"{stats.mood_mean:.2f}" if stats.mood_mean is not None else "n/a"
        click.echo(f"  entries={stats.entry_count} mood_mean={mood} ({stats.mood_count} scored)")

    if entities:
        click.echo("\nEntities:")
        for entity_id, entity in entities:
            click.echo(
                f"  {entity.name or entity_id:<20} mentions={entity.mention_count} recency={entity.recency_score:.2f}"
            )
