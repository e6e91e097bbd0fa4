"""almanac ingest — store an analyzed entry and apply it to the aggregates."""

from __future__ import annotations

import json
from datetime import UTC, datetime

import click

from .common import build_components, config_option, load_config


@click.command()
@click.argument("user_id")
@click.argument("entry_file", type=click.File("r"))
@click.option("--entry-id", default=None, help="Entry id (defaults to the document's 'id' field).")
@config_option
def ingest(user_id: str, entry_file, entry_id: str | None, config_file: str | None) -> None:
    """Ingest one analyzed entry document (JSON) for USER_ID."""
    from almanac.analytics.models import COMPLETE, EntryRecord
    from almanac.analytics.periods import to_utc
    from almanac.analytics.updater import IncrementalUpdater
    from almanac.core.utils.async_helpers import run_sync

    try:
        document = json.load(entry_file)
    except json.JSONDecodeError as e:
        raise click.BadParameter(f"not valid JSON: {e}", param_hint="ENTRY_FILE") from e
    if not isinstance(document, dict):
        raise click.BadParameter("expected a JSON object", param_hint="ENTRY_FILE")

    entry_id = entry_id or document.pop("id", None)
    if not entry_id:
        raise click.UsageError("Entry id missing: pass --entry-id or include an 'id' field.")

    created_at = document.get("created_at")
    if isinstance(created_at, str):
        document["created_at"] = to_utc(datetime.fromisoformat(created_at.replace("Z", "+00:00")))
    else:
        document["created_at"] = datetime.now(UTC)
    document.setdefault("analysis_status", COMPLETE)

    config = load_config(config_file)
    store, settings, paths = build_components(config)
    updater = IncrementalUpdater(store, settings=settings, paths=paths)
    entry = EntryRecord.from_document(str(entry_id), user_id, document)

    async def _ingest():
        await store.set(paths.entry(user_id, entry.id), document)
        return await updater.process_entry(entry)

    result = run_sync(_ingest())
    if result.already_processed:
        click.echo(f"Entry {entry.id} already processed.")
        return
    domains = ", ".join(result.domains) or "none"
    click.echo(f"Entry {entry.id}: domains={domains}, entities={result.entity_count}")
