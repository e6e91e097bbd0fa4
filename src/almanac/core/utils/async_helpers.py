"""Bridge from synchronous callers (the CLI) into the async analytics API."""

import asyncio
from collections.abc import Coroutine
from concurrent.futures import ThreadPoolExecutor
from typing import Any, TypeVar

T = TypeVar("T")


def run_sync(coro: Coroutine[Any, Any, T]) -> T:
    """Run ``coro`` to completion and return its result.

    Inside an already running loop (notebooks, async test harnesses) the
    coroutine gets a fresh loop on a worker thread, since loops cannot nest.
    """
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(coro)
    with ThreadPoolExecutor(max_workers=1, thread_name_prefix="almanac-sync") as pool:
        return pool.submit(asyncio.run, coro).result()
