"""Utilities for wiring profile background jobs into an event loop."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable, Iterable, Optional

from app.obs import logging as obs_logging
from app.obs import metrics
from app.profiles.domain.container import get_block_store, get_profile_cache
from app.profiles.jobs import archive_expired, cache_sweeper

logger = logging.getLogger(__name__)


async def _run_forever(name: str, job: Callable[[], Awaitable[int]], delay: float) -> None:
    # Each task runs in its own context copy, so the binding stays with this job.
    obs_logging.bind_context(job=name)
    while True:
        start = time.perf_counter()
        try:
            await job()
        except asyncio.CancelledError:
            raise
        except Exception:
            metrics.record_job_run(name, result="error")
            logger.exception("profile_job_failed")
        else:
            metrics.record_job_run(name, result="ok", duration_seconds=time.perf_counter() - start)
        await asyncio.sleep(delay)


def spawn_jobs(
    *,
    sweep_interval: float,
    archive_interval: float,
    loop: Optional[asyncio.AbstractEventLoop] = None,
) -> Iterable[asyncio.Task]:
    """Create asyncio tasks for the cache index sweeper and the expiry archiver."""
    event_loop = loop or asyncio.get_event_loop()
    return [
        event_loop.create_task(
            _run_forever("profile_cache_sweep", lambda: cache_sweeper.run(get_profile_cache()), sweep_interval),
            name="profiles-cache-sweeper",
        ),
        event_loop.create_task(
            _run_forever("profile_archive_expired", lambda: archive_expired.run(get_block_store()), archive_interval),
            name="profiles-archive-expired",
        ),
    ]
