"""Drop expired slugs from the profile cache index."""

from __future__ import annotations

import logging

from app.profiles.domain.cache import ProfileCache

logger = logging.getLogger(__name__)


async def run(cache: ProfileCache) -> int:
    """Prune index entries whose tag keys have all expired."""
    pruned = await cache.prune_index()
    if pruned:
        logger.info("profile_cache_index_pruned", extra={"pruned": pruned})
    return pruned
