"""Deactivate soft blocks whose expiry date has passed."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from app.profiles.domain.blocks import BlockStore

logger = logging.getLogger(__name__)


async def run(store: BlockStore, *, now: datetime | None = None) -> int:
    now = now or datetime.now(timezone.utc)
    archived = await store.archive_expired(now=now)
    if archived:
        logger.info("expired_blocks_archived", extra={"archived": archived})
    return archived
