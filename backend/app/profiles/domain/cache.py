"""Tag-partitioned Redis cache for merged university profiles.

Keys follow ``university:profile:{slug}:{tag}``. The ``canonical`` tag holds
the whole merged profile, each scalar tag holds its projection of the live
columns, and ``microcontent`` holds the ordered active soft blocks. Invalidating a
tag only deletes that tag's key.

Redis failures never fail a request: reads become misses, writes and deletes
are skipped with a warning.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Iterable

from redis.asyncio import Redis

from app.infra.redis import RedisProxy, redis_client
from app.obs import metrics
from app.profiles.domain.errors import ProfileNotFound, ProfileValidationError
from app.profiles.domain.models import MergedProfile
from app.profiles.domain.registry import (
    ALL_TAGS,
    SCALAR_TAGS,
    TAG_CANONICAL,
    TAG_MICROCONTENT,
    FieldRegistry,
)
from app.profiles.domain.repositories import BlockRepository, UniversityRepository

logger = logging.getLogger(__name__)

KEY_PREFIX = "university:profile:"
INDEX_KEY = f"{KEY_PREFIX}index"
DEFAULT_TTL_SECONDS = 3600


class ProfileCache:
    def __init__(
        self,
        universities: UniversityRepository,
        blocks: BlockRepository,
        registry: FieldRegistry,
        *,
        redis: Redis | RedisProxy | None = None,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
    ) -> None:
        self._universities = universities
        self._blocks = blocks
        self._registry = registry
        self.redis = redis or redis_client
        self.ttl_seconds = ttl_seconds
        # slug -> (lock, number of callers holding or awaiting it)
        self._locks: dict[str, tuple[asyncio.Lock, int]] = {}

    @staticmethod
    def key(slug: str, tag: str) -> str:
        return f"{KEY_PREFIX}{slug}:{tag}"

    @asynccontextmanager
    async def _singleflight(self, slug: str) -> AsyncIterator[None]:
        lock, users = self._locks.get(slug) or (asyncio.Lock(), 0)
        self._locks[slug] = (lock, users + 1)
        try:
            async with lock:
                yield
        finally:
            lock, users = self._locks[slug]
            if users <= 1:
                del self._locks[slug]
            else:
                self._locks[slug] = (lock, users - 1)

    async def _read(self, slug: str, tag: str) -> Any | None:
        key = self.key(slug, tag)
        try:
            raw = await self.redis.get(key)
        except Exception:
            metrics.inc_cache_degraded("read")
            logger.warning("profile_cache_read_failed", extra={"slug": slug, "tag": tag}, exc_info=True)
            return None
        if not raw:
            return None
        try:
            return json.loads(raw.decode("utf-8") if isinstance(raw, bytes) else raw)
        except (json.JSONDecodeError, UnicodeDecodeError):
            await self._delete_keys([key])
            return None

    async def _write(self, slug: str, tag: str, value: Any) -> None:
        try:
            await self.redis.set(self.key(slug, tag), json.dumps(value, separators=(",", ":")), ex=self.ttl_seconds)
            await self.redis.sadd(INDEX_KEY, slug)
        except Exception:
            metrics.inc_cache_degraded("write")
            logger.warning("profile_cache_write_failed", extra={"slug": slug, "tag": tag}, exc_info=True)

    async def _delete_keys(self, keys: list[str]) -> None:
        if not keys:
            return
        try:
            await self.redis.delete(*keys)
        except Exception:
            metrics.inc_cache_degraded("delete")
            logger.warning("profile_cache_delete_failed", extra={"keys": len(keys)}, exc_info=True)

    async def _build(self, slug: str) -> MergedProfile:
        start = time.perf_counter()
        university, blocks = await asyncio.gather(
            self._universities.get_by_slug(slug),
            self._blocks.list_active_for_slug(slug),
        )
        if university is None:
            raise ProfileNotFound("university", slug)
        profile = MergedProfile(
            university=university.snapshot(),
            blocks=[block.to_dict() for block in blocks if block.university_id == university.id],
        )
        metrics.observe_cache_build(time.perf_counter() - start)
        return profile

    async def get_profile(self, slug: str) -> MergedProfile:
        cached = await self._read(slug, TAG_CANONICAL)
        if cached is not None:
            metrics.inc_cache_hit(TAG_CANONICAL)
            return MergedProfile.from_dict(cached)
        metrics.inc_cache_miss(TAG_CANONICAL)
        async with self._singleflight(slug):
            cached = await self._read(slug, TAG_CANONICAL)
            if cached is not None:
                return MergedProfile.from_dict(cached)
            profile = await self._build(slug)
            await self._write(slug, TAG_CANONICAL, profile.to_dict())
            return profile

    def _project(self, profile: MergedProfile, tag: str) -> dict[str, Any]:
        if tag == TAG_MICROCONTENT:
            # Hard blocks change together with live fields and are served from canonical.
            return {"blocks": [block for block in profile.blocks if not block.get("is_hard")]}
        names = sorted(self._registry.fields_for_tag(tag))
        return {name: profile.university.get(name) for name in names}

    async def get_partition(self, slug: str, tag: str) -> dict[str, Any]:
        if tag == TAG_CANONICAL:
            return (await self.get_profile(slug)).to_dict()
        if tag not in SCALAR_TAGS and tag != TAG_MICROCONTENT:
            raise ProfileValidationError.for_field("tag", f"unknown cache tag {tag!r}")
        cached = await self._read(slug, tag)
        if cached is not None:
            metrics.inc_cache_hit(tag)
            return cached
        metrics.inc_cache_miss(tag)
        partition = self._project(await self.get_profile(slug), tag)
        await self._write(slug, tag, partition)
        return partition

    def tags_for_change(self, changed_live_fields: Iterable[str]) -> set[str]:
        changed = set(changed_live_fields)
        tags = self._registry.tags_for(changed)
        tags.add(TAG_CANONICAL)
        if not changed:
            tags.add(TAG_MICROCONTENT)
        return tags

    async def invalidate(self, slug: str, changed_live_fields: Iterable[str]) -> set[str]:
        tags = self.tags_for_change(changed_live_fields)
        await self._delete_keys([self.key(slug, tag) for tag in sorted(tags)])
        metrics.inc_cache_invalidations(tags)
        logger.info("profile_cache_invalidated", extra={"slug": slug, "tags": sorted(tags)})
        return tags

    async def invalidate_many(self, slugs: Iterable[str]) -> int:
        unique = sorted(set(slugs))
        await self._delete_keys([self.key(slug, tag) for slug in unique for tag in ALL_TAGS])
        for _ in unique:
            metrics.inc_cache_invalidations(ALL_TAGS)
        if unique:
            logger.info("profile_cache_invalidated_many", extra={"count": len(unique)})
        return len(unique)

    async def _indexed_slugs(self) -> set[str]:
        try:
            members = await self.redis.smembers(INDEX_KEY)
        except Exception:
            metrics.inc_cache_degraded("read")
            logger.warning("profile_cache_index_read_failed", exc_info=True)
            return set()
        return {m.decode("utf-8") if isinstance(m, bytes) else str(m) for m in members or ()}

    async def invalidate_all(self) -> int:
        slugs = await self._indexed_slugs()
        count = await self.invalidate_many(slugs)
        await self._delete_keys([INDEX_KEY])
        return count

    async def prune_index(self) -> int:
        """Drop indexed slugs whose cache entries have all expired."""
        removed = 0
        for slug in sorted(await self._indexed_slugs()):
            try:
                alive = await self.redis.exists(*[self.key(slug, tag) for tag in ALL_TAGS])
                if not alive:
                    await self.redis.srem(INDEX_KEY, slug)
                    removed += 1
            except Exception:
                metrics.inc_cache_degraded("sweep")
                logger.warning("profile_cache_sweep_failed", extra={"slug": slug}, exc_info=True)
                break
        metrics.inc_cache_index_pruned(removed)
        return removed
