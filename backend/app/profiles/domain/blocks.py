"""Persistence rules for content blocks.

Hard blocks are written only through the canonical path and can never be
duplicated or bulk deleted. Every mutation here checks all of its targets
before touching storage, so a rejected request leaves nothing half applied.
"""

from __future__ import annotations

import copy
import logging
from datetime import datetime, timezone
from typing import Any, Iterable, Mapping, Optional, Sequence
from uuid import uuid4

from app.obs import metrics
from app.profiles.domain.cache import ProfileCache
from app.profiles.domain.derivation import DerivationLookups, enrich_soft_media
from app.profiles.domain.errors import BlockPermissionDenied, ProfileNotFound, ProfileValidationError
from app.profiles.domain.models import ContentBlock
from app.profiles.domain.payloads import BlockContent, parse_content
from app.profiles.domain.registry import FieldRegistry
from app.profiles.domain.repositories import BlockRepository, TemplateRepository, UniversityRepository

logger = logging.getLogger(__name__)

COPY_PREFIX = "[COPY] "
ARCHIVED_PREFIX = "[ARCHIVED] "
DEFAULT_COPY_PRIORITY = 999
EXPIRING_BLOCK_TYPES = ("announcement_banner",)
MAX_TITLE_LENGTH = 255


def _default_title(block_type: str) -> str:
    return block_type.replace("_", " ").title()


def _parse_expiry(raw: Any) -> Optional[datetime]:
    if not raw:
        return None
    try:
        parsed = datetime.fromisoformat(str(raw).replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class BlockStore:
    def __init__(
        self,
        blocks: BlockRepository,
        templates: TemplateRepository,
        universities: UniversityRepository,
        registry: FieldRegistry,
        cache: ProfileCache,
        *,
        lookups: DerivationLookups,
        copy_priority: int = DEFAULT_COPY_PRIORITY,
    ) -> None:
        self._blocks = blocks
        self._templates = templates
        self._universities = universities
        self._registry = registry
        self._cache = cache
        self._lookups = lookups
        self._copy_priority = copy_priority

    def _is_hard(self, block: ContentBlock) -> bool:
        return block.is_hard or self._registry.is_hard_block_type(block.block_type)

    async def _require_slug(self, university_id: str) -> str:
        slugs = await self._universities.slugs_for_ids([university_id])
        if university_id not in slugs:
            raise ProfileNotFound("university", university_id)
        return slugs[university_id]

    async def _existing(self, block_id: str, university_id: str) -> ContentBlock:
        existing = await self._blocks.get(block_id)
        if existing is None:
            raise ProfileNotFound("block", block_id)
        if existing.university_id != university_id:
            raise BlockPermissionDenied("block belongs to another university", block_ids=[block_id])
        return existing

    async def apply_template(
        self,
        block_type: str,
        title: str,
        raw_data: Mapping[str, Any],
        template_id: str,
    ) -> tuple[str, str, dict[str, Any]]:
        """Seed type, data and title from a shared template."""
        template = await self._templates.get(template_id)
        if template is None:
            raise ProfileNotFound("template", template_id)
        seeded = copy.deepcopy(template.data)
        seeded.update(raw_data)
        return template.block_type, title.strip() or template.name, seeded

    async def upsert_block(
        self,
        *,
        block_type: str,
        university_id: str,
        title: str,
        raw_data: Mapping[str, Any],
        priority: int = 0,
        existing_id: Optional[str] = None,
        template_id: Optional[str] = None,
        content: Optional[BlockContent] = None,
    ) -> ContentBlock:
        """Create or update a soft block.

        Template seeding is the caller's job; ``template_id`` is only recorded.
        """
        if self._registry.is_hard_block_type(block_type):
            metrics.inc_block_rejection("hard_via_soft_path")
            raise BlockPermissionDenied(f"{block_type} blocks must be saved through the canonical path")

        await self._require_slug(university_id)
        existing = await self._existing(existing_id, university_id) if existing_id else None
        if existing is not None and self._is_hard(existing):
            metrics.inc_block_rejection("hard_via_soft_path")
            raise BlockPermissionDenied("hard blocks must be saved through the canonical path", block_ids=[existing.id])

        if content is None:
            content = parse_content(block_type, raw_data)
        data = await enrich_soft_media(content, dict(raw_data), self._lookups)
        block = ContentBlock(
            id=existing.id if existing else str(uuid4()),
            university_id=university_id,
            block_type=block_type,
            title=(title.strip() or _default_title(block_type))[:MAX_TITLE_LENGTH],
            raw_data=data,
            priority=priority,
            is_active=existing.is_active if existing else True,
            is_hard=False,
            is_canonical=False,
            canonical_mapping=None,
            template_id=template_id or (existing.template_id if existing else None),
        )
        saved = await self._blocks.save(block)
        metrics.inc_block_mutation("update" if existing else "create")
        return saved

    async def check_hard_target(
        self, block_type: str, university_id: str, existing_id: Optional[str]
    ) -> Optional[ContentBlock]:
        """Reject a hard save that could not be persisted, before anything is written."""
        if not self._registry.is_hard_block_type(block_type):
            raise BlockPermissionDenied(f"{block_type} is not a hard block type")
        existing = await self._existing(existing_id, university_id) if existing_id else None
        if existing is not None and existing.block_type != block_type:
            raise ProfileValidationError.for_field("block_type", "block type of an existing block cannot change")
        return existing

    async def save_hard_block(
        self,
        *,
        block_type: str,
        university_id: str,
        title: str,
        raw_data: Mapping[str, Any],
        priority: int = 0,
        existing_id: Optional[str] = None,
        template_id: Optional[str] = None,
    ) -> ContentBlock:
        """Persist the raw, un-derived payload of a hard block."""
        existing = await self.check_hard_target(block_type, university_id, existing_id)
        is_canonical = self._registry.is_canonical_block_type(block_type)
        block = ContentBlock(
            id=existing.id if existing else str(uuid4()),
            university_id=university_id,
            block_type=block_type,
            title=(title.strip() or _default_title(block_type))[:MAX_TITLE_LENGTH],
            raw_data=dict(raw_data),
            priority=priority,
            is_active=True,
            is_hard=True,
            is_canonical=is_canonical,
            canonical_mapping=block_type if is_canonical else None,
            template_id=template_id or (existing.template_id if existing else None),
        )
        saved = await self._blocks.save(block)
        metrics.inc_block_mutation("update" if existing else "create")
        return saved

    async def duplicate_to_universities(
        self,
        source_block_id: str,
        target_university_ids: Sequence[str],
    ) -> list[ContentBlock]:
        source = await self._blocks.get(source_block_id)
        if source is None:
            raise ProfileNotFound("block", source_block_id)
        if self._is_hard(source):
            metrics.inc_block_rejection("duplicate_hard")
            raise BlockPermissionDenied("hard blocks cannot be duplicated", block_ids=[source.id])
        targets = list(dict.fromkeys(target_university_ids))
        if not targets:
            raise ProfileValidationError.for_field("target_university_ids", "at least one target is required")
        slugs = await self._universities.slugs_for_ids(targets)
        missing = [target for target in targets if target not in slugs]
        if missing:
            raise ProfileNotFound("university", ", ".join(missing))

        copies = [
            ContentBlock(
                id=str(uuid4()),
                university_id=target,
                block_type=source.block_type,
                title=f"{COPY_PREFIX}{source.title}"[:MAX_TITLE_LENGTH],
                raw_data=copy.deepcopy(source.raw_data),
                priority=self._copy_priority,
                is_active=True,
                is_hard=False,
                is_canonical=False,
                canonical_mapping=None,
                template_id=source.template_id,
            )
            for target in targets
        ]
        created = await self._blocks.create_many(copies)
        for slug in sorted(set(slugs.values())):
            await self._cache.invalidate(slug, ())
        metrics.inc_block_mutation("duplicate", len(created))
        logger.info("blocks_duplicated", extra={"source_block_id": source.id, "targets": len(created)})
        return created

    async def bulk_delete(self, block_ids: Sequence[str]) -> int:
        ids = list(dict.fromkeys(block_ids))
        if not ids:
            return 0
        blocks = await self._blocks.get_many(ids)
        found = {block.id for block in blocks}
        missing = [block_id for block_id in ids if block_id not in found]
        if missing:
            raise ProfileNotFound("block", ", ".join(missing))
        hard = [block.id for block in blocks if self._is_hard(block)]
        if hard:
            metrics.inc_block_rejection("delete_hard")
            raise BlockPermissionDenied("hard blocks cannot be deleted", block_ids=hard)

        deleted = await self._blocks.delete_many(ids)
        slugs = await self._universities.slugs_for_ids({block.university_id for block in blocks})
        for slug in sorted(set(slugs.values())):
            await self._cache.invalidate(slug, ())
        metrics.inc_block_mutation("delete", deleted)
        logger.info("blocks_deleted", extra={"count": deleted})
        return deleted

    async def reorder(self, university_id: str, priorities: Mapping[str, int]) -> list[ContentBlock]:
        slug = await self._require_slug(university_id)
        if not priorities:
            return await self._blocks.list_for_university(university_id, include_inactive=True)
        blocks = await self._blocks.get_many(list(priorities))
        owned = {block.id for block in blocks if block.university_id == university_id}
        foreign = [block_id for block_id in priorities if block_id not in owned]
        if foreign:
            raise ProfileNotFound("block", ", ".join(foreign))
        updated = await self._blocks.update_priorities(university_id, dict(priorities))
        await self._cache.invalidate(slug, ())
        metrics.inc_block_mutation("reorder", len(priorities))
        return updated

    async def list_blocks(self, university_id: str, *, include_inactive: bool = False) -> list[ContentBlock]:
        await self._require_slug(university_id)
        return await self._blocks.list_for_university(university_id, include_inactive=include_inactive)

    async def archive_expired(self, *, now: Optional[datetime] = None, block_types: Iterable[str] = EXPIRING_BLOCK_TYPES) -> int:
        """Deactivate soft blocks whose ``expires_at`` has passed."""
        now = now or datetime.now(timezone.utc)
        affected: set[str] = set()
        archived = 0
        for block in await self._blocks.list_active_by_types(block_types):
            if self._is_hard(block):
                continue
            expires_at = _parse_expiry(block.raw_data.get("expiresAt") or block.raw_data.get("expires_at"))
            if expires_at is None or expires_at >= now:
                continue
            block.is_active = False
            if not block.title.startswith(ARCHIVED_PREFIX):
                block.title = f"{ARCHIVED_PREFIX}{block.title}"[:MAX_TITLE_LENGTH]
            await self._blocks.save(block)
            affected.add(block.university_id)
            archived += 1
        if affected:
            slugs = await self._universities.slugs_for_ids(affected)
            for slug in sorted(set(slugs.values())):
                await self._cache.invalidate(slug, ())
        metrics.inc_block_mutation("archive", archived)
        return archived
