"""Entry points used by the HTTP layer and background jobs."""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional, Sequence

from app.profiles.domain.blocks import BlockStore
from app.profiles.domain.cache import ProfileCache
from app.profiles.domain.derivation import DerivationLookups, derive
from app.profiles.domain.drafts import DraftReviewService
from app.profiles.domain.dual_write import DualWriteCoordinator
from app.profiles.domain.errors import ProfileNotFound
from app.profiles.domain.models import (
    BlockSubmissionResult,
    ContentBlock,
    Editor,
    FieldChangeRecord,
    MergedProfile,
)
from app.profiles.domain.payloads import parse_content, validate_submission
from app.profiles.domain.registry import FieldRegistry
from app.profiles.domain.repositories import UniversityRepository

logger = logging.getLogger(__name__)


class ProfileService:
    def __init__(
        self,
        *,
        universities: UniversityRepository,
        registry: FieldRegistry,
        cache: ProfileCache,
        store: BlockStore,
        coordinator: DualWriteCoordinator,
        drafts: DraftReviewService,
        lookups: DerivationLookups,
    ) -> None:
        self._universities = universities
        self._registry = registry
        self._cache = cache
        self._store = store
        self._coordinator = coordinator
        self._drafts = drafts
        self._lookups = lookups

    @property
    def cache(self) -> ProfileCache:
        return self._cache

    @property
    def store(self) -> BlockStore:
        return self._store

    async def submit_block(self, payload: Mapping[str, Any], editor: Editor) -> BlockSubmissionResult:
        """Validate, derive, dual-write, persist and invalidate one block save.

        Validation happens before anything is written, so an invalid payload
        leaves the university row, the block table and the cache untouched.
        """
        submission = validate_submission(payload)
        block_type = submission.block_type
        title = submission.title
        data: dict[str, Any] = dict(submission.data)
        if submission.template_id and submission.id is None:
            block_type, title, data = await self._store.apply_template(
                block_type, title, data, submission.template_id
            )
        content = parse_content(block_type, data)

        university = await self._universities.get_by_id(submission.university_id)
        if university is None:
            raise ProfileNotFound("university", submission.university_id)

        if not self._registry.is_hard_block_type(block_type):
            block = await self._store.upsert_block(
                block_type=block_type,
                university_id=university.id,
                title=title,
                raw_data=data,
                priority=submission.priority,
                existing_id=submission.id,
                template_id=submission.template_id,
                content=content,
            )
            tags = await self._cache.invalidate(university.slug, ())
            return BlockSubmissionResult(block=block, invalidated_tags=frozenset(tags))

        await self._store.check_hard_target(block_type, university.id, submission.id)
        write = None
        if self._registry.is_canonical_block_type(block_type):
            derived = await derive(content, self._lookups)
            write = await self._coordinator.apply(
                block_type=block_type,
                university_id=university.id,
                derived=derived,
                editor=editor,
                source_title=title or block_type,
            )
        block = await self._store.save_hard_block(
            block_type=block_type,
            university_id=university.id,
            title=title,
            raw_data=data,
            priority=submission.priority,
            existing_id=submission.id,
            template_id=submission.template_id,
        )

        live_fields = write.live_fields if write else frozenset()
        slug = write.university.slug if write else university.slug
        tags = await self._cache.invalidate(slug, live_fields)
        if write is not None and write.previous_slug and write.previous_slug != slug:
            # Every partition of the old slug is orphaned, not just the changed tags.
            await self._cache.invalidate_many([write.previous_slug])
            logger.info("profile_slug_changed", extra={"old_slug": write.previous_slug, "new_slug": slug})
        logger.info(
            "block_submitted",
            extra={
                "block_id": block.id,
                "block_type": block_type,
                "university_id": university.id,
                "privileged": editor.privileged,
            },
        )
        return BlockSubmissionResult(block=block, write=write, invalidated_tags=frozenset(tags))

    async def get_merged_profile(self, slug: str) -> MergedProfile:
        return await self._cache.get_profile(slug)

    async def get_profile_partition(self, slug: str, tag: str) -> dict[str, Any]:
        return await self._cache.get_partition(slug, tag)

    async def duplicate_block(self, source_block_id: str, target_university_ids: Sequence[str]) -> list[ContentBlock]:
        return await self._store.duplicate_to_universities(source_block_id, target_university_ids)

    async def bulk_delete_blocks(self, block_ids: Sequence[str]) -> int:
        return await self._store.bulk_delete(block_ids)

    async def reorder_blocks(self, university_id: str, priorities: Mapping[str, int]) -> list[ContentBlock]:
        return await self._store.reorder(university_id, priorities)

    async def list_blocks(self, university_id: str, *, include_inactive: bool = False) -> list[ContentBlock]:
        return await self._store.list_blocks(university_id, include_inactive=include_inactive)

    async def pending_drafts(self, university_id: str) -> dict[str, Any]:
        return await self._drafts.pending(university_id)

    async def approve_draft(
        self,
        university_id: str,
        field_name: str,
        *,
        reviewer_id: Optional[str] = None,
        expected_old_value: Any = None,
    ) -> FieldChangeRecord:
        return await self._drafts.approve(
            university_id, field_name, reviewer_id=reviewer_id, expected_old_value=expected_old_value
        )

    async def reject_draft(
        self, university_id: str, field_name: str, *, reviewer_id: Optional[str] = None
    ) -> FieldChangeRecord:
        return await self._drafts.reject(university_id, field_name, reviewer_id=reviewer_id)
