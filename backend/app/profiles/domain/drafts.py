"""Review of staged canonical values awaiting approval."""

from __future__ import annotations

import logging
from typing import Any

from app.obs import metrics
from app.profiles.domain.cache import ProfileCache
from app.profiles.domain.errors import ProfileNotFound, ProfileValidationError
from app.profiles.domain.models import FieldChangeRecord, University, values_equal
from app.profiles.domain.registry import FieldRegistry
from app.profiles.domain.repositories import UniversityRepository

logger = logging.getLogger(__name__)


class DraftReviewService:
    def __init__(self, universities: UniversityRepository, registry: FieldRegistry, cache: ProfileCache) -> None:
        self._universities = universities
        self._registry = registry
        self._cache = cache

    async def _pending(self, university_id: str, field_name: str) -> tuple[University, Any]:
        if not self._registry.requires_staging(field_name):
            raise ProfileValidationError.for_field("field", f"{field_name} is not a staged field")
        university = await self._universities.get_by_id(university_id)
        if university is None:
            raise ProfileNotFound("university", university_id)
        value = university.drafts.get(field_name)
        if value is None:
            raise ProfileNotFound("draft", field_name)
        return university, value

    async def pending(self, university_id: str) -> dict[str, Any]:
        university = await self._universities.get_by_id(university_id)
        if university is None:
            raise ProfileNotFound("university", university_id)
        return {name: value for name, value in university.drafts.items() if value is not None}

    async def approve(
        self,
        university_id: str,
        field_name: str,
        *,
        reviewer_id: str | None = None,
        expected_old_value: Any = None,
    ) -> FieldChangeRecord:
        """Promote a draft to the live column and clear the draft.

        The returned record carries the live value read now, not the one the
        change record was raised against.
        """
        university, value = await self._pending(university_id, field_name)
        current = university.live_value(field_name)
        if expected_old_value is not None and not values_equal(expected_old_value, current):
            logger.info(
                "draft_old_value_superseded",
                extra={"university_id": university.id, "field": field_name, "reviewer_id": reviewer_id},
            )
        record = FieldChangeRecord(field=field_name, old_value=current, new_value=value)
        updated = await self._universities.apply_update(
            university.id,
            live={field_name: value},
            drafts={},
            clear_drafts=[field_name],
        )
        await self._cache.invalidate(updated.slug, [field_name])
        metrics.inc_draft_decision("approved")
        logger.info(
            "draft_approved",
            extra={"university_id": university.id, "field": field_name, "reviewer_id": reviewer_id},
        )
        return record

    async def reject(self, university_id: str, field_name: str, *, reviewer_id: str | None = None) -> FieldChangeRecord:
        """Discard a draft, leaving the live column untouched."""
        university, value = await self._pending(university_id, field_name)
        record = FieldChangeRecord(field=field_name, old_value=university.live_value(field_name), new_value=value)
        await self._universities.apply_update(university.id, live={}, drafts={}, clear_drafts=[field_name])
        metrics.inc_draft_decision("rejected")
        logger.info(
            "draft_rejected",
            extra={"university_id": university.id, "field": field_name, "reviewer_id": reviewer_id},
        )
        return record
