"""Route derived canonical values to live or draft columns."""

from __future__ import annotations

import logging
from typing import Any, Mapping

from app.obs import metrics
from app.profiles.domain.claims import ClaimSink
from app.profiles.domain.errors import BlockPermissionDenied, ProfileNotFound, ProfileValidationError
from app.profiles.domain.models import (
    CanonicalWriteResult,
    Editor,
    FieldChangeRecord,
    WriteRoute,
    values_equal,
)
from app.profiles.domain.registry import FieldRegistry
from app.profiles.domain.repositories import UniversityRepository

logger = logging.getLogger(__name__)


class DualWriteCoordinator:
    """Applies one canonical block write as a single batched university update.

    Privileged editors, and fields that do not require staging, write the live
    column. Everything else lands in the draft column, and a change record is
    emitted for each draft that differs from the current live value.
    """

    def __init__(self, universities: UniversityRepository, registry: FieldRegistry, claim_sink: ClaimSink) -> None:
        self._universities = universities
        self._registry = registry
        self._claim_sink = claim_sink

    def route_for(self, block_type: str, field_name: str, *, privileged: bool) -> WriteRoute:
        if field_name not in self._registry.writable_fields(block_type):
            return WriteRoute.NOT_APPLICABLE
        if privileged or not self._registry.requires_staging(field_name):
            return WriteRoute.LIVE
        return WriteRoute.DRAFT

    async def apply(
        self,
        *,
        block_type: str,
        university_id: str,
        derived: Mapping[str, Any],
        editor: Editor,
        source_title: str,
    ) -> CanonicalWriteResult:
        unregistered = set(derived) - self._registry.writable_fields(block_type)
        if unregistered:
            metrics.inc_block_rejection("unregistered_field")
            raise BlockPermissionDenied(
                f"block type {block_type} may not write {', '.join(sorted(unregistered))}",
                fields=unregistered,
            )

        university = await self._universities.get_by_id(university_id)
        if university is None:
            raise ProfileNotFound("university", university_id)

        routes: dict[str, WriteRoute] = {}
        live: dict[str, Any] = {}
        drafts: dict[str, Any] = {}
        records: list[FieldChangeRecord] = []
        for name in sorted(derived):
            value = derived[name]
            route = self.route_for(block_type, name, privileged=editor.privileged)
            routes[name] = route
            if route is WriteRoute.LIVE:
                live[name] = value
                continue
            drafts[name] = value
            current = university.live_value(name)
            if not values_equal(current, value):
                records.append(FieldChangeRecord(field=name, old_value=current, new_value=value))

        new_slug = live.get("slug")
        if new_slug is not None and new_slug != university.slug:
            clash = await self._universities.get_by_slug(str(new_slug))
            if clash is not None and clash.id != university.id:
                raise ProfileValidationError.for_field("data.slug", "slug already in use")

        updated = university
        if live or drafts:
            updated = await self._universities.apply_update(university.id, live=live, drafts=drafts)
        metrics.inc_field_writes(WriteRoute.LIVE.value, len(live))
        metrics.inc_field_writes(WriteRoute.DRAFT.value, len(drafts))

        claim_submitted = False
        if records:
            claim_submitted = await self._submit_claim(editor, university.id, records, source_title)

        logger.info(
            "canonical_write_applied",
            extra={
                "university_id": university.id,
                "block_type": block_type,
                "live_fields": len(live),
                "draft_fields": len(drafts),
                "change_records": len(records),
            },
        )
        return CanonicalWriteResult(
            university=updated,
            previous_slug=university.slug,
            routes=routes,
            live_fields=frozenset(live),
            draft_values=drafts,
            change_records=records,
            claim_submitted=claim_submitted,
        )

    async def _submit_claim(
        self,
        editor: Editor,
        university_id: str,
        records: list[FieldChangeRecord],
        source_title: str,
    ) -> bool:
        if not editor.id:
            logger.warning("claim_skipped_without_editor", extra={"university_id": university_id})
            return False
        try:
            await self._claim_sink.submit_change_records(editor.id, university_id, records, source_title)
        except Exception:
            metrics.inc_claim_sink_failure()
            logger.warning(
                "claim_sink_failed",
                extra={"university_id": university_id, "change_records": len(records)},
                exc_info=True,
            )
            return False
        metrics.inc_change_records(len(records))
        return True
