"""Public merged-profile reads plus per-university block and draft management."""

from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, Depends, Query

from app.infra.auth import AuthenticatedUser, get_admin_user
from app.profiles.api.blocks import require_editor
from app.profiles.api.schemas import BlockOut, DraftApprovalIn, DraftDecisionOut, ReorderBlocksIn
from app.profiles.domain.container import get_profile_service

router = APIRouter(prefix="/api/profiles/v1/universities", tags=["profile-universities"])


@router.get("/{slug}/profile")
async def get_merged_profile(slug: str) -> dict[str, Any]:
    profile = await get_profile_service().get_merged_profile(slug)
    return profile.to_dict()


@router.get("/{slug}/profile/{tag}")
async def get_profile_partition(slug: str, tag: str) -> dict[str, Any]:
    return await get_profile_service().get_profile_partition(slug, tag)


@router.get("/{university_id}/blocks", response_model=list[BlockOut])
async def list_blocks(
    university_id: str,
    include_inactive: bool = Query(default=False),
    _: AuthenticatedUser = Depends(require_editor),
) -> list[BlockOut]:
    blocks = await get_profile_service().list_blocks(university_id, include_inactive=include_inactive)
    return [BlockOut.from_domain(block) for block in blocks]


@router.patch("/{university_id}/blocks/order", response_model=list[BlockOut])
async def reorder_blocks(
    university_id: str,
    payload: ReorderBlocksIn,
    _: AuthenticatedUser = Depends(require_editor),
) -> list[BlockOut]:
    priorities = {item.id: item.priority for item in payload.items}
    blocks = await get_profile_service().reorder_blocks(university_id, priorities)
    return [BlockOut.from_domain(block) for block in blocks]


@router.get("/{university_id}/drafts")
async def list_drafts(
    university_id: str,
    _: AuthenticatedUser = Depends(get_admin_user),
) -> dict[str, Any]:
    return {"drafts": await get_profile_service().pending_drafts(university_id)}


@router.post("/{university_id}/drafts/{field_name}/approve", response_model=DraftDecisionOut)
async def approve_draft(
    university_id: str,
    field_name: str,
    payload: Optional[DraftApprovalIn] = None,
    admin: AuthenticatedUser = Depends(get_admin_user),
) -> DraftDecisionOut:
    expected = payload.expected_old_value if payload else None
    record = await get_profile_service().approve_draft(
        university_id, field_name, reviewer_id=admin.id, expected_old_value=expected
    )
    return DraftDecisionOut.from_domain(record, "approved")


@router.post("/{university_id}/drafts/{field_name}/reject", response_model=DraftDecisionOut)
async def reject_draft(
    university_id: str,
    field_name: str,
    admin: AuthenticatedUser = Depends(get_admin_user),
) -> DraftDecisionOut:
    record = await get_profile_service().reject_draft(university_id, field_name, reviewer_id=admin.id)
    return DraftDecisionOut.from_domain(record, "rejected")
