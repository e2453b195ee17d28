"""Editor endpoints for saving, duplicating and deleting content blocks."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, Depends, status

from app.infra.auth import ADMIN_ROLE, UNIVERSITY_ADMIN_ROLE, AuthenticatedUser, require_roles
from app.profiles.api.schemas import (
    BlockOut,
    BlockSubmissionOut,
    BulkDeleteIn,
    BulkDeleteOut,
    DuplicateBlockIn,
)
from app.profiles.domain.container import get_profile_service
from app.profiles.domain.models import Editor

router = APIRouter(prefix="/api/profiles/v1/blocks", tags=["profile-blocks"])

require_editor = require_roles(ADMIN_ROLE, UNIVERSITY_ADMIN_ROLE)


def editor_for(user: AuthenticatedUser) -> Editor:
    return Editor(id=user.id, privileged=user.is_admin)


@router.post("", response_model=BlockSubmissionOut, status_code=status.HTTP_201_CREATED)
async def submit_block(
    payload: dict[str, Any] = Body(...),
    user: AuthenticatedUser = Depends(require_editor),
) -> BlockSubmissionOut:
    result = await get_profile_service().submit_block(payload, editor_for(user))
    return BlockSubmissionOut.from_domain(result)


@router.post("/{block_id}/duplicate", response_model=list[BlockOut], status_code=status.HTTP_201_CREATED)
async def duplicate_block(
    block_id: str,
    payload: DuplicateBlockIn,
    _: AuthenticatedUser = Depends(require_editor),
) -> list[BlockOut]:
    copies = await get_profile_service().duplicate_block(block_id, payload.target_university_ids)
    return [BlockOut.from_domain(block) for block in copies]


@router.post("/bulk-delete", response_model=BulkDeleteOut)
async def bulk_delete_blocks(
    payload: BulkDeleteIn,
    _: AuthenticatedUser = Depends(require_editor),
) -> BulkDeleteOut:
    deleted = await get_profile_service().bulk_delete_blocks(payload.block_ids)
    return BulkDeleteOut(deleted=deleted)
