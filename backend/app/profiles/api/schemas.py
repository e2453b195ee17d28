"""Response and request bodies shared by the profile routers."""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, Field

from app.profiles.domain.models import (
    BlockSubmissionResult,
    CanonicalWriteResult,
    ContentBlock,
    FieldChangeRecord,
    normalize_value,
)


class BlockOut(BaseModel):
    id: str
    university_id: str
    block_type: str
    title: str
    data: dict[str, Any]
    priority: int
    is_active: bool
    is_hard: bool
    is_canonical: bool
    canonical_mapping: Optional[str]
    template_id: Optional[str]
    created_at: str
    updated_at: str

    @classmethod
    def from_domain(cls, block: ContentBlock) -> "BlockOut":
        return cls(
            id=block.id,
            university_id=block.university_id,
            block_type=block.block_type,
            title=block.title,
            data=block.raw_data,
            priority=block.priority,
            is_active=block.is_active,
            is_hard=block.is_hard,
            is_canonical=block.is_canonical,
            canonical_mapping=block.canonical_mapping,
            template_id=block.template_id,
            created_at=block.created_at.isoformat(),
            updated_at=block.updated_at.isoformat(),
        )


class FieldChangeOut(BaseModel):
    field: str
    old_value: Any = None
    new_value: Any = None

    @classmethod
    def from_domain(cls, record: FieldChangeRecord) -> "FieldChangeOut":
        return cls(**record.to_dict())


class WriteSummaryOut(BaseModel):
    live_fields: list[str]
    draft_fields: list[str]
    change_records: list[FieldChangeOut]
    claim_submitted: bool

    @classmethod
    def from_domain(cls, write: CanonicalWriteResult) -> "WriteSummaryOut":
        return cls(
            live_fields=sorted(write.live_fields),
            draft_fields=sorted(write.draft_values),
            change_records=[FieldChangeOut.from_domain(record) for record in write.change_records],
            claim_submitted=write.claim_submitted,
        )


class BlockSubmissionOut(BaseModel):
    block: BlockOut
    write: Optional[WriteSummaryOut] = None
    invalidated_tags: list[str]

    @classmethod
    def from_domain(cls, result: BlockSubmissionResult) -> "BlockSubmissionOut":
        return cls(
            block=BlockOut.from_domain(result.block),
            write=WriteSummaryOut.from_domain(result.write) if result.write else None,
            invalidated_tags=sorted(result.invalidated_tags),
        )


class DuplicateBlockIn(BaseModel):
    target_university_ids: list[str] = Field(min_length=1, max_length=500)


class BulkDeleteIn(BaseModel):
    block_ids: list[str] = Field(min_length=1, max_length=500)


class BulkDeleteOut(BaseModel):
    deleted: int


class BlockOrderItem(BaseModel):
    id: str
    priority: int


class ReorderBlocksIn(BaseModel):
    items: list[BlockOrderItem] = Field(min_length=1, max_length=500)


class DraftApprovalIn(BaseModel):
    expected_old_value: Any = None


class DraftDecisionOut(BaseModel):
    field: str
    decision: str
    old_value: Any = None
    new_value: Any = None

    @classmethod
    def from_domain(cls, record: FieldChangeRecord, decision: str) -> "DraftDecisionOut":
        return cls(
            field=record.field,
            decision=decision,
            old_value=normalize_value(record.old_value),
            new_value=normalize_value(record.new_value),
        )
