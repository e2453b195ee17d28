"""Domain models for universities, content blocks and merged profiles."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Mapping, Optional
from uuid import UUID


def normalize_value(value: Any) -> Any:
    """Reduce storage types to JSON-friendly primitives."""
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, UUID):
        return str(value)
    return value


def values_equal(left: Any, right: Any) -> bool:
    left = normalize_value(left)
    right = normalize_value(right)
    if isinstance(left, bool) or isinstance(right, bool):
        return left is right
    if isinstance(left, (int, float)) and isinstance(right, (int, float)):
        return math.isclose(float(left), float(right), rel_tol=1e-9, abs_tol=1e-12)
    return left == right


class WriteRoute(str, Enum):
    NOT_APPLICABLE = "not_applicable"
    LIVE = "live"
    DRAFT = "draft"


@dataclass(slots=True)
class Editor:
    id: Optional[str]
    privileged: bool = False


@dataclass(slots=True)
class University:
    id: str
    slug: str
    name: str
    fields: dict[str, Any] = field(default_factory=dict)
    drafts: dict[str, Any] = field(default_factory=dict)
    claimed_by: Optional[str] = None
    updated_at: Optional[datetime] = None

    def live_value(self, name: str) -> Any:
        if name == "slug":
            return self.slug
        if name == "name":
            return self.name
        return self.fields.get(name)

    def snapshot(self) -> dict[str, Any]:
        data = {key: normalize_value(value) for key, value in self.fields.items()}
        data.update(
            {
                "id": self.id,
                "slug": self.slug,
                "name": self.name,
                "claimed_by": self.claimed_by,
                "is_claimed": self.claimed_by is not None,
                "updated_at": normalize_value(self.updated_at),
            }
        )
        return data


@dataclass(slots=True)
class ContentBlock:
    id: str
    university_id: str
    block_type: str
    title: str
    raw_data: dict[str, Any]
    priority: int = 0
    is_active: bool = True
    is_hard: bool = False
    is_canonical: bool = False
    canonical_mapping: Optional[str] = None
    template_id: Optional[str] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "university_id": self.university_id,
            "block_type": self.block_type,
            "title": self.title,
            "raw_data": self.raw_data,
            "priority": self.priority,
            "is_active": self.is_active,
            "is_hard": self.is_hard,
            "is_canonical": self.is_canonical,
            "canonical_mapping": self.canonical_mapping,
            "template_id": self.template_id,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


@dataclass(slots=True)
class BlockTemplate:
    id: str
    name: str
    block_type: str
    data: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class FieldChangeRecord:
    field: str
    old_value: Any
    new_value: Any

    def to_dict(self) -> dict[str, Any]:
        return {
            "field": self.field,
            "old_value": normalize_value(self.old_value),
            "new_value": normalize_value(self.new_value),
        }


@dataclass(slots=True)
class CanonicalWriteResult:
    university: University
    previous_slug: Optional[str] = None
    routes: dict[str, WriteRoute] = field(default_factory=dict)
    live_fields: frozenset[str] = frozenset()
    draft_values: dict[str, Any] = field(default_factory=dict)
    change_records: list[FieldChangeRecord] = field(default_factory=list)
    claim_submitted: bool = False


@dataclass(slots=True)
class BlockSubmissionResult:
    block: ContentBlock
    write: Optional[CanonicalWriteResult] = None
    invalidated_tags: frozenset[str] = frozenset()


@dataclass(slots=True)
class MergedProfile:
    university: dict[str, Any]
    blocks: list[dict[str, Any]]

    def to_dict(self) -> dict[str, Any]:
        return {"university": self.university, "blocks": self.blocks}

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "MergedProfile":
        return cls(university=dict(payload["university"]), blocks=list(payload["blocks"]))
