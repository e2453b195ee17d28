"""Repository contracts plus in-memory implementations for dev and tests."""

from __future__ import annotations

import asyncio
from dataclasses import replace
from datetime import datetime, timezone
from typing import Iterable, Mapping, Optional, Protocol, Sequence

from app.profiles.domain.models import BlockTemplate, ContentBlock, University


class UniversityRepository(Protocol):
    async def get_by_id(self, university_id: str) -> University | None:
        ...

    async def get_by_slug(self, slug: str) -> University | None:
        ...

    async def slugs_for_ids(self, university_ids: Iterable[str]) -> dict[str, str]:
        ...

    async def apply_update(
        self,
        university_id: str,
        *,
        live: Mapping[str, object],
        drafts: Mapping[str, object],
        clear_drafts: Iterable[str] = (),
    ) -> University:
        """Write live and draft columns in a single statement."""
        ...


class BlockRepository(Protocol):
    async def get(self, block_id: str) -> ContentBlock | None:
        ...

    async def get_many(self, block_ids: Sequence[str]) -> list[ContentBlock]:
        ...

    async def list_for_university(self, university_id: str, *, include_inactive: bool = False) -> list[ContentBlock]:
        ...

    async def list_active_for_slug(self, slug: str) -> list[ContentBlock]:
        ...

    async def list_active_by_types(self, block_types: Iterable[str]) -> list[ContentBlock]:
        ...

    async def save(self, block: ContentBlock) -> ContentBlock:
        ...

    async def create_many(self, blocks: Sequence[ContentBlock]) -> list[ContentBlock]:
        ...

    async def delete_many(self, block_ids: Sequence[str]) -> int:
        ...

    async def update_priorities(self, university_id: str, priorities: Mapping[str, int]) -> list[ContentBlock]:
        ...


class TemplateRepository(Protocol):
    async def get(self, template_id: str) -> BlockTemplate | None:
        ...


def _now() -> datetime:
    return datetime.now(timezone.utc)


class InMemoryUniversityRepository(UniversityRepository):
    def __init__(self, universities: Optional[Iterable[University]] = None) -> None:
        self._by_id: dict[str, University] = {}
        self._lock = asyncio.Lock()
        self.update_calls = 0
        for university in universities or ():
            self.add(university)

    def add(self, university: University) -> University:
        self._by_id[university.id] = university
        return university

    async def get_by_id(self, university_id: str) -> University | None:
        university = self._by_id.get(university_id)
        return _clone_university(university) if university else None

    async def get_by_slug(self, slug: str) -> University | None:
        for university in self._by_id.values():
            if university.slug == slug:
                return _clone_university(university)
        return None

    async def slugs_for_ids(self, university_ids: Iterable[str]) -> dict[str, str]:
        return {uid: self._by_id[uid].slug for uid in university_ids if uid in self._by_id}

    async def apply_update(
        self,
        university_id: str,
        *,
        live: Mapping[str, object],
        drafts: Mapping[str, object],
        clear_drafts: Iterable[str] = (),
    ) -> University:
        async with self._lock:
            university = self._by_id.get(university_id)
            if university is None:
                raise KeyError(university_id)
            self.update_calls += 1
            for name, value in live.items():
                if name == "slug":
                    university.slug = str(value)
                elif name == "name":
                    university.name = str(value)
                else:
                    university.fields[name] = value
            for name, value in drafts.items():
                university.drafts[name] = value
            for name in clear_drafts:
                university.drafts.pop(name, None)
            university.updated_at = _now()
            return _clone_university(university)


def _clone_university(university: University) -> University:
    return replace(university, fields=dict(university.fields), drafts=dict(university.drafts))


def _sort_key(block: ContentBlock) -> tuple[int, datetime]:
    return (block.priority, block.created_at)


class InMemoryBlockRepository(BlockRepository):
    def __init__(self, universities: Optional[InMemoryUniversityRepository] = None) -> None:
        self._blocks: dict[str, ContentBlock] = {}
        self._universities = universities
        self.delete_calls = 0

    async def get(self, block_id: str) -> ContentBlock | None:
        block = self._blocks.get(block_id)
        return replace(block) if block else None

    async def get_many(self, block_ids: Sequence[str]) -> list[ContentBlock]:
        return [replace(self._blocks[bid]) for bid in dict.fromkeys(block_ids) if bid in self._blocks]

    async def list_for_university(self, university_id: str, *, include_inactive: bool = False) -> list[ContentBlock]:
        blocks = [
            replace(block)
            for block in self._blocks.values()
            if block.university_id == university_id and (include_inactive or block.is_active)
        ]
        return sorted(blocks, key=_sort_key)

    async def list_active_for_slug(self, slug: str) -> list[ContentBlock]:
        if self._universities is None:
            return []
        university = await self._universities.get_by_slug(slug)
        if university is None:
            return []
        return await self.list_for_university(university.id)

    async def list_active_by_types(self, block_types: Iterable[str]) -> list[ContentBlock]:
        wanted = set(block_types)
        return [replace(block) for block in self._blocks.values() if block.is_active and block.block_type in wanted]

    async def save(self, block: ContentBlock) -> ContentBlock:
        existing = self._blocks.get(block.id)
        if existing is not None:
            block.created_at = existing.created_at
            block.updated_at = _now()
        self._blocks[block.id] = replace(block)
        return replace(block)

    async def create_many(self, blocks: Sequence[ContentBlock]) -> list[ContentBlock]:
        for block in blocks:
            self._blocks[block.id] = replace(block)
        return [replace(block) for block in blocks]

    async def delete_many(self, block_ids: Sequence[str]) -> int:
        self.delete_calls += 1
        removed = 0
        for block_id in block_ids:
            if self._blocks.pop(block_id, None) is not None:
                removed += 1
        return removed

    async def update_priorities(self, university_id: str, priorities: Mapping[str, int]) -> list[ContentBlock]:
        for block_id, priority in priorities.items():
            block = self._blocks[block_id]
            block.priority = priority
            block.updated_at = _now()
        return await self.list_for_university(university_id, include_inactive=True)


class InMemoryTemplateRepository(TemplateRepository):
    def __init__(self, templates: Optional[Iterable[BlockTemplate]] = None) -> None:
        self._templates = {template.id: template for template in templates or ()}

    def add(self, template: BlockTemplate) -> BlockTemplate:
        self._templates[template.id] = template
        return template

    async def get(self, template_id: str) -> BlockTemplate | None:
        return self._templates.get(template_id)
