"""PostgreSQL persistence for universities, content blocks and templates."""

from __future__ import annotations

import json
from typing import Any, Iterable, Mapping, Optional, Sequence

import asyncpg

from app.profiles.domain.models import BlockTemplate, ContentBlock, University
from app.profiles.domain.registry import FieldRegistry, get_registry
from app.profiles.domain.repositories import BlockRepository, TemplateRepository, UniversityRepository

# Live columns stored outside the generic ``fields`` mapping.
_IDENTITY_COLUMNS = ("slug", "name")

_BLOCK_COLUMNS = """
    id, university_id, block_type, title, data, priority, is_active, is_hard,
    is_canonical, canonical_mapping, template_id, created_at, updated_at
"""


def _json_payload(raw: Any) -> dict[str, Any]:
    if raw is None:
        return {}
    if isinstance(raw, str):
        try:
            decoded = json.loads(raw)
        except json.JSONDecodeError:
            return {}
        return dict(decoded) if isinstance(decoded, dict) else {}
    return dict(raw)


def _optional_str(value: Any) -> Optional[str]:
    return str(value) if value is not None else None


def _row_to_block(row: asyncpg.Record) -> ContentBlock:
    return ContentBlock(
        id=str(row["id"]),
        university_id=str(row["university_id"]),
        block_type=str(row["block_type"]),
        title=str(row["title"]),
        raw_data=_json_payload(row["data"]),
        priority=int(row["priority"]),
        is_active=bool(row["is_active"]),
        is_hard=bool(row["is_hard"]),
        is_canonical=bool(row["is_canonical"]),
        canonical_mapping=_optional_str(row["canonical_mapping"]),
        template_id=_optional_str(row["template_id"]),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _row_to_template(row: asyncpg.Record) -> BlockTemplate:
    return BlockTemplate(
        id=str(row["id"]),
        name=str(row["name"]),
        block_type=str(row["block_type"]),
        data=_json_payload(row["data"]),
    )


def _affected(status: str) -> int:
    # asyncpg returns command tags such as "DELETE 3".
    try:
        return int(status.split()[-1])
    except (ValueError, IndexError):
        return 0


class PostgresUniversityRepository(UniversityRepository):
    """Reads and writes the ``universities`` table.

    Every scalar registry field has a live column of the same name; staged
    fields also have a ``<field>_draft`` column. Column names are only ever
    taken from the registry, never from request input.
    """

    def __init__(self, pool: asyncpg.Pool, registry: FieldRegistry | None = None) -> None:
        self._pool = pool
        self._registry = registry or get_registry()
        self._live_columns = tuple(sorted(self._registry.scalar_fields - set(_IDENTITY_COLUMNS)))
        self._draft_fields = tuple(sorted(self._registry.staged_fields))

    def _select(self) -> str:
        columns = ["id", "slug", "name", "claimed_by", "updated_at", *self._live_columns]
        columns.extend(f"{name}_draft" for name in self._draft_fields)
        return ", ".join(columns)

    def _row_to_university(self, row: asyncpg.Record) -> University:
        return University(
            id=str(row["id"]),
            slug=str(row["slug"]),
            name=str(row["name"]),
            fields={name: row[name] for name in self._live_columns if row[name] is not None},
            drafts={
                name: row[f"{name}_draft"] for name in self._draft_fields if row[f"{name}_draft"] is not None
            },
            claimed_by=_optional_str(row["claimed_by"]),
            updated_at=row["updated_at"],
        )

    async def get_by_id(self, university_id: str) -> University | None:
        row = await self._pool.fetchrow(f"SELECT {self._select()} FROM universities WHERE id = $1", university_id)
        return self._row_to_university(row) if row else None

    async def get_by_slug(self, slug: str) -> University | None:
        row = await self._pool.fetchrow(f"SELECT {self._select()} FROM universities WHERE slug = $1", slug)
        return self._row_to_university(row) if row else None

    async def slugs_for_ids(self, university_ids: Iterable[str]) -> dict[str, str]:
        ids = list(dict.fromkeys(university_ids))
        if not ids:
            return {}
        rows = await self._pool.fetch("SELECT id, slug FROM universities WHERE id = ANY($1::text[])", ids)
        return {str(row["id"]): str(row["slug"]) for row in rows}

    async def apply_update(
        self,
        university_id: str,
        *,
        live: Mapping[str, object],
        drafts: Mapping[str, object],
        clear_drafts: Iterable[str] = (),
    ) -> University:
        assignments: list[str] = []
        args: list[object] = [university_id]
        writable_live = set(self._live_columns) | set(_IDENTITY_COLUMNS)
        for name, value in live.items():
            if name not in writable_live:
                raise ValueError(f"unknown live column {name!r}")
            args.append(value)
            assignments.append(f"{name} = ${len(args)}")
        for name, value in drafts.items():
            if name not in self._draft_fields:
                raise ValueError(f"unknown draft column {name!r}")
            args.append(value)
            assignments.append(f"{name}_draft = ${len(args)}")
        for name in clear_drafts:
            if name not in self._draft_fields:
                raise ValueError(f"unknown draft column {name!r}")
            assignments.append(f"{name}_draft = NULL")
        assignments.append("updated_at = now()")
        row = await self._pool.fetchrow(
            f"UPDATE universities SET {', '.join(assignments)} WHERE id = $1 RETURNING {self._select()}",
            *args,
        )
        if row is None:
            raise KeyError(university_id)
        return self._row_to_university(row)


class PostgresBlockRepository(BlockRepository):
    """Stores profile blocks in ``content_blocks``."""

    def __init__(self, pool: asyncpg.Pool) -> None:
        self._pool = pool

    async def get(self, block_id: str) -> ContentBlock | None:
        row = await self._pool.fetchrow(f"SELECT {_BLOCK_COLUMNS} FROM content_blocks WHERE id = $1", block_id)
        return _row_to_block(row) if row else None

    async def get_many(self, block_ids: Sequence[str]) -> list[ContentBlock]:
        ids = list(dict.fromkeys(block_ids))
        if not ids:
            return []
        rows = await self._pool.fetch(
            f"SELECT {_BLOCK_COLUMNS} FROM content_blocks WHERE id = ANY($1::text[])",
            ids,
        )
        return [_row_to_block(row) for row in rows]

    async def list_for_university(self, university_id: str, *, include_inactive: bool = False) -> list[ContentBlock]:
        rows = await self._pool.fetch(
            f"""
            SELECT {_BLOCK_COLUMNS}
            FROM content_blocks
            WHERE university_id = $1 AND ($2::boolean OR is_active)
            ORDER BY priority ASC, created_at ASC
            """,
            university_id,
            include_inactive,
        )
        return [_row_to_block(row) for row in rows]

    async def list_active_for_slug(self, slug: str) -> list[ContentBlock]:
        rows = await self._pool.fetch(
            """
            SELECT b.id, b.university_id, b.block_type, b.title, b.data, b.priority, b.is_active,
                   b.is_hard, b.is_canonical, b.canonical_mapping, b.template_id, b.created_at, b.updated_at
            FROM content_blocks b
            JOIN universities u ON u.id = b.university_id
            WHERE u.slug = $1 AND b.is_active
            ORDER BY b.priority ASC, b.created_at ASC
            """,
            slug,
        )
        return [_row_to_block(row) for row in rows]

    async def list_active_by_types(self, block_types: Iterable[str]) -> list[ContentBlock]:
        types = list(block_types)
        if not types:
            return []
        rows = await self._pool.fetch(
            f"SELECT {_BLOCK_COLUMNS} FROM content_blocks WHERE is_active AND block_type = ANY($1::text[])",
            types,
        )
        return [_row_to_block(row) for row in rows]

    async def save(self, block: ContentBlock) -> ContentBlock:
        row = await self._pool.fetchrow(
            f"""
            INSERT INTO content_blocks (
                id, university_id, block_type, title, data, priority, is_active, is_hard,
                is_canonical, canonical_mapping, template_id
            )
            VALUES ($1, $2, $3, $4, $5::jsonb, $6, $7, $8, $9, $10, $11)
            ON CONFLICT (id) DO UPDATE
            SET title = EXCLUDED.title,
                data = EXCLUDED.data,
                priority = EXCLUDED.priority,
                is_active = EXCLUDED.is_active,
                is_hard = EXCLUDED.is_hard,
                is_canonical = EXCLUDED.is_canonical,
                canonical_mapping = EXCLUDED.canonical_mapping,
                template_id = EXCLUDED.template_id,
                updated_at = now()
            RETURNING {_BLOCK_COLUMNS}
            """,
            *self._insert_args(block),
        )
        if row is None:  # pragma: no cover - asyncpg always returns a row for RETURNING
            raise RuntimeError("failed to save content block")
        return _row_to_block(row)

    @staticmethod
    def _insert_args(block: ContentBlock) -> tuple[object, ...]:
        return (
            block.id,
            block.university_id,
            block.block_type,
            block.title,
            json.dumps(block.raw_data),
            block.priority,
            block.is_active,
            block.is_hard,
            block.is_canonical,
            block.canonical_mapping,
            block.template_id,
        )

    async def create_many(self, blocks: Sequence[ContentBlock]) -> list[ContentBlock]:
        if not blocks:
            return []
        async with self._pool.acquire() as conn:
            async with conn.transaction():
                await conn.executemany(
                    """
                    INSERT INTO content_blocks (
                        id, university_id, block_type, title, data, priority, is_active, is_hard,
                        is_canonical, canonical_mapping, template_id
                    )
                    VALUES ($1, $2, $3, $4, $5::jsonb, $6, $7, $8, $9, $10, $11)
                    """,
                    [self._insert_args(block) for block in blocks],
                )
        return list(blocks)

    async def delete_many(self, block_ids: Sequence[str]) -> int:
        ids = list(dict.fromkeys(block_ids))
        if not ids:
            return 0
        status = await self._pool.execute("DELETE FROM content_blocks WHERE id = ANY($1::text[])", ids)
        return _affected(status)

    async def update_priorities(self, university_id: str, priorities: Mapping[str, int]) -> list[ContentBlock]:
        async with self._pool.acquire() as conn:
            async with conn.transaction():
                await conn.executemany(
                    """
                    UPDATE content_blocks
                    SET priority = $3, updated_at = now()
                    WHERE id = $1 AND university_id = $2
                    """,
                    [(block_id, university_id, priority) for block_id, priority in priorities.items()],
                )
        return await self.list_for_university(university_id, include_inactive=True)


class PostgresTemplateRepository(TemplateRepository):
    def __init__(self, pool: asyncpg.Pool) -> None:
        self._pool = pool

    async def get(self, template_id: str) -> BlockTemplate | None:
        row = await self._pool.fetchrow(
            "SELECT id, name, block_type, data FROM block_templates WHERE id = $1",
            template_id,
        )
        return _row_to_template(row) if row else None
