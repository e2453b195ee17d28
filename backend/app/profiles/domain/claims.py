"""Outbound change-record delivery for the draft approval workflow."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Protocol, Sequence

from redis.asyncio import Redis
from redis.exceptions import RedisError

from app.infra.redis import RedisProxy
from app.profiles.domain.errors import DependencyDegraded
from app.profiles.domain.models import FieldChangeRecord

CLAIM_STREAM = "x:profiles.claims"


class ClaimSink(Protocol):
    async def submit_change_records(
        self,
        editor_id: str,
        university_id: str,
        records: Sequence[FieldChangeRecord],
        source_title: str,
    ) -> None:
        ...


@dataclass(slots=True)
class ClaimSubmission:
    editor_id: str
    university_id: str
    records: list[FieldChangeRecord]
    source_title: str
    submitted_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class InMemoryClaimSink(ClaimSink):
    def __init__(self) -> None:
        self.submissions: list[ClaimSubmission] = []

    async def submit_change_records(
        self,
        editor_id: str,
        university_id: str,
        records: Sequence[FieldChangeRecord],
        source_title: str,
    ) -> None:
        self.submissions.append(
            ClaimSubmission(
                editor_id=editor_id,
                university_id=university_id,
                records=list(records),
                source_title=source_title,
            )
        )


class RedisStreamClaimSink(ClaimSink):
    """Appends one stream entry per submission for the claims worker."""

    def __init__(self, redis: Redis | RedisProxy, *, stream: str = CLAIM_STREAM, maxlen: int | None = 10000) -> None:
        self._redis = redis
        self._stream = stream
        self._maxlen = maxlen

    async def submit_change_records(
        self,
        editor_id: str,
        university_id: str,
        records: Sequence[FieldChangeRecord],
        source_title: str,
    ) -> None:
        fields: dict[str, Any] = {
            "event": "profile.data_update",
            "editor_id": str(editor_id),
            "university_id": str(university_id),
            "title": source_title,
            "changes": json.dumps([record.to_dict() for record in records], separators=(",", ":")),
            "count": str(len(records)),
        }
        try:
            await self._redis.xadd(self._stream, fields, maxlen=self._maxlen, approximate=True)
        except RedisError as exc:
            raise DependencyDegraded("claim_sink", f"could not append to {self._stream}") from exc
