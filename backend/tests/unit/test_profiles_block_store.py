from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from app.profiles.domain import container
from app.profiles.domain.blocks import ARCHIVED_PREFIX, COPY_PREFIX
from app.profiles.domain.cache import ProfileCache
from app.profiles.domain.errors import BlockPermissionDenied, ProfileNotFound, ProfileValidationError
from app.profiles.domain.models import BlockTemplate, ContentBlock


async def _seed_block(world, block_id, university_id, block_type="faq_accordion", **overrides):
    hard = container.get_registry_instance().is_hard_block_type(block_type)
    block = ContentBlock(
        id=block_id,
        university_id=university_id,
        block_type=block_type,
        title=overrides.pop("title", "Block"),
        raw_data=overrides.pop("raw_data", {"question": "Where is the library?", "answer": "Next to the quad."}),
        is_hard=hard,
        **overrides,
    )
    return await world.blocks.save(block)


@pytest.fixture
def campuses(profile_world):
    profile_world.add_university("u-1", "north-state")
    profile_world.add_university("u-2", "south-state")
    profile_world.add_university("u-3", "east-state")
    return profile_world


@pytest.mark.asyncio
async def test_upsert_soft_block_defaults_title(campuses) -> None:
    store = container.get_block_store()

    block = await store.upsert_block(
        block_type="call_to_action",
        university_id="u-1",
        title="  ",
        raw_data={"buttonText": "Apply", "url": "https://apply.example"},
    )

    assert block.title == "Call To Action"
    assert block.is_hard is False
    assert (await campuses.blocks.get(block.id)).raw_data["buttonText"] == "Apply"


@pytest.mark.asyncio
async def test_upsert_rejects_hard_types(campuses) -> None:
    store = container.get_block_store()

    with pytest.raises(BlockPermissionDenied):
        await store.upsert_block(
            block_type="deadline_card",
            university_id="u-1",
            title="Deadline",
            raw_data={"label": "Early", "deadline": "2026-11-01"},
        )


@pytest.mark.asyncio
async def test_upsert_cannot_overwrite_a_hard_block(campuses) -> None:
    await _seed_block(campuses, "hard-1", "u-1", "outcome_metrics", raw_data={"graduationRate": 0.8})
    store = container.get_block_store()

    with pytest.raises(BlockPermissionDenied):
        await store.upsert_block(
            block_type="faq_accordion",
            university_id="u-1",
            title="FAQ",
            raw_data={"question": "Is it hard?", "answer": "Very hard."},
            existing_id="hard-1",
        )


@pytest.mark.asyncio
async def test_upsert_rejects_block_of_another_university(campuses) -> None:
    await _seed_block(campuses, "b-1", "u-2")
    store = container.get_block_store()

    with pytest.raises(BlockPermissionDenied):
        await store.upsert_block(
            block_type="faq_accordion",
            university_id="u-1",
            title="FAQ",
            raw_data={"question": "Whose block?", "answer": "Not yours."},
            existing_id="b-1",
        )


@pytest.mark.asyncio
async def test_apply_template_merges_caller_data_over_template(campuses) -> None:
    campuses.templates.add(
        BlockTemplate(
            id="tpl-1",
            name="Apply now",
            block_type="call_to_action",
            data={"buttonText": "Apply", "url": "https://apply.example", "style": "primary"},
        )
    )
    store = container.get_block_store()

    block_type, title, data = await store.apply_template("faq_accordion", "", {"style": "ghost"}, "tpl-1")

    assert block_type == "call_to_action"
    assert title == "Apply now"
    assert data == {"buttonText": "Apply", "url": "https://apply.example", "style": "ghost"}

    with pytest.raises(ProfileNotFound):
        await store.apply_template("call_to_action", "", {}, "tpl-missing")


@pytest.mark.asyncio
async def test_save_hard_block_marks_canonical_mapping(campuses) -> None:
    store = container.get_block_store()

    canonical = await store.save_hard_block(
        block_type="outcome_metrics",
        university_id="u-1",
        title="",
        raw_data={"graduationRate": 0.8},
    )
    essential = await store.save_hard_block(
        block_type="deadline_card",
        university_id="u-1",
        title="Deadlines",
        raw_data={"label": "Regular", "deadline": "2027-01-15"},
    )

    assert canonical.is_hard and canonical.is_canonical
    assert canonical.canonical_mapping == "outcome_metrics"
    assert canonical.title == "Outcome Metrics"
    assert essential.is_hard and not essential.is_canonical
    assert essential.canonical_mapping is None


@pytest.mark.asyncio
async def test_save_hard_block_cannot_change_type(campuses) -> None:
    await _seed_block(campuses, "hard-1", "u-1", "outcome_metrics", raw_data={"graduationRate": 0.8})
    store = container.get_block_store()

    with pytest.raises(ProfileValidationError):
        await store.save_hard_block(
            block_type="student_body_profile",
            university_id="u-1",
            title="Students",
            raw_data={},
            existing_id="hard-1",
        )


@pytest.mark.asyncio
async def test_duplicate_copies_soft_block_to_every_target(campuses, fake_redis) -> None:
    await _seed_block(campuses, "soft-1", "u-1", title="Visit us", priority=3)
    await fake_redis.set(ProfileCache.key("south-state", "microcontent"), "{}")
    await fake_redis.set(ProfileCache.key("south-state", "cost"), "{}")
    store = container.get_block_store()

    copies = await store.duplicate_to_universities("soft-1", ["u-2", "u-3", "u-2"])

    assert sorted(copy.university_id for copy in copies) == ["u-2", "u-3"]
    assert all(copy.title == f"{COPY_PREFIX}Visit us" for copy in copies)
    assert all(copy.priority == 999 for copy in copies)
    assert all(not copy.is_hard for copy in copies)
    assert len({copy.id for copy in copies} | {"soft-1"}) == 3
    assert await fake_redis.get(ProfileCache.key("south-state", "microcontent")) is None
    assert await fake_redis.get(ProfileCache.key("south-state", "cost")) == "{}"


@pytest.mark.asyncio
async def test_duplicate_hard_block_is_forbidden(campuses) -> None:
    await _seed_block(campuses, "hard-1", "u-1", "deadline_card", raw_data={"label": "X", "deadline": "2027-01-01"})
    store = container.get_block_store()

    with pytest.raises(BlockPermissionDenied):
        await store.duplicate_to_universities("hard-1", ["u-2"])

    assert await campuses.blocks.list_for_university("u-2", include_inactive=True) == []


@pytest.mark.asyncio
async def test_duplicate_with_unknown_target_creates_nothing(campuses) -> None:
    await _seed_block(campuses, "soft-1", "u-1")
    store = container.get_block_store()

    with pytest.raises(ProfileNotFound):
        await store.duplicate_to_universities("soft-1", ["u-2", "u-404"])

    assert await campuses.blocks.list_for_university("u-2", include_inactive=True) == []


@pytest.mark.asyncio
async def test_duplicate_requires_targets(campuses) -> None:
    await _seed_block(campuses, "soft-1", "u-1")
    store = container.get_block_store()

    with pytest.raises(ProfileValidationError):
        await store.duplicate_to_universities("soft-1", [])


@pytest.mark.asyncio
async def test_bulk_delete_removes_soft_blocks_in_one_call(campuses) -> None:
    await _seed_block(campuses, "soft-1", "u-1")
    await _seed_block(campuses, "soft-2", "u-2")
    store = container.get_block_store()

    deleted = await store.bulk_delete(["soft-1", "soft-2", "soft-1"])

    assert deleted == 2
    assert campuses.blocks.delete_calls == 1
    assert await campuses.blocks.get("soft-1") is None


@pytest.mark.asyncio
async def test_bulk_delete_with_a_hard_block_deletes_nothing(campuses) -> None:
    await _seed_block(campuses, "soft-1", "u-1")
    await _seed_block(campuses, "hard-1", "u-1", "outcome_metrics", raw_data={"graduationRate": 0.8})
    store = container.get_block_store()

    with pytest.raises(BlockPermissionDenied) as excinfo:
        await store.bulk_delete(["soft-1", "hard-1"])

    assert excinfo.value.block_ids == ["hard-1"]
    assert campuses.blocks.delete_calls == 0
    assert await campuses.blocks.get("soft-1") is not None


@pytest.mark.asyncio
async def test_bulk_delete_with_unknown_id_deletes_nothing(campuses) -> None:
    await _seed_block(campuses, "soft-1", "u-1")
    store = container.get_block_store()

    with pytest.raises(ProfileNotFound):
        await store.bulk_delete(["soft-1", "ghost"])

    assert campuses.blocks.delete_calls == 0


@pytest.mark.asyncio
async def test_reorder_updates_priorities(campuses) -> None:
    await _seed_block(campuses, "a", "u-1", priority=0)
    await _seed_block(campuses, "b", "u-1", priority=1)
    store = container.get_block_store()

    ordered = await store.reorder("u-1", {"a": 5, "b": 2})

    assert [block.id for block in ordered] == ["b", "a"]


@pytest.mark.asyncio
async def test_reorder_rejects_foreign_blocks(campuses) -> None:
    await _seed_block(campuses, "a", "u-1")
    await _seed_block(campuses, "other", "u-2")
    store = container.get_block_store()

    with pytest.raises(ProfileNotFound):
        await store.reorder("u-1", {"a": 1, "other": 2})


@pytest.mark.asyncio
async def test_archive_expired_deactivates_past_banners(campuses) -> None:
    now = datetime(2026, 10, 1, 12, tzinfo=timezone.utc)
    banner = {"message": "Open day this week", "severity": "info"}
    await _seed_block(
        campuses,
        "old",
        "u-1",
        "announcement_banner",
        title="Open day",
        raw_data={**banner, "expiresAt": (now - timedelta(days=1)).isoformat()},
    )
    await _seed_block(
        campuses,
        "naive",
        "u-1",
        "announcement_banner",
        raw_data={**banner, "expires_at": "2026-09-01T00:00:00"},
    )
    await _seed_block(
        campuses,
        "future",
        "u-1",
        "announcement_banner",
        raw_data={**banner, "expiresAt": (now + timedelta(days=1)).isoformat()},
    )
    await _seed_block(campuses, "forever", "u-1", "announcement_banner", raw_data=banner)
    store = container.get_block_store()

    archived = await store.archive_expired(now=now)

    assert archived == 2
    old = await campuses.blocks.get("old")
    assert old.is_active is False
    assert old.title == f"{ARCHIVED_PREFIX}Open day"
    assert (await campuses.blocks.get("future")).is_active is True
    assert (await campuses.blocks.get("forever")).is_active is True
    assert await store.archive_expired(now=now) == 0
