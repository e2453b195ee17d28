import pytest

from app.profiles.domain.models import ContentBlock

ADMIN = {"X-User-Id": "admin-1", "X-User-Roles": "admin"}
EDITOR = {"X-User-Id": "editor-1", "X-User-Roles": "university_admin"}
STUDENT = {"X-User-Id": "student-1", "X-User-Roles": "student"}

BLOCKS = "/api/profiles/v1/blocks"
UNIVERSITIES = "/api/profiles/v1/universities"


@pytest.fixture
def campus(profile_world):
    profile_world.add_university("u-1", "pine-university", acceptance_rate=0.25, tuition_in_state=8000)
    profile_world.add_university("u-2", "oak-university")
    return profile_world


@pytest.mark.asyncio
async def test_public_profile_and_partitions(api_client, campus):
    response = await api_client.get(f"{UNIVERSITIES}/pine-university/profile")
    assert response.status_code == 200
    body = response.json()
    assert body["university"]["acceptance_rate"] == 0.25
    assert body["blocks"] == []

    admissions = await api_client.get(f"{UNIVERSITIES}/pine-university/profile/admissions")
    assert admissions.status_code == 200
    assert admissions.json()["acceptance_rate"] == 0.25

    unknown_tag = await api_client.get(f"{UNIVERSITIES}/pine-university/profile/gossip")
    assert unknown_tag.status_code == 422

    missing = await api_client.get(f"{UNIVERSITIES}/nowhere/profile")
    assert missing.status_code == 404
    assert missing.json()["detail"] == "university_not_found"
    assert missing.json()["request_id"]


@pytest.mark.asyncio
async def test_submit_requires_authentication(api_client, campus):
    response = await api_client.post(BLOCKS, json={"blockType": "faq_accordion", "universityId": "u-1", "data": {}})
    assert response.status_code == 401

    forbidden = await api_client.post(
        BLOCKS,
        json={"blockType": "faq_accordion", "universityId": "u-1", "data": {}},
        headers=STUDENT,
    )
    assert forbidden.status_code == 403


@pytest.mark.asyncio
async def test_invalid_block_returns_field_errors(api_client, campus):
    response = await api_client.post(
        BLOCKS,
        json={"blockType": "admissions_range_meter", "universityId": "u-1", "data": {"actComposite25": 40}},
        headers=ADMIN,
    )
    assert response.status_code == 422
    body = response.json()
    assert body["detail"] == "validation_error"
    assert body["errors"][0]["field"].startswith("data.")
    assert body["request_id"]


@pytest.mark.asyncio
async def test_editor_save_is_staged_until_admin_approves(api_client, campus):
    payload = {
        "blockType": "admissions_range_meter",
        "universityId": "u-1",
        "title": "Admissions",
        "data": {"totalApplications": 1000, "totalAccepted": 150},
    }
    response = await api_client.post(BLOCKS, json=payload, headers=EDITOR)
    assert response.status_code == 201
    body = response.json()
    assert body["block"]["is_hard"] is True
    assert body["write"]["draft_fields"] == ["acceptance_rate"]
    assert body["write"]["claim_submitted"] is True
    assert campus.claims.submissions[0].editor_id == "editor-1"

    profile = await api_client.get(f"{UNIVERSITIES}/pine-university/profile/admissions")
    assert profile.json()["acceptance_rate"] == 0.25

    editor_drafts = await api_client.get(f"{UNIVERSITIES}/u-1/drafts", headers=EDITOR)
    assert editor_drafts.status_code == 403

    drafts = await api_client.get(f"{UNIVERSITIES}/u-1/drafts", headers=ADMIN)
    assert drafts.json() == {"drafts": {"acceptance_rate": 0.15}}

    approved = await api_client.post(f"{UNIVERSITIES}/u-1/drafts/acceptance_rate/approve", headers=ADMIN)
    assert approved.status_code == 200
    assert approved.json() == {
        "field": "acceptance_rate",
        "decision": "approved",
        "old_value": 0.25,
        "new_value": 0.15,
    }

    profile = await api_client.get(f"{UNIVERSITIES}/pine-university/profile/admissions")
    assert profile.json()["acceptance_rate"] == 0.15


@pytest.mark.asyncio
async def test_admin_save_goes_live(api_client, campus):
    response = await api_client.post(
        BLOCKS,
        json={
            "blockType": "outcome_metrics",
            "universityId": "u-1",
            "data": {"graduationRate": 0.88, "averageStartingSalary": 61000},
        },
        headers=ADMIN,
    )
    assert response.status_code == 201
    body = response.json()
    assert body["write"]["live_fields"] == ["average_starting_salary", "graduation_rate"]
    assert body["invalidated_tags"] == ["canonical", "outcomes"]

    outcomes = await api_client.get(f"{UNIVERSITIES}/pine-university/profile/outcomes")
    assert outcomes.json()["graduation_rate"] == 0.88


@pytest.mark.asyncio
async def test_hard_block_reads_agree_across_profile_and_microcontent(api_client, campus):
    micro_before = await api_client.get(f"{UNIVERSITIES}/pine-university/profile/microcontent")
    assert micro_before.json() == {"blocks": []}

    saved = await api_client.post(
        BLOCKS,
        json={"blockType": "outcome_metrics", "universityId": "u-1", "data": {"graduationRate": 0.9}},
        headers=ADMIN,
    )
    assert saved.status_code == 201

    profile = await api_client.get(f"{UNIVERSITIES}/pine-university/profile")
    micro_after = await api_client.get(f"{UNIVERSITIES}/pine-university/profile/microcontent")
    assert [block["block_type"] for block in profile.json()["blocks"]] == ["outcome_metrics"]
    assert micro_after.json() == {"blocks": []}


@pytest.mark.asyncio
async def test_duplicate_and_bulk_delete(api_client, campus):
    created = await api_client.post(
        BLOCKS,
        json={
            "blockType": "faq_accordion",
            "universityId": "u-1",
            "title": "Dorms",
            "data": {"question": "Are dorms co-ed?", "answer": "Some are."},
        },
        headers=EDITOR,
    )
    assert created.status_code == 201
    block_id = created.json()["block"]["id"]

    copies = await api_client.post(
        f"{BLOCKS}/{block_id}/duplicate",
        json={"target_university_ids": ["u-2"]},
        headers=EDITOR,
    )
    assert copies.status_code == 201
    assert copies.json()[0]["title"] == "[COPY] Dorms"
    assert copies.json()[0]["priority"] == 999

    oak = await api_client.get(f"{UNIVERSITIES}/oak-university/profile")
    assert [block["title"] for block in oak.json()["blocks"]] == ["[COPY] Dorms"]

    deleted = await api_client.post(
        f"{BLOCKS}/bulk-delete",
        json={"block_ids": [block_id, copies.json()[0]["id"]]},
        headers=EDITOR,
    )
    assert deleted.status_code == 200
    assert deleted.json() == {"deleted": 2}

    oak = await api_client.get(f"{UNIVERSITIES}/oak-university/profile")
    assert oak.json()["blocks"] == []


@pytest.mark.asyncio
async def test_hard_blocks_cannot_be_duplicated_or_deleted(api_client, campus):
    await campus.blocks.save(
        ContentBlock(
            id="hard-1",
            university_id="u-1",
            block_type="deadline_card",
            title="Deadline",
            raw_data={"label": "Regular", "deadline": "2027-01-15"},
            is_hard=True,
        )
    )

    duplicate = await api_client.post(
        f"{BLOCKS}/hard-1/duplicate",
        json={"target_university_ids": ["u-2"]},
        headers=ADMIN,
    )
    assert duplicate.status_code == 403
    assert duplicate.json()["detail"] == "permission_denied"

    deleted = await api_client.post(f"{BLOCKS}/bulk-delete", json={"block_ids": ["hard-1"]}, headers=ADMIN)
    assert deleted.status_code == 403
    assert deleted.json()["block_ids"] == ["hard-1"]
    assert await campus.blocks.get("hard-1") is not None


@pytest.mark.asyncio
async def test_list_and_reorder_blocks(api_client, campus):
    for title in ("First", "Second"):
        response = await api_client.post(
            BLOCKS,
            json={
                "blockType": "call_to_action",
                "universityId": "u-1",
                "title": title,
                "data": {"buttonText": title, "url": "https://pine.example"},
            },
            headers=EDITOR,
        )
        assert response.status_code == 201

    listed = await api_client.get(f"{UNIVERSITIES}/u-1/blocks", headers=EDITOR)
    assert listed.status_code == 200
    first, second = listed.json()

    reordered = await api_client.patch(
        f"{UNIVERSITIES}/u-1/blocks/order",
        json={"items": [{"id": first["id"], "priority": 10}, {"id": second["id"], "priority": 1}]},
        headers=EDITOR,
    )
    assert reordered.status_code == 200
    assert [block["title"] for block in reordered.json()] == ["Second", "First"]
