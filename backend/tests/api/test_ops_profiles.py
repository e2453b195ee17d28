import pytest

from app.profiles.domain.cache import ProfileCache
from app.settings import settings


@pytest.mark.asyncio
async def test_health_probes(api_client):
    live = await api_client.get("/health/live")
    assert live.status_code == 200

    ready = await api_client.get("/health/ready")
    assert ready.status_code == 200
    assert ready.json()["checks"]["redis"]["ok"] is True
    assert "postgres" not in ready.json()["checks"]

    startup = await api_client.get("/health/startup")
    assert startup.status_code == 200
    assert startup.json()["status"] == "ok"


@pytest.mark.asyncio
async def test_cache_flush_requires_admin_token(api_client, monkeypatch):
    monkeypatch.setattr(settings, "obs_admin_token", "ops-secret")

    response = await api_client.post("/ops/profile-cache/flush", headers={"X-Admin-Token": "wrong"})
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_cache_flush_clears_profiles(api_client, profile_world, fake_redis, monkeypatch):
    monkeypatch.setattr(settings, "obs_admin_token", "ops-secret")
    profile_world.add_university("u-1", "cedar-college")
    warm = await api_client.get("/api/profiles/v1/universities/cedar-college/profile")
    assert warm.status_code == 200
    assert await fake_redis.get(ProfileCache.key("cedar-college", "canonical")) is not None

    response = await api_client.post("/ops/profile-cache/flush", headers={"X-Admin-Token": "ops-secret"})
    assert response.status_code == 200
    assert response.json() == {"status": "ok", "slugs": 1}
    assert await fake_redis.get(ProfileCache.key("cedar-college", "canonical")) is None

    sweep = await api_client.post("/ops/profile-cache/sweep", headers={"Authorization": "Bearer ops-secret"})
    assert sweep.status_code == 200
    assert sweep.json()["pruned"] == 0
