import asyncio
import sys
from dataclasses import dataclass
from pathlib import Path

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from fakeredis.aioredis import FakeRedis

# Ensure backend package is importable when tests run from repo root
BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
	sys.path.insert(0, str(BACKEND_ROOT))

from app.infra import postgres
from app.infra.redis import redis_client
from app.main import app
from app.profiles.domain import container
from app.profiles.domain.claims import InMemoryClaimSink
from app.profiles.domain.derivation import DerivationLookups
from app.profiles.domain.lookups import InMemoryMediaResolver
from app.profiles.domain.models import University
from app.profiles.domain.repositories import (
	InMemoryBlockRepository,
	InMemoryTemplateRepository,
	InMemoryUniversityRepository,
)
from app.profiles.domain.service import ProfileService
from app.settings import settings


# Ensure a selector-based event loop policy on Windows to avoid Proactor issues with async IO
if hasattr(asyncio, "WindowsSelectorEventLoopPolicy"):
	try:
		asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())
	except Exception:
		# Non-fatal; proceed with default policy
		pass


@pytest_asyncio.fixture(autouse=True)
async def fake_redis():
	from app.infra.redis import set_redis_client
	original = redis_client.client
	client = FakeRedis(decode_responses=True)
	set_redis_client(client)
	try:
		yield client
	finally:
		set_redis_client(original)
		await client.flushall()


@pytest.fixture(autouse=True)
def patch_postgres(monkeypatch):
	async def _noop():
		return None

	monkeypatch.setattr(postgres, "init_pool", _noop)
	monkeypatch.setattr(postgres, "close_pool", _noop)


@pytest.fixture(autouse=True)
def force_test_settings():
	"""Ensure a consistent test environment.

	API tests authenticate via X-User-Id/X-User-Roles headers, which are only
	accepted in dev mode, and profiles are served from in-memory repositories.
	"""
	original_env = settings.environment
	original_backend = settings.profile_store_backend
	original_jobs = settings.profile_jobs_enabled
	settings.environment = "dev"
	settings.profile_store_backend = "memory"
	settings.profile_jobs_enabled = False
	try:
		yield
	finally:
		settings.environment = original_env
		settings.profile_store_backend = original_backend
		settings.profile_jobs_enabled = original_jobs


@dataclass
class ProfileWorld:
	universities: InMemoryUniversityRepository
	blocks: InMemoryBlockRepository
	templates: InMemoryTemplateRepository
	claims: InMemoryClaimSink
	media: InMemoryMediaResolver

	@property
	def service(self) -> ProfileService:
		return container.get_profile_service()

	def add_university(self, university_id: str, slug: str, name: str | None = None, **fields) -> University:
		return self.universities.add(
			University(id=university_id, slug=slug, name=name or slug.replace("-", " ").title(), fields=dict(fields))
		)


@pytest.fixture(autouse=True)
def profile_world() -> ProfileWorld:
	universities = InMemoryUniversityRepository()
	world = ProfileWorld(
		universities=universities,
		blocks=InMemoryBlockRepository(universities),
		templates=InMemoryTemplateRepository(),
		claims=InMemoryClaimSink(),
		media=InMemoryMediaResolver(),
	)
	container.configure(
		university_repository=world.universities,
		block_repository=world.blocks,
		template_repository=world.templates,
		claim_sink=world.claims,
		lookups=DerivationLookups(media=world.media),
		redis_proxy=redis_client,
	)
	return world


@pytest_asyncio.fixture
async def api_client():
	transport = ASGITransport(app=app)
	async with AsyncClient(transport=transport, base_url="http://testserver") as client:
		yield client
