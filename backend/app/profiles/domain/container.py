"""Lightweight service container shared by profile modules."""

from __future__ import annotations

from typing import Optional

import asyncpg
from redis.asyncio import Redis

from app.infra.redis import RedisProxy, redis_client
from app.profiles.domain.blocks import BlockStore
from app.profiles.domain.cache import ProfileCache
from app.profiles.domain.claims import ClaimSink, InMemoryClaimSink, RedisStreamClaimSink
from app.profiles.domain.derivation import DerivationLookups
from app.profiles.domain.drafts import DraftReviewService
from app.profiles.domain.dual_write import DualWriteCoordinator
from app.profiles.domain.lookups import UrlMediaResolver
from app.profiles.domain.registry import FieldRegistry, get_registry
from app.profiles.domain.repositories import (
    BlockRepository,
    InMemoryBlockRepository,
    InMemoryTemplateRepository,
    InMemoryUniversityRepository,
    TemplateRepository,
    UniversityRepository,
)
from app.profiles.domain.service import ProfileService
from app.profiles.infra.postgres_repo import (
    PostgresBlockRepository,
    PostgresTemplateRepository,
    PostgresUniversityRepository,
)
from app.settings import settings

_registry: FieldRegistry = get_registry()
_university_repository: UniversityRepository = InMemoryUniversityRepository()
_block_repository: BlockRepository = InMemoryBlockRepository(_university_repository)
_template_repository: TemplateRepository = InMemoryTemplateRepository()
_claim_sink: ClaimSink = InMemoryClaimSink()
_lookups: DerivationLookups = DerivationLookups()
_redis_proxy: RedisProxy | Redis = redis_client
_cache: ProfileCache
_store: BlockStore
_service: ProfileService


def _wire() -> None:
    global _cache, _store, _service
    _cache = ProfileCache(
        _university_repository,
        _block_repository,
        _registry,
        redis=_redis_proxy,
        ttl_seconds=settings.profile_cache_ttl_seconds,
    )
    _store = BlockStore(
        _block_repository,
        _template_repository,
        _university_repository,
        _registry,
        _cache,
        lookups=_lookups,
        copy_priority=settings.profile_copy_priority,
    )
    _service = ProfileService(
        universities=_university_repository,
        registry=_registry,
        cache=_cache,
        store=_store,
        coordinator=DualWriteCoordinator(_university_repository, _registry, _claim_sink),
        drafts=DraftReviewService(_university_repository, _registry, _cache),
        lookups=_lookups,
    )


def configure(
    *,
    registry: Optional[FieldRegistry] = None,
    university_repository: Optional[UniversityRepository] = None,
    block_repository: Optional[BlockRepository] = None,
    template_repository: Optional[TemplateRepository] = None,
    claim_sink: Optional[ClaimSink] = None,
    lookups: Optional[DerivationLookups] = None,
    redis_proxy: Optional[RedisProxy | Redis] = None,
) -> None:
    global _registry, _university_repository, _block_repository, _template_repository
    global _claim_sink, _lookups, _redis_proxy
    if registry is not None:
        _registry = registry
    if university_repository is not None:
        _university_repository = university_repository
    if block_repository is not None:
        _block_repository = block_repository
    if template_repository is not None:
        _template_repository = template_repository
    if claim_sink is not None:
        _claim_sink = claim_sink
    if lookups is not None:
        _lookups = lookups
    _redis_proxy = redis_proxy or _redis_proxy
    _wire()


def configure_postgres(pool: asyncpg.Pool, redis_conn: Redis | RedisProxy) -> None:
    proxy = redis_conn if isinstance(redis_conn, RedisProxy) else RedisProxy(redis_conn)
    configure(
        university_repository=PostgresUniversityRepository(pool, _registry),
        block_repository=PostgresBlockRepository(pool),
        template_repository=PostgresTemplateRepository(pool),
        claim_sink=RedisStreamClaimSink(
            proxy,
            stream=settings.profile_claim_stream,
            maxlen=settings.profile_claim_stream_maxlen,
        ),
        lookups=DerivationLookups(media=UrlMediaResolver(settings.media_base_url)),
        redis_proxy=proxy,
    )


def get_registry_instance() -> FieldRegistry:
    return _registry


def get_profile_service() -> ProfileService:
    return _service


def get_profile_cache() -> ProfileCache:
    return _cache


def get_block_store() -> BlockStore:
    return _store


def get_claim_sink() -> ClaimSink:
    return _claim_sink


_wire()
