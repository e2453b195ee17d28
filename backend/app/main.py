"""FastAPI application entrypoint."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api import ops
from app.api.errors import install_error_handlers
from app.api.middleware_request_id import RequestIdMiddleware
from app.api.openapi import custom_openapi
from app.infra import postgres
from app.infra.redis import redis_client
from app.obs import init as obs_init
from app.profiles import configure_postgres as configure_profiles
from app.profiles import router as profiles_router
from app.profiles import spawn_jobs as spawn_profile_jobs
from app.profiles.domain.registry import FieldRegistry
from app.settings import settings


@asynccontextmanager
async def lifespan(app: FastAPI):
	# Fails fast with RegistryConfigurationError before any traffic is served.
	FieldRegistry.default()
	pool = None
	if settings.profile_store_backend == "postgres":
		pool = await postgres.init_pool()
		if pool is not None:
			configure_profiles(pool, redis_client)
	job_tasks: list[asyncio.Task] = []
	if settings.profile_jobs_enabled:
		job_tasks.extend(
			spawn_profile_jobs(
				sweep_interval=settings.profile_cache_sweep_seconds,
				archive_interval=settings.profile_archive_interval_seconds,
			)
		)
	try:
		yield
	finally:
		if job_tasks:
			for task in job_tasks:
				task.cancel()
			await asyncio.gather(*job_tasks, return_exceptions=True)
		await postgres.close_pool()


app = FastAPI(title="University Profiles API", lifespan=lifespan)
custom_openapi(app)
install_error_handlers(app)

allow_origins = list(getattr(settings, "cors_allow_origins", []))
if not allow_origins:
	allow_origins = ["http://localhost:3000"] if settings.is_dev() else []

# Starlette disallows wildcard '*' with allow_credentials=True. Replace '*' with explicit origins.
if "*" in allow_origins:
	allow_origins = ["http://localhost:3000", "http://127.0.0.1:3000"] if settings.is_dev() else []

app.add_middleware(
	CORSMiddleware,
	allow_origins=allow_origins,
	allow_credentials=True,
	allow_methods=["*"],
	allow_headers=["*"],
)

obs_init(app)

# Ensure every request carries an X-Request-Id and make it available on request.state
app.add_middleware(RequestIdMiddleware)

app.include_router(ops.router, tags=["ops"])
app.include_router(profiles_router)
