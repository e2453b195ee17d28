"""University profile package integration helpers exposed to the application."""

from app.profiles.api import router
from app.profiles.domain.container import configure, configure_postgres
from app.profiles.jobs.runner import spawn_jobs

__all__ = ["router", "configure", "configure_postgres", "spawn_jobs"]
