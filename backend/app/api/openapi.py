from __future__ import annotations

from fastapi.openapi.utils import get_openapi

from app.settings import settings

_TAGS = [
    {"name": "profile-blocks", "description": "Save, duplicate and delete university content blocks."},
    {"name": "profile-universities", "description": "Merged profiles, block ordering and draft review."},
    {"name": "ops", "description": "Health probes, metrics and cache maintenance."},
]


def custom_openapi(app):
    def _gen():
        if app.openapi_schema:
            return app.openapi_schema
        openapi_schema = get_openapi(
            title="University Profiles API",
            version=settings.git_commit[:7] if settings.git_commit else "dev",
            description="Canonical university data merged with editor-managed content blocks.",
            routes=app.routes,
            tags=_TAGS,
        )
        comps = openapi_schema.setdefault("components", {}).setdefault("securitySchemes", {})
        comps["bearerAuth"] = {"type": "http", "scheme": "bearer", "bearerFormat": "JWT"}
        openapi_schema["security"] = [{"bearerAuth": []}]
        app.openapi_schema = openapi_schema
        return openapi_schema

    app.openapi = _gen  # type: ignore[attr-defined]
