"""Global error handlers ensuring request_id is included in JSON responses."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.api.request_id import get_request_id
from app.profiles.domain.errors import DependencyDegraded, ProfileError

logger = logging.getLogger(__name__)


def install_error_handlers(app: FastAPI) -> None:
	@app.exception_handler(StarletteHTTPException)
	async def http_exc_handler(request: Request, exc: StarletteHTTPException):  # type: ignore[override]
		rid = get_request_id(request)
		payload = {"detail": exc.detail, "request_id": rid}
		return JSONResponse(status_code=exc.status_code, content=payload)

	@app.exception_handler(RequestValidationError)
	async def validation_exc_handler(request: Request, exc: RequestValidationError):  # type: ignore[override]
		rid = get_request_id(request)
		payload = {"detail": "validation_error", "errors": jsonable_encoder(exc.errors()), "request_id": rid}
		return JSONResponse(status_code=422, content=payload)

	@app.exception_handler(ProfileError)
	async def profile_exc_handler(request: Request, exc: ProfileError):  # type: ignore[override]
		rid = get_request_id(request)
		if exc.status_code >= 500 or isinstance(exc, DependencyDegraded):
			logger.error("profile_request_failed", extra={"code": exc.code, "path": request.url.path}, exc_info=exc)
		payload = exc.to_payload()
		payload["request_id"] = rid
		return JSONResponse(status_code=exc.status_code, content=jsonable_encoder(payload))
