"""University profile API routers."""

from fastapi import APIRouter

from . import blocks, universities

router = APIRouter()
router.include_router(blocks.router)
router.include_router(universities.router)

__all__ = ["router"]
