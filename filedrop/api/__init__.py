"""
API router initialization and setup.
"""
from fastapi import APIRouter, Depends

from .deps import require_api_key
from .endpoints import jobs, status, uploads

api_router = APIRouter()

api_router.include_router(
    status.router,
    tags=["status"]
)

api_router.include_router(
    jobs.router,
    tags=["jobs"],
    dependencies=[Depends(require_api_key)]
)

api_router.include_router(
    uploads.router,
    tags=["uploads"],
    dependencies=[Depends(require_api_key)]
)
