"""
API v1 router aggregation.

This module combines all v1 API routers into a single router
that is mounted at /api/v1.
"""

from fastapi import APIRouter

from tweetcast.api.v1.health import router as health_router
from tweetcast.api.v1.queue import jobs_router, queues_router

api_router = APIRouter()

# Include all routers with their prefixes and tags
api_router.include_router(
    health_router,
    prefix="/health",
    tags=["Health"],
)
api_router.include_router(
    jobs_router,
    prefix="/jobs",
    tags=["Jobs"],
)
api_router.include_router(
    queues_router,
    prefix="/queues",
    tags=["Queues"],
)
