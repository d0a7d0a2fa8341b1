"""V1 API router aggregation."""

from fastapi import APIRouter

from app.api.v1.billing import router as billing_router
from app.api.v1.companies import router as companies_router
from app.api.v1.feed import router as feed_router
from app.api.v1.members import router as members_router
from app.api.v1.platform import router as platform_router
from app.api.v1.points import router as points_router

v1_router = APIRouter(prefix="/v1")
v1_router.include_router(companies_router)
v1_router.include_router(members_router)
v1_router.include_router(points_router)
v1_router.include_router(billing_router)
v1_router.include_router(platform_router)
v1_router.include_router(feed_router)
