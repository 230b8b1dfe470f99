from fastapi import APIRouter

from app.branchops.routers.assets import router as assets_router
from app.branchops.routers.assignments import router as assignments_router
from app.branchops.routers.health import router as health_router
from app.branchops.routers.transfers import router as transfers_router

api_router = APIRouter()
api_router.include_router(health_router)
api_router.include_router(assets_router, tags=["assets"])
api_router.include_router(transfers_router, tags=["transfers"])
api_router.include_router(assignments_router, tags=["assignments"])
