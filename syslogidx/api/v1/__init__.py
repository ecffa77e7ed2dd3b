from fastapi import APIRouter
from .status import router as status_router

# Create v1 API router
api_v1_router = APIRouter(prefix="/api/v1")

# Include sub-routers
api_v1_router.include_router(status_router)

__all__ = ["api_v1_router"]
