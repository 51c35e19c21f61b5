from fastapi import APIRouter
from .api import cutting

# Create main API router
api_router = APIRouter()

# Include all sub-routers
api_router.include_router(cutting.router, prefix="/api", tags=["Cutting Algorithm"])
