"""
API router - aggregates all route modules.
"""
from fastapi import APIRouter
from reviewflow.api.health import router as health_router
from reviewflow.api.review_tracking import router as review_tracking_router

api_router = APIRouter()
api_router.include_router(health_router)
api_router.include_router(review_tracking_router)
