"""
Main API router that includes all endpoint routers.
"""
from fastapi import APIRouter

from smsgateway.api.v1.endpoints import sms


# Create main API router
api_router = APIRouter()

api_router.include_router(
    sms.router,
    prefix="/sms",
    tags=["SMS"]
)
