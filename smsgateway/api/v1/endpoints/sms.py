"""
API endpoints for SMS monitoring and maintenance.
"""
from datetime import datetime
from typing import Dict, Optional

from fastapi import APIRouter, Depends, Query

from smsgateway.api.v1.dependencies import get_sms_service
from smsgateway.core.exceptions import ValidationError
from smsgateway.schemas.metrics import HealthSnapshot, StatsSnapshot
from smsgateway.schemas.sms import DeliveryStatusResult
from smsgateway.services.sms.service import SMSService

router = APIRouter()


@router.get("/health", response_model=HealthSnapshot)
async def get_health(sms_service: SMSService = Depends(get_sms_service)):
    """
    Get SMS service health: provider status, queue depth and limits.
    """
    return sms_service.get_health()


@router.get("/statistics", response_model=StatsSnapshot)
async def get_statistics(
    start: Optional[datetime] = Query(None, description="Period start (ISO 8601)"),
    end: Optional[datetime] = Query(None, description="Period end (ISO 8601)"),
    sms_service: SMSService = Depends(get_sms_service),
):
    """
    Get dispatch statistics.

    Counters cover the process lifetime; the period is echoed back.
    """
    if start and end and start.timestamp() > end.timestamp():
        raise ValidationError(message="start must be before end")
    return sms_service.get_statistics(start, end)


@router.get("/status/{provider}/{message_id}", response_model=DeliveryStatusResult)
async def get_delivery_status(
    provider: str,
    message_id: str,
    sms_service: SMSService = Depends(get_sms_service),
):
    """
    Get the delivery status of a sent message from its provider.
    """
    return await sms_service.check_status(message_id, provider)


@router.post("/cache/prune", response_model=Dict[str, int])
async def prune_cache(sms_service: SMSService = Depends(get_sms_service)):
    """
    Drop expired rate limit entries.
    """
    return await sms_service.prune_cache()
