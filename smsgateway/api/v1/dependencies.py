"""
Dependencies for API endpoints.
"""
from fastapi import Request

from smsgateway.core.exceptions import SMSGatewayException
from smsgateway.services.sms.service import SMSService


async def get_sms_service(request: Request) -> SMSService:
    """
    Get the SMS service created at startup.

    Raises:
        SMSGatewayException: If the service is not running
    """
    sms_service = getattr(request.app.state, "sms_service", None)
    if sms_service is None:
        raise SMSGatewayException(message="SMS service is not available", status_code=503)
    return sms_service
