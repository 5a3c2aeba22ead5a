"""
Event handlers for application lifecycle events.
"""
import logging

from fastapi import FastAPI

from smsgateway.core.config import settings
from smsgateway.services.event_bus.bus import get_event_bus
from smsgateway.services.sms.service import create_sms_service

logger = logging.getLogger("smsgateway")


async def startup_event_handler(app: FastAPI) -> None:
    """
    Handle application startup.

    Build the SMS service from settings and start its background tasks.
    Invalid provider configuration aborts startup.
    """
    logger.info(f"Starting {settings.PROJECT_NAME}")

    sms_service = await create_sms_service(settings, get_event_bus())
    await sms_service.start()
    app.state.sms_service = sms_service

    logger.info(f"{settings.PROJECT_NAME} v{settings.VERSION} startup complete")


async def shutdown_event_handler(app: FastAPI) -> None:
    """
    Handle application shutdown.

    Drain the retry queue once, then release provider connections.
    """
    logger.info(f"Shutting down {settings.PROJECT_NAME}")

    sms_service = getattr(app.state, "sms_service", None)
    if sms_service is not None:
        await sms_service.shutdown(settings.SMS_SHUTDOWN_DRAIN_TIMEOUT)

    await get_event_bus().shutdown()
    logger.info("Application shutdown complete")
