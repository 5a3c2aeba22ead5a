"""
Event type definitions for the event bus.
"""
from enum import Enum


class EventType(str, Enum):
    """Event types published by the SMS service."""

    # Lifecycle events
    SERVICE_READY = "service.ready"
    SERVICE_ERROR = "service.error"
    SERVICE_STOPPED = "service.stopped"

    # Dispatch events
    SMS_SENT = "sms.sent"
    SMS_ERROR = "sms.error"

    # Retry queue events
    SMS_RETRY_SUCCEEDED = "sms.retry_succeeded"
    SMS_RETRY_DROPPED = "sms.retry_dropped"

    # Maintenance events
    CACHE_CLEANED = "cache.cleaned"
