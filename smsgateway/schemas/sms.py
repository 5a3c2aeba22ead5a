"""
Pydantic schemas for SMS dispatch results and provider configuration.
"""
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ProviderName(str, Enum):
    """Known SMS gateways."""
    TWILIO = "TWILIO"
    ORANGE_SMS = "ORANGE_SMS"
    BULK_SMS = "BULK_SMS"
    SIMULATION = "SIMULATION"


class NotificationKind(str, Enum):
    """Template keys for templated messages."""
    OTP = "OTP"
    VERIFICATION_COMPTE = "VERIFICATION_COMPTE"
    CONFIRMATION_PAIEMENT = "CONFIRMATION_PAIEMENT"
    ECHEC_PAIEMENT = "ECHEC_PAIEMENT"
    REMBOURSEMENT = "REMBOURSEMENT"
    SOLDE_INSUFFISANT = "SOLDE_INSUFFISANT"
    LITIGE = "LITIGE"
    NOTIFICATION_TRAJET = "NOTIFICATION_TRAJET"


class DeliveryStatus(str, Enum):
    """Normalized delivery states across providers."""
    QUEUED = "QUEUED"
    SENT = "SENT"
    DELIVERED = "DELIVERED"
    UNDELIVERED = "UNDELIVERED"
    FAILED = "FAILED"
    UNKNOWN = "UNKNOWN"
    ERROR = "ERROR"


OTP_MESSAGE_TYPE = NotificationKind.OTP.value
GENERAL_MESSAGE_TYPE = "GENERAL"


def _enum_value(v):
    return v.value if isinstance(v, Enum) else v


class ProviderConfig(BaseModel):
    """Static configuration of one gateway."""
    model_config = ConfigDict(frozen=True)

    name: ProviderName = Field(..., description="Provider name")
    enabled: bool = Field(False, description="Whether the provider may be used")
    credentials: Dict[str, Optional[str]] = Field(default_factory=dict, description="Provider specific credentials")
    timeout: float = Field(30.0, description="Request timeout in seconds")
    sender: Optional[str] = Field(None, description="Sender identity")
    cost_per_segment: int = Field(0, description="Cost of one SMS segment in FCFA")


class SendAttemptResult(BaseModel):
    """Outcome of a single adapter call."""
    model_config = ConfigDict(frozen=True)

    success: bool
    provider: str
    message_id: Optional[str] = None
    status: DeliveryStatus = DeliveryStatus.UNKNOWN
    cost: int = 0
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    @field_validator("provider", "error_code", mode="before")
    @classmethod
    def unwrap_enum(cls, v):
        return _enum_value(v)


class SendResult(BaseModel):
    """Result returned to callers of the dispatcher."""
    success: bool = Field(..., description="Whether the message was handed to a gateway")
    message_id: Optional[str] = Field(None, description="Provider message ID")
    provider: Optional[str] = Field(None, description="Provider that accepted the message")
    status: Optional[DeliveryStatus] = Field(None, description="Delivery status reported by the provider")
    cost: int = Field(0, description="Cost in FCFA")
    message_type: Optional[str] = Field(None, description="Message type")
    error: Optional[str] = Field(None, description="Error message on failure")
    code: Optional[str] = Field(None, description="Error code on failure")
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @field_validator("provider", "code", "message_type", mode="before")
    @classmethod
    def unwrap_enum(cls, v):
        return _enum_value(v)


class DeliveryStatusResult(BaseModel):
    """Delivery status of a previously sent message."""
    message_id: Optional[str] = None
    provider: Optional[str] = None
    status: DeliveryStatus = DeliveryStatus.UNKNOWN
    raw_status: Optional[str] = Field(None, description="Status string as reported by the provider")
    error: Optional[str] = None
    checked_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @field_validator("provider", mode="before")
    @classmethod
    def unwrap_enum(cls, v):
        return _enum_value(v)


class RetryQueueItem(BaseModel):
    """A message waiting for deferred redelivery."""
    id: str = Field(..., description="Queue item ID")
    recipient: str = Field(..., description="Normalized recipient number")
    body: str = Field(..., description="Rendered message body")
    message_type: str = Field(..., description="Message type")
    attempts: int = Field(0, description="Redelivery attempts made")
    created_at: float = Field(..., description="Enqueue time (epoch seconds)")
    next_retry_at: float = Field(..., description="Earliest next attempt (epoch seconds)")
    last_error: Optional[str] = Field(None, description="Error of the last failed attempt")
