"""
Custom exception classes and error codes for the SMS gateway.
"""
from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(str, Enum):
    """Error codes carried by exceptions and failed send results."""

    # Validation
    MISSING_PARAMETER = "MISSING_PARAMETER"
    INVALID_PHONE_NUMBER = "INVALID_PHONE_NUMBER"
    INVALID_OTP_CODE = "INVALID_OTP_CODE"
    MESSAGE_TOO_LONG = "MESSAGE_TOO_LONG"
    UNKNOWN_TEMPLATE = "UNKNOWN_TEMPLATE"
    MISSING_TEMPLATE_FIELD = "MISSING_TEMPLATE_FIELD"
    INVALID_TEMPLATE_FIELD = "INVALID_TEMPLATE_FIELD"

    # Admission
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"

    # Transport
    PROVIDER_ERROR = "PROVIDER_ERROR"
    PROVIDER_TIMEOUT = "PROVIDER_TIMEOUT"
    PROVIDER_AUTH_ERROR = "PROVIDER_AUTH_ERROR"
    PROVIDER_RATE_LIMITED = "PROVIDER_RATE_LIMITED"
    MALFORMED_RESPONSE = "MALFORMED_RESPONSE"
    SIMULATION_ERROR = "SIMULATION_ERROR"
    NO_PROVIDER_AVAILABLE = "NO_PROVIDER_AVAILABLE"
    UNKNOWN_PROVIDER = "UNKNOWN_PROVIDER"

    # Setup
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"

    SMS_ERROR = "SMS_ERROR"


# Failures after which the dispatcher stops trying other providers
RATE_LIMIT_CODES = {ErrorCode.RATE_LIMIT_EXCEEDED, ErrorCode.PROVIDER_RATE_LIMITED}


class SMSGatewayException(Exception):
    """Base exception class for the SMS gateway."""

    def __init__(
        self,
        message: str,
        code: str = ErrorCode.SMS_ERROR,
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)


class ConfigurationError(SMSGatewayException):
    """Raised at startup when provider configuration is unusable."""

    def __init__(
        self,
        message: str = "Invalid SMS configuration",
        errors: Optional[list] = None,
    ):
        self.errors = errors or []
        super().__init__(
            message=message,
            code=ErrorCode.CONFIGURATION_ERROR,
            status_code=500,
            details={"errors": self.errors},
        )


class ValidationError(SMSGatewayException):
    """Raised for invalid send requests."""

    def __init__(
        self,
        message: str = "Validation error",
        code: str = ErrorCode.MISSING_PARAMETER,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, code=code, status_code=422, details=details)


class InvalidPhoneNumberError(ValidationError):
    """Raised when a phone number matches none of the accepted shapes."""

    def __init__(self, message: str = "Invalid phone number", details: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, code=ErrorCode.INVALID_PHONE_NUMBER, details=details)


class MissingTemplateFieldError(ValidationError):
    """Raised when a template variable is missing."""

    def __init__(self, template_key: str, missing: list):
        self.missing = missing
        super().__init__(
            message=f"Missing fields for {template_key}: {', '.join(missing)}",
            code=ErrorCode.MISSING_TEMPLATE_FIELD,
            details={"template": template_key, "missing_fields": missing},
        )


class RateLimitExceededError(SMSGatewayException):
    """Raised when a recipient exceeds its sending quota."""

    def __init__(self, message: str = "SMS rate limit exceeded for this number"):
        super().__init__(message=message, code=ErrorCode.RATE_LIMIT_EXCEEDED, status_code=429)


class ProviderError(SMSGatewayException):
    """Raised when a gateway call fails."""

    def __init__(
        self,
        message: str = "SMS provider error",
        code: str = ErrorCode.PROVIDER_ERROR,
        provider: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        status_code: int = 502,
    ):
        self.provider = provider
        super().__init__(message=message, code=code, status_code=status_code, details=details)


class ProviderTimeoutError(ProviderError):
    """Raised when a gateway does not answer within its timeout."""

    def __init__(self, provider: str, timeout: float):
        super().__init__(
            message=f"{provider} did not respond within {timeout}s",
            code=ErrorCode.PROVIDER_TIMEOUT,
            provider=provider,
            details={"timeout": timeout},
            status_code=504,
        )


class ProviderAuthError(ProviderError):
    """Raised when gateway credentials are rejected."""

    def __init__(self, provider: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=f"Invalid {provider} credentials",
            code=ErrorCode.PROVIDER_AUTH_ERROR,
            provider=provider,
            details=details,
            status_code=401,
        )


class ProviderRateLimitedError(ProviderError):
    """Raised when a gateway throttles us."""

    def __init__(self, provider: str, retry_after: int = 60):
        super().__init__(
            message=f"{provider} is throttling requests",
            code=ErrorCode.PROVIDER_RATE_LIMITED,
            provider=provider,
            details={"retry_after": retry_after},
            status_code=503,
        )
