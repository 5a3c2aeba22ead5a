"""
Application settings and configuration management.
"""
from typing import List, Optional, Union
from pydantic import AnyHttpUrl, field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings."""
    # Base
    PROJECT_NAME: str = "SMS Gateway"
    PROJECT_DESCRIPTION: str = "Multi-provider outbound SMS dispatch service"
    VERSION: str = "0.1.0"
    API_PREFIX: str = "/api/v1"
    DEBUG: bool = False
    ENVIRONMENT: str = "development"

    # CORS
    BACKEND_CORS_ORIGINS: List[Union[str, AnyHttpUrl]] = []

    @field_validator("BACKEND_CORS_ORIGINS", mode='before')
    def assemble_cors_origins(cls, v: Union[str, List[str]]) -> Union[List[str], str]:
        """Parse CORS origins from string or list."""
        if isinstance(v, str) and not v.startswith("["):
            return [i.strip() for i in v.split(",")]
        elif isinstance(v, (list, str)):
            return v
        raise ValueError(v)

    # Twilio
    TWILIO_ENABLED: bool = False
    TWILIO_ACCOUNT_SID: Optional[str] = None
    TWILIO_AUTH_TOKEN: Optional[str] = None
    TWILIO_PHONE_NUMBER: Optional[str] = None
    TWILIO_API_URL: str = "https://api.twilio.com/2010-04-01"
    TWILIO_TIMEOUT: float = 30.0  # seconds

    # Orange SMS
    ORANGE_SMS_ENABLED: bool = False
    ORANGE_SMS_API_URL: Optional[str] = None
    ORANGE_SMS_API_KEY: Optional[str] = None
    ORANGE_SMS_SENDER: str = "COVOITURAPP"
    ORANGE_SMS_TIMEOUT: float = 30.0

    # Bulk SMS
    BULK_SMS_ENABLED: bool = False
    BULK_SMS_API_URL: Optional[str] = None
    BULK_SMS_USERNAME: Optional[str] = None
    BULK_SMS_PASSWORD: Optional[str] = None
    BULK_SMS_SENDER: str = "COVOITURAPP"
    BULK_SMS_TIMEOUT: float = 30.0

    # Provider selection
    DEFAULT_SMS_PROVIDER: str = "SIMULATION"
    SMS_OTP_PROVIDER: str = "TWILIO"  # Preferred provider for OTP codes

    # Cost per SMS segment (FCFA)
    SMS_COST_TWILIO: int = 15
    SMS_COST_ORANGE_SMS: int = 10
    SMS_COST_BULK_SMS: int = 12
    SMS_COST_SIMULATION: int = 0

    # Rate limits and dispatch
    SMS_RATE_LIMIT_MINUTE: int = 10
    SMS_RATE_LIMIT_HOUR: int = 100
    SMS_RATE_LIMIT_OTP_DAY: int = 20
    SMS_MAX_RETRIES: int = 3
    SMS_RETRY_BACKOFF_SECONDS: float = 1.0
    SMS_MAX_MESSAGE_LENGTH: int = 1600

    # Retry queue
    SMS_RETRY_QUEUE_INTERVAL_SECONDS: int = 300
    SMS_RETRY_QUEUE_MAX_ATTEMPTS: int = 3
    SMS_RETRY_QUEUE_INITIAL_DELAY_SECONDS: int = 300
    SMS_RETRY_QUEUE_BACKOFF_SECONDS: int = 600
    SMS_RETRY_QUEUE_MAX_AGE_SECONDS: int = 24 * 60 * 60

    # Maintenance
    SMS_CACHE_PRUNE_INTERVAL_SECONDS: int = 60 * 60
    SMS_SHUTDOWN_DRAIN_TIMEOUT: float = 30.0

    # Simulation provider
    SMS_SIMULATION_SUCCESS_RATE: float = 0.95
    SMS_SIMULATION_MIN_DELAY: float = 0.5
    SMS_SIMULATION_MAX_DELAY: float = 1.5

    # Logging
    LOG_LEVEL: str = "INFO"

    class Config:
        """Pydantic config."""
        case_sensitive = True
        env_file = ".env"

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"


# Create singleton settings instance
settings = Settings()
