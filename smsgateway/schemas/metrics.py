"""
Pydantic schemas for SMS statistics and health reporting.
"""
from typing import Dict, Optional
from datetime import datetime
from pydantic import BaseModel, Field


class CounterStats(BaseModel):
    """Send counters for one provider or message type."""
    sent: int = Field(0, description="Number of send attempts")
    succeeded: int = Field(0, description="Number of successful attempts")
    failed: int = Field(0, description="Number of failed attempts")
    cost: int = Field(0, description="Accumulated cost in FCFA")


class PeriodInfo(BaseModel):
    """Requested reporting period."""
    start: Optional[datetime] = Field(None, description="Period start")
    end: Optional[datetime] = Field(None, description="Period end")


class CacheInfo(BaseModel):
    """In-memory state sizes."""
    rate_limit_keys: int = Field(..., description="Tracked rate limit keys")
    retry_queue: int = Field(..., description="Messages waiting for redelivery")


class ProviderAvailability(BaseModel):
    """Provider enablement and configuration."""
    enabled: bool
    configured: bool


class StatsSnapshot(BaseModel):
    """Dispatch statistics."""
    total_sent: int = Field(..., description="Total send attempts")
    total_succeeded: int = Field(..., description="Total successful attempts")
    total_failed: int = Field(..., description="Total failed attempts")
    total_cost: int = Field(..., description="Total cost in FCFA")
    success_rate: float = Field(..., description="Success rate percentage")
    by_provider: Dict[str, CounterStats] = Field(default_factory=dict)
    by_type: Dict[str, CounterStats] = Field(default_factory=dict)
    period: PeriodInfo = Field(default_factory=PeriodInfo)
    cache: CacheInfo
    providers: Dict[str, ProviderAvailability] = Field(default_factory=dict)
    last_updated: Optional[datetime] = Field(None, description="Time of the last recorded attempt")


class ProviderHealth(ProviderAvailability):
    """Provider status with its counters."""
    stats: CounterStats = Field(default_factory=CounterStats)


class HealthSnapshot(BaseModel):
    """Service health."""
    status: str = Field(..., description="healthy, degraded or stopped")
    timestamp: datetime
    uptime_seconds: float
    running: bool
    providers: Dict[str, ProviderHealth]
    default_provider: str
    cache: CacheInfo
    rate_limits: Dict[str, int]
    max_retries: int
