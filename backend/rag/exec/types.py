"""Type definitions for provider call execution."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from backend.rag.config import Settings


class CallPolicy(BaseModel):
    """Per call-site retry and timeout policy."""

    max_attempts: int = Field(default=3, ge=1, description="Total attempts")
    timeout_s: float = Field(default=30.0, gt=0, description="Per-attempt timeout")

    @classmethod
    def from_settings(cls, settings: Settings) -> "CallPolicy":
        return cls(
            max_attempts=settings.provider_max_attempts,
            timeout_s=settings.provider_timeout_s,
        )


class BreakerPolicy(BaseModel):
    """Policy for circuit breaker behavior."""

    failure_threshold: int = Field(
        default=5, description="Number of failures before opening breaker"
    )
    window_seconds: int = Field(
        default=60, description="Time window for counting failures"
    )
    cooldown_seconds: int = Field(
        default=30, description="Cooldown before allowing a trial call in half-open state"
    )

    @classmethod
    def from_settings(cls, settings: Settings) -> "BreakerPolicy":
        return cls(
            failure_threshold=settings.breaker_failure_threshold,
            window_seconds=settings.breaker_timeout_s,
            cooldown_seconds=settings.breaker_cooldown_s,
        )


BreakerStateName = Literal["closed", "open", "half_open"]


class CircuitBreakerState(BaseModel):
    """State of a circuit breaker."""

    failures: int = 0
    opened_at: datetime | None = None
    state: BreakerStateName = "closed"
