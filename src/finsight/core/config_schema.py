"""Pydantic models for config validation.

``Config.validated()`` returns a typed ``FinsightConfig``.  Environment
overrides arrive as strings; pydantic coerces them to the declared types.
"""

from __future__ import annotations

from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, field_validator

TIMEFRAMES = ("3months", "6months", "1year", "2years")


class CacheConfig(BaseModel):
    """Request-coalescing cache TTLs."""

    ttl_seconds: float = Field(default=30, gt=0)
    net_worth_ttl_seconds: float = Field(default=60, gt=0)


class HistoryConfig(BaseModel):
    """Rolling net-worth history bounds."""

    max_samples: int = Field(default=100, gt=0)
    dedup_interval_seconds: float = Field(default=300, ge=0)


class ValidationConfig(BaseModel):
    """Invariant tolerance and the hard sanity bound."""

    tolerance: Decimal = Decimal("0.01")
    max_abs_total: Decimal = Decimal("1000000000")
    strict: bool = False

    @field_validator("tolerance", "max_abs_total")
    @classmethod
    def _non_negative(cls, v: Decimal) -> Decimal:
        if not v.is_finite() or v < 0:
            raise ValueError(f"must be a finite non-negative number, got {v}")
        return v


class CashFlowConfig(BaseModel):
    window_days: int = Field(default=30, gt=0)


class TrendsConfig(BaseModel):
    """Trend analysis and projection knobs."""

    anomaly_std_multiplier: Decimal = Decimal("2")
    projection_window: int = Field(default=3, ge=2)
    default_timeframe: str = "6months"
    significant_change_pct: float = 10.0

    @field_validator("default_timeframe")
    @classmethod
    def _known_timeframe(cls, v: str) -> str:
        if v not in TIMEFRAMES:
            raise ValueError(f"timeframe must be one of {TIMEFRAMES}, got {v!r}")
        return v


class CurrencyConfig(BaseModel):
    default: str = "USD"


class LoggingConfig(BaseModel):
    level: str = "WARNING"
    file: str | None = None


class FinsightConfig(BaseModel):
    """Root configuration model.

    Uses ``extra="allow"`` so consumers can bolt on custom sections
    without touching this schema.
    """

    model_config = ConfigDict(extra="allow")

    cache: CacheConfig = CacheConfig()
    history: HistoryConfig = HistoryConfig()
    validation: ValidationConfig = ValidationConfig()
    cash_flow: CashFlowConfig = CashFlowConfig()
    trends: TrendsConfig = TrendsConfig()
    currency: CurrencyConfig = CurrencyConfig()
    logging: LoggingConfig = LoggingConfig()
