"""Environment-driven configuration with Pydantic v2."""

from typing import Literal, Optional
from pydantic import Field, field_validator, ValidationInfo
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings driven entirely by environment variables."""

    # Server Configuration
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8010, ge=1024, le=65535)
    debug: bool = Field(default=False)

    # Logging
    log_level: str = Field(default="INFO")
    log_format: Literal["json", "console"] = Field(default="json")
    log_file: Optional[str] = Field(default=None)

    # Request debouncing (per caller)
    debounce_min_interval: float = Field(default=1.0, gt=0)        # seconds
    debounce_max_violations: int = Field(default=10, ge=1)
    debounce_record_ttl: float = Field(default=60.0, gt=0)         # seconds
    debounce_max_records: int = Field(default=1000, ge=1)

    # Validation result cache
    cache_max_size: int = Field(default=50, ge=1)
    cache_ttl: float = Field(default=300.0, gt=0)                  # seconds
    cache_stale_while_revalidate: bool = Field(default=False)

    # Performance metrics
    metrics_retention: float = Field(default=300.0, gt=0)          # seconds
    metrics_max_records: int = Field(default=1000, ge=1)
    metrics_slow_threshold_ms: float = Field(default=1000.0, gt=0)

    # Memory monitor
    memory_monitor_enabled: bool = Field(default=True)
    memory_check_interval: float = Field(default=30.0, gt=0)       # seconds
    memory_max_readings: int = Field(default=10, ge=2)
    memory_warning_mb: float = Field(default=400.0, gt=0)
    memory_critical_mb: float = Field(default=500.0, gt=0)

    # Cleanup scheduler
    cleanup_enabled: bool = Field(default=True)
    cleanup_interval: float = Field(default=300.0, gt=0)           # seconds

    @field_validator("memory_critical_mb")
    @classmethod
    def validate_memory_thresholds(cls, v, info: ValidationInfo):
        """Critical threshold cannot sit below the warning threshold."""
        warning = info.data.get("memory_warning_mb")
        if warning is not None and v < warning:
            raise ValueError("memory_critical_mb must be >= memory_warning_mb")
        return v

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.debug

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "extra": "ignore",
        "env_parse_none_str": "none",
    }
