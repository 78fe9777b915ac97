"""Configuration management using pydantic-settings."""
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from typing import Optional
from enum import Enum
import logging
import sys
import structlog


class StockPolicy(str, Enum):
    """Inventory policy applied to every updated record.

    Exactly one policy is active for a run:
    - backorder: stock is not quantity-tracked, records always accept orders
    - quantity: stock quantity and in/out-of-stock status follow the feed
    """
    BACKORDER = "backorder"
    QUANTITY = "quantity"


class SyncSettings(BaseSettings):
    """Feed synchronization configuration.

    All settings prefixed with SYNC_ (e.g., SYNC_BATCH_SIZE=50)
    """

    # Batching
    batch_size: int = Field(
        default=25,
        ge=1,
        le=1000,
        description="Feed records decided and committed together"
    )
    attribute_chunk_size: int = Field(
        default=50,
        ge=1,
        le=500,
        description="Maximum record ids per bulk attribute read"
    )
    identity_cache_limit: int = Field(
        default=100_000,
        ge=1,
        description="Safety ceiling for the external id -> internal id index"
    )

    # Decision policy
    ignore_instock: bool = Field(
        default=False,
        description="Leave records currently in stock untouched"
    )
    stock_policy: StockPolicy = Field(
        default=StockPolicy.BACKORDER,
        description="Inventory policy for updated records (backorder, quantity)"
    )
    price_precision: int = Field(
        default=2,
        ge=0,
        le=6,
        description="Decimal places used when comparing feed and stored prices"
    )

    # Commit throttle
    commit_pause_seconds: float = Field(
        default=0.1,
        ge=0.0,
        le=10.0,
        description="Pause after each committed batch (0 disables)"
    )

    # Feed validation
    validation_max_retries: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Feed count attempts before the run is aborted"
    )
    validation_retry_delay_seconds: float = Field(
        default=30.0,
        ge=0.0,
        le=600.0,
        description="Wait between feed count attempts"
    )
    validation_min_ratio: float = Field(
        default=0.5,
        gt=0.0,
        le=1.0,
        description="Minimum feed records as a share of published records"
    )
    validation_min_published: int = Field(
        default=100,
        ge=0,
        description="Ratio check applies only above this many published records"
    )

    # Execution budget (0 disables the time box)
    max_execution_seconds: float = Field(
        default=0.0,
        ge=0.0,
        description="Hard execution limit per invocation (0 = unlimited)"
    )
    safety_buffer_seconds: float = Field(
        default=5.0,
        ge=0.0,
        description="Stop this many seconds before the hard limit"
    )
    timeout_check_frequency: int = Field(
        default=10,
        ge=1,
        description="Records that must still fit in the remaining time"
    )
    speed_smoothing: float = Field(
        default=0.3,
        gt=0.0,
        le=1.0,
        description="Exponential moving average factor for per-record time"
    )

    # Run bookkeeping
    stale_run_minutes: int = Field(
        default=5,
        ge=1,
        le=1440,
        description="Running rows older than this are reclaimed as failed"
    )
    default_actor_id: int = Field(
        default=1,
        ge=1,
        description="Actor used for audit attribution when none is given"
    )

    # Feed layout
    record_tag: str = Field(default="product", description="Repeating record element")
    id_tag: str = Field(default="SKU", description="External identifier child element")
    price_tag: str = Field(default="supplier_price", description="Supplier price child element")
    quantity_tag: str = Field(default="quantity", description="Optional quantity child element")

    # Downstream caches
    derived_cache_pattern: str = Field(
        default="catalog:cache:*",
        description="Redis key pattern of caches derived from catalog data"
    )

    model_config = SettingsConfigDict(
        env_prefix="SYNC_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database Configuration
    database_url: str

    # Redis Configuration
    redis_host: str = "redis"
    redis_port: int = 6379
    redis_password: str = ""
    redis_url: Optional[str] = None

    log_level: str = "INFO"
    environment: str = "development"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    def __init__(self, **kwargs):
        """Initialize settings and build derived values."""
        super().__init__(**kwargs)
        # Build Redis URL if not provided
        if not self.redis_url:
            auth = f":{self.redis_password}@" if self.redis_password else ""
            self.redis_url = f"redis://{auth}{self.redis_host}:{self.redis_port}/0"


# Global settings instances
settings = Settings()
sync_settings = SyncSettings()


def configure_logging(log_level: str = "INFO") -> None:
    """Configure structlog for JSON logging."""
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper(), logging.INFO),
    )
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


# Initialize logging on module import (after settings are loaded)
try:
    configure_logging(settings.log_level)
except Exception:
    configure_logging("INFO")
