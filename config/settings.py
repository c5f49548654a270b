"""
Application settings loaded from environment variables.

Uses pydantic-settings for validation and type safety.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from functools import lru_cache
from typing import Optional


class Settings(BaseSettings):
    """
    Application settings.
    
    All values loaded from .env file or environment variables.
    Validation happens automatically on startup.
    """
    
    model_config = SettingsConfigDict(
        env_file=(".env", "../.env"),  # Check current dir, then parent
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"  # Ignore extra env vars
    )
    
    # ===================
    # SUPABASE
    # ===================
    supabase_url: str = Field(
        ...,
        description="Supabase project URL"
    )
    supabase_key: str = Field(
        ...,
        description="Supabase anon/public key"
    )
    supabase_service_key: Optional[str] = Field(
        None,
        description="Supabase service role key (for admin operations)"
    )
    
    # ===================
    # COLLECTIONS
    # ===================
    products_table: str = Field(
        default="products",
        description="Table holding product documents"
    )
    variants_table: str = Field(
        default="product_variants",
        description="Table holding product variant documents"
    )
    categories_table: str = Field(
        default="categories",
        description="Table holding category documents"
    )
    
    # ===================
    # LISTING LIMITS
    # ===================
    existing_products_limit: int = Field(
        default=200,
        ge=1,
        le=5000,
        description="Max stored products loaded for duplicate detection"
    )
    categories_limit: int = Field(
        default=200,
        ge=1,
        le=5000,
        description="Max categories loaded per tenant"
    )
    variants_limit: int = Field(
        default=200,
        ge=1,
        le=5000,
        description="Max stored variants listed per product on update"
    )
    
    # ===================
    # IMPORT RATE LIMITING
    # ===================
    import_batch_size: int = Field(
        default=3,
        ge=1,
        le=100,
        description="Products written per batch"
    )
    import_batch_delay_seconds: float = Field(
        default=1.5,
        ge=0,
        le=60,
        description="Pause between batches"
    )
    import_parallel: int = Field(
        default=1,
        ge=1,
        le=20,
        description="Concurrent items within a batch"
    )
    import_per_item_delay_seconds: float = Field(
        default=0.4,
        ge=0,
        le=30,
        description="Pause after each item reaches a terminal outcome"
    )
    import_max_retries: int = Field(
        default=5,
        ge=0,
        le=20,
        description="Retries per item on transient failures"
    )
    import_retry_initial_delay_seconds: float = Field(
        default=1.5,
        ge=0,
        le=60,
        description="First retry backoff delay"
    )
    import_retry_backoff_multiplier: float = Field(
        default=2.0,
        ge=1,
        le=10,
        description="Backoff growth factor per attempt"
    )
    import_request_pause_seconds: float = Field(
        default=0.25,
        ge=0,
        le=10,
        description="Pause after every remote store request"
    )
    
    # ===================
    # IMPORT SESSIONS
    # ===================
    import_session_ttl_minutes: int = Field(
        default=30,
        ge=1,
        le=1440,
        description="Minutes an uploaded import stays reviewable"
    )
    import_preview_rows: int = Field(
        default=5,
        ge=0,
        le=100,
        description="Raw CSV rows echoed back as preview"
    )
    import_failure_detail_limit: int = Field(
        default=5,
        ge=1,
        le=100,
        description="Failure entries detailed in the import result"
    )
    read_only_mode: bool = Field(
        default=False,
        description="Demo mode: imports can be reviewed but never written"
    )
    
    # ===================
    # APP SETTINGS
    # ===================
    environment: str = Field(
        default="development",
        pattern="^(development|staging|production)$",
        description="Application environment"
    )
    debug: bool = Field(
        default=True,
        description="Enable debug mode"
    )
    log_level: str = Field(
        default="INFO",
        pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$",
        description="Logging level"
    )
    api_host: str = Field(
        default="0.0.0.0",
        description="API host"
    )
    api_port: int = Field(
        default=8000,
        ge=1000,
        le=65535,
        description="API port"
    )
    
    # ===================
    # COMPUTED PROPERTIES
    # ===================
    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.environment == "production"


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.
    
    Uses lru_cache to ensure settings are only loaded once.
    Call get_settings.cache_clear() to reload.
    
    Returns:
        Settings: Application settings
        
    Raises:
        ValidationError: If required env vars are missing or invalid
    """
    return Settings()


# For convenient imports: from config.settings import settings
settings = get_settings()
