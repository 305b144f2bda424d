"""
Application configuration management using Pydantic settings.

Every threshold the classifier, extractor and template matcher depend on is
configurable through environment variables, grouped by component prefix.
"""
from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseSettings):
    """Template store database configuration"""

    database_url: str = Field(
        default="sqlite+aiosqlite:///./pricelist_templates.db",
        description="SQLAlchemy async database URL",
    )
    database_pool_size: int = Field(default=5, description="Connection pool size")
    database_echo: bool = Field(default=False, description="Echo SQL statements")

    @field_validator("database_url")
    @classmethod
    def validate_database_url(cls, v):
        """Ensure database URL uses a supported async driver"""
        if not (v.startswith("postgresql+asyncpg://") or v.startswith("sqlite+aiosqlite://")):
            raise ValueError(
                "Database URL must be postgresql+asyncpg://... or sqlite+aiosqlite://..."
            )
        return v

    model_config = SettingsConfigDict(env_prefix="DB_")


class ClaudeSettings(BaseSettings):
    """Claude API configuration for optional layout enhancement"""

    api_key: Optional[str] = Field(default=None, description="Anthropic API key")
    model: str = Field(default="claude-3-haiku-20240307")
    api_url: str = Field(default="https://api.anthropic.com/v1/messages")

    max_tokens: int = Field(default=300, ge=50, le=4000)
    temperature: float = Field(default=0.0, ge=0.0, le=1.0)
    timeout_seconds: int = Field(default=15, ge=5, le=120)
    max_retries: int = Field(default=2, ge=0, le=5)
    min_request_interval: float = Field(default=0.1, ge=0.0)

    @field_validator("api_key")
    @classmethod
    def validate_api_key(cls, v):
        """Validate Claude API key format"""
        if v is None:
            return v
        if not v.startswith("sk-ant-"):
            raise ValueError("Claude API key must start with sk-ant-")
        if len(v) < 20:
            raise ValueError("Claude API key appears to be too short")
        return v

    model_config = SettingsConfigDict(env_prefix="CLAUDE_")


class ClassifierSettings(BaseSettings):
    """Layout classification thresholds"""

    tabular_sample_size: int = Field(default=50, ge=5, le=500)
    enhancement_threshold: float = Field(
        default=0.7, ge=0.0, le=1.0, description="Below this confidence the AI enhancer runs"
    )
    enhancement_boost: float = Field(default=0.1, ge=0.0, le=0.5)
    enable_ai_enhancement: bool = Field(default=False)
    pattern_store_threshold: float = Field(
        default=0.7, ge=0.0, le=1.0, description="Minimum confidence to record a layout pattern"
    )

    model_config = SettingsConfigDict(env_prefix="CLASSIFIER_")


class ExtractionSettings(BaseSettings):
    """Price extraction defaults"""

    default_currency: str = Field(default="ZAR", min_length=3, max_length=3)
    min_name_length: int = Field(default=3, ge=1, le=20)
    block_separator: str = Field(default="---PRODUCT-SEPARATOR---")
    max_valid_price: float = Field(default=1_000_000.0, gt=0)

    @field_validator("default_currency")
    @classmethod
    def validate_currency(cls, v):
        """Normalise currency code"""
        return v.upper()

    model_config = SettingsConfigDict(env_prefix="EXTRACTION_")


class TemplateSettings(BaseSettings):
    """Template matching and adaptation configuration"""

    learning_threshold: float = Field(default=0.8, ge=0.0, le=1.0)
    adaptation_rate: float = Field(
        default=0.1, gt=0.0, le=1.0, description="Exponential smoothing factor for profiles"
    )
    success_threshold: float = Field(default=0.6, ge=0.0, le=1.0)
    max_conflict_retries: int = Field(default=5, ge=1, le=20)
    recency_window_days: int = Field(default=30, ge=1)
    confidence_window: int = Field(default=10, ge=1, le=100)

    model_config = SettingsConfigDict(env_prefix="TEMPLATE_")


class MonitoringSettings(BaseSettings):
    """Logging configuration"""

    log_level: str = Field(default="INFO")
    log_format: str = Field(default="text")  # json, text

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level"""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Log level must be one of {valid_levels}")
        return v.upper()

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v):
        """Validate log format"""
        if v not in ["json", "text"]:
            raise ValueError('Log format must be "json" or "text"')
        return v

    model_config = SettingsConfigDict(env_prefix="MONITORING_")


class ApplicationSettings(BaseSettings):
    """Main application configuration"""

    app_name: str = Field(default="Supplier Pricelist Engine")
    app_version: str = Field(default="1.0.0")
    environment: str = Field(default="development")

    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    claude: ClaudeSettings = Field(default_factory=ClaudeSettings)
    classifier: ClassifierSettings = Field(default_factory=ClassifierSettings)
    extraction: ExtractionSettings = Field(default_factory=ExtractionSettings)
    templates: TemplateSettings = Field(default_factory=TemplateSettings)
    monitoring: MonitoringSettings = Field(default_factory=MonitoringSettings)

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v):
        """Validate environment name"""
        valid_environments = ["development", "staging", "production"]
        if v not in valid_environments:
            raise ValueError(f"Environment must be one of {valid_environments}")
        return v

    def is_production(self) -> bool:
        """Check if running in production environment"""
        return self.environment == "production"

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


@lru_cache
def get_settings() -> ApplicationSettings:
    """
    Get application settings with caching.
    Uses LRU cache to avoid re-reading environment on every call.
    """
    return ApplicationSettings()


def validate_settings(settings: Optional[ApplicationSettings] = None) -> None:
    """
    Validate cross-component settings.
    Call this at startup to fail fast on configuration errors.
    """
    settings = settings or get_settings()

    if settings.classifier.enable_ai_enhancement and not settings.claude.api_key:
        raise ValueError("AI enhancement is enabled but CLAUDE_API_KEY is not set")

    if settings.is_production() and settings.database.database_url.startswith("sqlite"):
        raise ValueError("SQLite template store is not supported in production")


def get_environment_info() -> dict:
    """Get current environment information for debugging"""
    settings = get_settings()

    return {
        "app_name": settings.app_name,
        "app_version": settings.app_version,
        "environment": settings.environment,
        "database_url": settings.database.database_url.split("@")[-1],
        "claude_configured": bool(settings.claude.api_key),
        "ai_enhancement": settings.classifier.enable_ai_enhancement,
        "learning_threshold": settings.templates.learning_threshold,
        "default_currency": settings.extraction.default_currency,
        "log_level": settings.monitoring.log_level,
    }


__all__ = [
    "ApplicationSettings",
    "ClassifierSettings",
    "ClaudeSettings",
    "DatabaseSettings",
    "ExtractionSettings",
    "MonitoringSettings",
    "TemplateSettings",
    "get_settings",
    "validate_settings",
    "get_environment_info",
]
