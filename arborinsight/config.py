"""
Application configuration using Pydantic settings.
"""
from pydantic_settings import BaseSettings
from pydantic import Field


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    database_url: str = Field(
        default="sqlite:///./arborinsight.db",
        description="SQLAlchemy database URL"
    )
    database_echo: bool = Field(
        default=False,
        description="Log every SQL statement"
    )

    # Species identification (Pl@ntNet)
    plantnet_base_url: str = Field(
        default="https://my-api.plantnet.org",
        description="Base URL for the Pl@ntNet API"
    )
    plantnet_api_key: str = Field(
        default="",
        description="Pl@ntNet API key; identification is refused when empty"
    )
    plantnet_timeout: float = Field(
        default=20.0,
        description="Timeout in seconds for species identification calls"
    )
    plantnet_default_organs: list[str] = Field(
        default=["leaf", "flower", "fruit", "bark", "habit"],
        description="Organ hints sent when the caller provides none"
    )
    plantnet_language: str = Field(
        default="pt",
        description="Language for species common names"
    )

    # Reverse geocoding (Nominatim)
    nominatim_base_url: str = Field(
        default="https://nominatim.openstreetmap.org",
        description="Base URL for the Nominatim API"
    )
    geocoding_timeout: float = Field(
        default=10.0,
        description="Timeout in seconds for reverse geocoding calls"
    )
    geocoding_language: str = Field(
        default="pt-BR",
        description="Accept-Language sent to the geocoder"
    )
    geocoding_user_agent: str = Field(
        default="ArborInsight-Urban-Forestry/1.0",
        description="User-Agent required by the Nominatim usage policy"
    )

    # Retry Configuration
    max_retry_attempts: int = Field(
        default=1,
        description="Maximum number of attempts for gateway calls (1 = no retry)"
    )
    retry_backoff_multiplier: int = Field(
        default=1,
        description="Multiplier for exponential backoff"
    )
    retry_min_wait: int = Field(
        default=1,
        description="Minimum wait time in seconds between retries"
    )
    retry_max_wait: int = Field(
        default=10,
        description="Maximum wait time in seconds between retries"
    )

    # Photo storage
    upload_dir: str = Field(
        default="./uploads",
        description="Directory holding uploaded tree photos"
    )
    max_upload_bytes: int = Field(
        default=10 * 1024 * 1024,
        description="Maximum accepted photo size in bytes"
    )

    # Authoring workflow
    default_latitude: float = Field(
        default=-23.2017,
        description="Regional default latitude for new trees"
    )
    default_longitude: float = Field(
        default=-47.2911,
        description="Regional default longitude for new trees"
    )
    new_tree_jitter_meters: float = Field(
        default=100.0,
        description="Maximum random offset applied to new tree coordinates"
    )
    observation_debounce_ms: int = Field(
        default=250,
        description="Quiescence window before observation text is committed"
    )
    notification_language: str = Field(
        default="pt-BR",
        description="Language of user notifications (pt-BR or en)"
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR)"
    )

    # CORS Configuration
    cors_origins: list[str] = Field(
        default=["*"],
        description="Allowed CORS origins (use specific origins in production)"
    )

    # Rate Limiting
    rate_limit_requests: int = Field(
        default=100,
        description="Maximum gateway requests per minute per client"
    )

    # Application Settings
    app_name: str = Field(
        default="ArborInsight",
        description="Application name"
    )
    app_version: str = Field(
        default="1.0.0",
        description="Application version"
    )
    debug: bool = Field(
        default=False,
        description="Debug mode"
    )

    class Config:
        env_file = ".env"
        case_sensitive = False


# Global settings instance
settings = Settings()
