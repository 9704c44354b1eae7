"""
Configuration management for the Email Discovery Service
"""
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load environment variables from .env file
load_dotenv()


class Settings(BaseSettings):
    """Application settings with environment variable support"""

    # Language model (Perplexity)
    perplexity_api_key: Optional[str] = None
    perplexity_model: str = "sonar"
    llm_temperature: float = Field(0.2, ge=0.0, le=2.0)
    llm_max_tokens: int = 2000

    # Contact discovery
    apollo_api_key: Optional[str] = None
    hunter_api_key: Optional[str] = None
    contact_finder_provider: str = "apollo"  # apollo | hunter
    hunter_confidence_threshold: int = 70

    # Deliverability verification
    neverbounce_api_key: Optional[str] = None
    zerobounce_api_key: Optional[str] = None
    verification_provider: str = "neverbounce"  # neverbounce | zerobounce

    # Website scraping (alternate source for generate-from-domains)
    scraper_url: Optional[str] = None
    scraper_api_key: Optional[str] = None
    scraper_response_shape: str = "flat"  # flat | per_website
    domains_fanout_source: str = "contacts"  # contacts | scraper

    # Operation wiring
    criteria_validation_mode: str = "full"  # full | basic | none
    text_validation_mode: str = "full"
    criteria_suggest_emails: bool = True
    result_cap: int = 30
    max_emails_per_domain: int = 5
    validation_chunk_size: int = 10
    generic_prefixes: List[str] = Field(default_factory=lambda: ["contact", "info", "support", "sales"])

    # Service Configuration
    request_timeout: int = 30
    service_name: str = "email-discovery-service"
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    # Logging Configuration
    log_level: str = "INFO"
    log_file_enabled: bool = True
    log_file_path: str = "logs"
    log_rotation: str = "10 MB"
    log_retention: str = "30 days"

    # Development
    debug_mode: bool = False

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",  # Allow extra fields in env file for compatibility
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level is one of the standard Python logging levels"""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Log level must be one of {valid_levels}")
        return v.upper()

    @field_validator("contact_finder_provider")
    @classmethod
    def validate_contact_finder_provider(cls, v):
        valid_providers = ["apollo", "hunter"]
        if v.lower() not in valid_providers:
            raise ValueError(f"Contact finder provider must be one of {valid_providers}")
        return v.lower()

    @field_validator("verification_provider")
    @classmethod
    def validate_verification_provider(cls, v):
        valid_providers = ["neverbounce", "zerobounce"]
        if v.lower() not in valid_providers:
            raise ValueError(f"Verification provider must be one of {valid_providers}")
        return v.lower()

    @field_validator("scraper_response_shape")
    @classmethod
    def validate_scraper_response_shape(cls, v):
        valid_shapes = ["flat", "per_website"]
        if v.lower() not in valid_shapes:
            raise ValueError(f"Scraper response shape must be one of {valid_shapes}")
        return v.lower()

    @field_validator("domains_fanout_source")
    @classmethod
    def validate_domains_fanout_source(cls, v):
        valid_sources = ["contacts", "scraper"]
        if v.lower() not in valid_sources:
            raise ValueError(f"Domains fan-out source must be one of {valid_sources}")
        return v.lower()

    @field_validator("criteria_validation_mode", "text_validation_mode")
    @classmethod
    def validate_validation_mode(cls, v):
        valid_modes = ["full", "basic", "none"]
        if v.lower() not in valid_modes:
            raise ValueError(f"Validation mode must be one of {valid_modes}")
        return v.lower()

    @field_validator("validation_chunk_size")
    @classmethod
    def validate_chunk_size(cls, v):
        """Ensure validation_chunk_size is reasonable"""
        if v < 1 or v > 100:
            raise ValueError("validation_chunk_size must be between 1 and 100")
        return v

    @field_validator("max_emails_per_domain")
    @classmethod
    def validate_max_emails_per_domain(cls, v):
        if v < 1 or v > 100:
            raise ValueError("max_emails_per_domain must be between 1 and 100")
        return v

    @field_validator("result_cap")
    @classmethod
    def validate_result_cap(cls, v):
        """0 disables the cap"""
        if v < 0:
            raise ValueError("result_cap must not be negative")
        return v

    @field_validator("hunter_confidence_threshold")
    @classmethod
    def validate_confidence_threshold(cls, v):
        """Ensure confidence threshold is a valid percentage"""
        if v < 0 or v > 100:
            raise ValueError("Confidence threshold must be between 0 and 100")
        return v


# Global settings instance - lazy loaded
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the global settings instance"""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reload_settings() -> Settings:
    """Reload settings from environment"""
    global _settings
    _settings = Settings()
    return _settings
