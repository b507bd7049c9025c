"""
Application Settings
===================

Main application settings and environment configuration using Pydantic Settings.
Supports development, testing, and production environments.
"""

from typing import Optional, List, Union
from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
import json
from pathlib import Path


class Settings(BaseSettings):
    """Main application settings with environment variable support."""

    # Application Configuration
    app_name: str = Field(default="PlantUML Gateway", description="Application name")
    environment: str = Field(
        default="development", description="Environment: development, testing, production"
    )
    debug: bool = Field(default=True, description="Debug mode")

    # Server Configuration
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8080, description="Server port")
    workers: int = Field(default=1, description="Number of worker processes")

    # Renderer Configuration
    jar_path: Path = Field(
        default=Path("./plantuml.jar"),
        validation_alias=AliasChoices("PLANTUML_JAR_PATH", "jar_path"),
        description="Path to the PlantUML jar",
    )
    java_path: str = Field(default="java", description="Java executable")
    security_profile: str = Field(
        default="INTERNET",
        validation_alias=AliasChoices("PLANTUML_SECURITY_PROFILE", "security_profile"),
        description="PlantUML security profile",
    )
    config_file: Optional[Path] = Field(
        default=None,
        validation_alias=AliasChoices("PLANTUML_CONFIG_FILE", "config_file"),
        description="Global preamble lines injected into every diagram",
    )
    property_file: Optional[Path] = Field(
        default=None,
        validation_alias=AliasChoices("PLANTUML_PROPERTY_FILE", "property_file"),
        description="Java properties forwarded to the renderer",
    )
    render_timeout: int = Field(default=30, description="Render timeout in seconds")
    max_concurrent_renders: int = Field(
        default=4, ge=1, description="Maximum number of jar processes running at once"
    )

    # Proxy Configuration
    proxy_read_timeout: int = Field(
        default=10000,
        validation_alias=AliasChoices("HTTP_PROXY_READ_TIMEOUT", "proxy_read_timeout"),
        description="Read timeout for proxied sources in milliseconds",
    )
    http_authorization: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("HTTP_AUTHORIZATION", "http_authorization"),
        description="Authorization header forwarded to proxied sources",
    )

    # API Documentation Configuration
    enable_docs: bool = Field(default=True, description="Enable FastAPI docs endpoint")

    # Security Configuration
    allowed_hosts: List[str] = Field(default=["*"], description="Allowed hosts for CORS")

    # Monitoring Configuration
    log_level: str = Field(default="INFO", description="Logging level")

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Validate environment value."""
        allowed = {"development", "testing", "production"}
        if v not in allowed:
            raise ValueError(f"Environment must be one of: {allowed}")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in allowed:
            raise ValueError(f"Log level must be one of: {allowed}")
        return v.upper()

    @field_validator("security_profile")
    @classmethod
    def validate_security_profile(cls, v: str) -> str:
        """Validate the PlantUML security profile name."""
        allowed = {"UNSECURE", "LEGACY", "ALLOWLIST", "INTERNET", "SANDBOX"}
        if v.upper() not in allowed:
            raise ValueError(f"Security profile must be one of: {allowed}")
        return v.upper()

    @field_validator("proxy_read_timeout", mode="before")
    @classmethod
    def parse_proxy_read_timeout(cls, v: Union[str, int]) -> int:
        """Fall back to the default timeout unless given a plain number."""
        if isinstance(v, str):
            v = v.strip()
            return int(v) if v.isdigit() else 10000
        return v

    @field_validator("allowed_hosts", mode="before")
    @classmethod
    def parse_allowed_hosts(cls, v: Union[str, List[str]]) -> List[str]:
        """Parse allowed hosts from string or list."""
        if isinstance(v, str):
            # Handle JSON-like string: ["*"] or ["host1", "host2"]
            v = v.strip()
            if v.startswith("[") and v.endswith("]"):
                try:
                    return json.loads(v)
                except json.JSONDecodeError:
                    pass
            # Handle comma-separated string: "*" or "host1,host2"
            return [host.strip() for host in v.split(",") if host.strip()]
        return v

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        env_prefix="PLANTUML_",
        populate_by_name=True,
    )


# Global settings instance - will be initialized when needed
settings = None


def get_settings() -> Settings:
    """Get the global settings instance."""
    global settings
    if settings is None:
        settings = Settings()
    return settings


def reload_settings() -> Settings:
    """Reload settings from environment."""
    global settings
    settings = Settings()
    return settings
