"""Configuration management for the Party Decoration Studio.

This module provides centralized configuration management using Pydantic Settings.
Application settings are loaded from environment variables with the PARTYDECO_
prefix.  The image provider settings also accept the plain ``OPENROUTER_*``
variable names so an existing provider ``.env`` can be reused unchanged.

Environment Variable Loading
-----------------------------
Configuration values are loaded in the following priority order:
1. Environment variables (PARTYDECO_* prefix, or OPENROUTER_* for provider keys)
2. .env file in the project root
3. Default values defined in PartyDecoConfig

Example .env file:
    OPENROUTER_API_KEY=sk-or-...
    OPENROUTER_MODEL_ID=google/gemini-2.5-flash-image
    PARTYDECO_DATABASE_PATH=data/party.db
    PARTYDECO_SERVER_PORT=7860

Global Configuration Instance
------------------------------
A global `config` instance is created automatically at module import time.
This ensures a single source of truth for all configuration values across
the application.

Usage Example
-------------
    from partydeco.core.config import config

    print(config.openrouter_model_id)
    print(config.database_path)
"""

from pathlib import Path
from typing import Literal

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_OPENROUTER_API_URL = "https://openrouter.ai/api/v1/chat/completions"
DEFAULT_OPENROUTER_MODEL_ID = "google/gemini-2.5-flash-image"


class PartyDecoConfig(BaseSettings):
    """Main configuration for the Party Decoration Studio.

    Attributes
    ----------
    Image Provider:
        openrouter_api_key : str | None
            Bearer token for the chat-completions image provider.  Requests
            fail fast with a configuration error when it is missing.
        openrouter_model_id : str
            Provider model identifier used for every image request.
        openrouter_api_url : str
            Chat-completions endpoint URL.
        openrouter_site_url : str | None
            Optional ``HTTP-Referer`` header value.
        openrouter_app_name : str | None
            Optional ``X-Title`` header value.
        request_timeout : float
            Per-request timeout in seconds for provider calls.

    Storage:
        database_path : Path
            SQLite database file.  Its parent directory is created on init.

    Server:
        server_host : str
            Bind address for uvicorn.
        server_port : int
            Server port (1024-65535).
        log_level : Literal["DEBUG", "INFO", "WARNING", "ERROR"]
            Root log level applied by the CLI entry point.

    Examples
    --------
        >>> custom_config = PartyDecoConfig(
        ...     openrouter_api_key="test-key",
        ...     database_path="/tmp/party.db",
        ... )
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="PARTYDECO_",
        case_sensitive=False,
        populate_by_name=True,
        extra="ignore",
    )

    # Image provider settings
    openrouter_api_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices("OPENROUTER_API_KEY", "PARTYDECO_OPENROUTER_API_KEY"),
        description="Bearer token for the image provider",
    )
    openrouter_model_id: str = Field(
        default=DEFAULT_OPENROUTER_MODEL_ID,
        validation_alias=AliasChoices("OPENROUTER_MODEL_ID", "PARTYDECO_OPENROUTER_MODEL_ID"),
        description="Provider model used for image generation",
    )
    openrouter_api_url: str = Field(
        default=DEFAULT_OPENROUTER_API_URL,
        description="Chat-completions endpoint of the image provider",
    )
    openrouter_site_url: str | None = Field(
        default=None,
        validation_alias=AliasChoices("OPENROUTER_SITE_URL", "PARTYDECO_OPENROUTER_SITE_URL"),
        description="Sent as the HTTP-Referer header when set",
    )
    openrouter_app_name: str | None = Field(
        default=None,
        validation_alias=AliasChoices("OPENROUTER_APP_NAME", "PARTYDECO_OPENROUTER_APP_NAME"),
        description="Sent as the X-Title header when set",
    )
    request_timeout: float = Field(
        default=120.0,
        description="Timeout in seconds for a single provider request",
        gt=0,
    )

    # Storage
    database_path: Path = Field(
        default=Path("party.db"),
        description="SQLite database file for projects and iterations",
    )

    # Server settings
    server_host: str = Field(
        default="0.0.0.0",
        description="Server bind address (0.0.0.0 for local network)",
    )
    server_port: int = Field(
        default=7860,
        description="Server port",
        ge=1024,
        le=65535,
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Log level used by the CLI entry point",
    )

    def __init__(self, **kwargs):
        """Initialize configuration and create the database directory.

        Args:
            **kwargs: Configuration overrides (typically from environment variables)
        """
        super().__init__(**kwargs)

        self.database_path.parent.mkdir(parents=True, exist_ok=True)


# Global configuration instance
# Loads values from environment variables (PARTYDECO_* / OPENROUTER_*) and .env file.
config = PartyDecoConfig()
