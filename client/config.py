"""
Configuration management for the chat synchronization client.

This module uses Pydantic Settings for environment-based configuration
with validation and type checking.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Client settings with environment variable support."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Application settings
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: str = Field(default="INFO", description="Logging level")

    # REST backend settings
    api_base_url: str = Field(
        default="http://localhost:5000/api",
        description="Base URL of the REST backend"
    )
    request_timeout: float = Field(
        default=10.0,
        description="REST call timeout in seconds"
    )

    # Realtime (Socket.IO) settings
    socket_url: str = Field(
        default="http://localhost:5000",
        description="Socket.IO server URL"
    )
    socketio_path: str = Field(
        default="socket.io",
        description="Socket.IO endpoint path"
    )
    socket_connect_timeout: float = Field(
        default=10.0,
        description="Seconds to wait for the realtime connection"
    )
    socket_reconnection_attempts: int = Field(
        default=10,
        description="Reconnection attempts before giving up (0 = forever)"
    )
    socket_reconnection_delay: float = Field(
        default=1.0,
        description="Initial delay between reconnection attempts"
    )
    socket_reconnection_delay_max: float = Field(
        default=5.0,
        description="Maximum delay between reconnection attempts"
    )

    # Messaging behaviour
    message_page_size: int = Field(
        default=50,
        description="Messages requested per history page"
    )
    fallback_insert_delay: float = Field(
        default=2.0,
        description="Seconds to wait for the realtime echo before inserting a sent message directly"
    )
    upgrade_required_phrase: str = Field(
        default="Direct messaging requires",
        description="Phrase in a 403 message that marks a subscription restriction"
    )
    attachment_placeholder: str = Field(
        default="[File Attachment]",
        description="Preview text for messages that only carry an attachment"
    )


# Global settings instance
settings = Settings()
