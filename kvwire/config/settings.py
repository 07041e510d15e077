"""
kvwire Configuration Settings

This module contains the configuration defaults for kvwire connections.
Every value can be overridden through the environment.
"""

import os
from dataclasses import dataclass


@dataclass
class Settings:
    """Client configuration settings."""

    # Network settings
    HOST: str = os.environ.get("KVWIRE_HOST", "127.0.0.1")
    PORT: int = int(os.environ.get("KVWIRE_PORT", "6379"))

    # Connection settings
    RESPONSE_TIMEOUT: float = float(os.environ.get("KVWIRE_TIMEOUT", "10"))
    READ_BUFFER_SIZE: int = 4096

    # Protocol settings
    ENCODING: str = os.environ.get("KVWIRE_ENCODING", "utf-8")

    # Logging settings
    DEBUG: bool = os.environ.get("KVWIRE_DEBUG", "false").lower() == "true"
    LOG_LEVEL: str = os.environ.get("KVWIRE_LOG_LEVEL", "INFO")


# Global settings instance
settings = Settings()
