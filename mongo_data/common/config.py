"""
Configuration loader for the repository layer.

Loads all settings from environment variables (.env file).
Validates required settings and provides type-safe access.
"""

import logging
import os
from typing import Optional
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

# Load environment variables from .env file
load_dotenv()


def int_env(name: str, default: int) -> int:
    """Read an integer setting, falling back to the default on a bad value."""
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"Invalid {name} '{raw}', defaulting to {default}")
        return default


class Config:
    """
    Centralized configuration for MongoDB access.

    All values loaded from environment variables - NO SECRETS IN CODE.
    """

    # ===== MongoDB =====
    MONGODB_URI: str = os.getenv("MONGODB_URI", "")

    # Used when the connection string does not name a database
    MONGODB_DATABASE: str = os.getenv("MONGODB_DATABASE", "mongo_data")

    # Overrides the collection name derived from the entity type
    MONGODB_COLLECTION: Optional[str] = os.getenv("MONGODB_COLLECTION") or None

    # Client-side timeouts apply underneath the repository (no timeouts at this layer)
    MONGODB_SERVER_SELECTION_TIMEOUT_MS: int = int_env(
        "MONGODB_SERVER_SELECTION_TIMEOUT_MS", 30000
    )

    # ===== Logging =====
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    LOG_FORMAT: str = os.getenv("LOG_FORMAT", "simple")  # "simple" or "json"

    @classmethod
    def validate(cls) -> None:
        """
        Validate that all required configuration is present.
        Raises ValueError if critical settings are missing.
        """
        required_settings = {
            "MONGODB_URI": cls.MONGODB_URI,
        }

        missing = [name for name, value in required_settings.items() if not value]

        if missing:
            raise ValueError(
                f"Missing required configuration: {', '.join(missing)}. "
                f"Please check your .env file."
            )

        if cls.LOG_FORMAT not in ("simple", "json"):
            raise ValueError(
                f"LOG_FORMAT must be 'simple' or 'json', got '{cls.LOG_FORMAT}'"
            )

    @classmethod
    def summary(cls) -> str:
        """Return a summary of the current configuration (safe for logging)."""
        return f"""
Configuration Summary:
  MongoDB: {'✓ Configured' if cls.MONGODB_URI else '✗ Missing'}
  Default Database: {cls.MONGODB_DATABASE}
  Collection Override: {cls.MONGODB_COLLECTION or '(derived from entity type)'}
  Server Selection Timeout: {cls.MONGODB_SERVER_SELECTION_TIMEOUT_MS}ms
  Logging: {cls.LOG_LEVEL} ({cls.LOG_FORMAT})
        """.strip()
