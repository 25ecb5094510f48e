"""
Application configuration - Settings class and get_settings function
Loads configuration from environment variables with validation
"""

import logging
import os
import re
from typing import Optional

logger = logging.getLogger(__name__)

# Global settings instance (singleton)
_settings: Optional['Settings'] = None

__all__ = ['Settings', 'get_settings', 'reset_settings']


def _env_flag(name: str, default: str = '0') -> bool:
    return os.getenv(name, default).strip().lower() in ('1', 'true', 'yes')


def _env_int(name: str, default: int, minimum: int = 0) -> int:
    raw = os.getenv(name, '').strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning(f"Invalid {name}: {raw}, using {default}")
        return default
    if value < minimum:
        logger.warning(f"{name}={value} is below {minimum}, using {default}")
        return default
    return value


def _env_float(name: str, default: float, minimum: float = 0.0) -> float:
    raw = os.getenv(name, '').strip()
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        logger.warning(f"Invalid {name}: {raw}, using {default}")
        return default
    if value < minimum:
        logger.warning(f"{name}={value} is below {minimum}, using {default}")
        return default
    return value


class Settings:
    """Application settings loaded from environment variables"""

    def __init__(self):
        # Provider
        self.piapi_api_key = os.getenv('PIAPI_API_KEY', '').strip()
        self.piapi_base_url = (os.getenv('PIAPI_BASE_URL', '').strip() or 'https://api.piapi.ai').rstrip('/')
        self.provider_stub = _env_flag('TRYON_PROVIDER_STUB')
        self.validate_media_urls = _env_flag('TRYON_VALIDATE_MEDIA_URLS', '1')
        self.http_timeout_seconds = _env_float('HTTP_TIMEOUT_SECONDS', 15.0, minimum=1.0)

        if not self.piapi_api_key and not self.provider_stub:
            logger.warning("PIAPI_API_KEY not set - stub provider will be used")

        # Storage
        self.storage_mode = os.getenv('STORAGE_MODE', 'memory').strip().lower()
        self.data_dir = os.getenv('DATA_DIR', './data').strip()

        # Polling budgets (attempt counts, not wall-clock deadlines)
        self.poll_interval_seconds = _env_float('TRYON_POLL_INTERVAL_SECONDS', 5.0)
        self.image_max_poll_attempts = _env_int('TRYON_IMAGE_MAX_POLL_ATTEMPTS', 60, minimum=1)
        self.video_max_poll_attempts = _env_int('TRYON_VIDEO_MAX_POLL_ATTEMPTS', 120, minimum=1)

        # Pricing (coins per task)
        self.image_cost = _env_int('TRYON_IMAGE_COST', 25, minimum=1)
        self.video_cost = _env_int('TRYON_VIDEO_COST', 25, minimum=1)

        # Orchestration
        self.submit_attempts = _env_int('TRYON_SUBMIT_ATTEMPTS', 1, minimum=1)
        self.preferred_source_pattern = (
            os.getenv('TRYON_PREFERRED_SOURCE_PATTERN', '').strip() or r'theapi\.app'
        )

        # Logging
        level_name = os.getenv('LOG_LEVEL', 'INFO').strip().upper()
        self.log_level = getattr(logging, level_name, None)
        if not isinstance(self.log_level, int):
            logger.warning(f"Invalid LOG_LEVEL: {level_name}, using INFO")
            self.log_level = logging.INFO

    @property
    def use_stub_provider(self) -> bool:
        return self.provider_stub or not self.piapi_api_key

    def validate(self):
        """Validate required settings"""
        errors = []

        if self.storage_mode not in ('memory', 'json'):
            errors.append(f"STORAGE_MODE must be 'memory' or 'json', got '{self.storage_mode}'")
        if self.storage_mode == 'json' and not self.data_dir:
            errors.append("DATA_DIR is required for json storage")
        try:
            re.compile(self.preferred_source_pattern)
        except re.error as e:
            errors.append(f"TRYON_PREFERRED_SOURCE_PATTERN is not a valid regex: {e}")

        if errors:
            error_msg = "\n".join(f"  - {err}" for err in errors)
            logger.error("=" * 60)
            logger.error("CONFIGURATION VALIDATION FAILED")
            logger.error("=" * 60)
            logger.error(error_msg)
            logger.error("=" * 60)
            raise ValueError("Configuration validation failed")

    @classmethod
    def from_env(cls, validate: bool = False) -> 'Settings':
        """Create Settings from environment variables"""
        settings = cls()
        if validate:
            settings.validate()
        return settings


def get_settings(validate: bool = False) -> Settings:
    """
    Get global Settings instance (singleton)

    Args:
        validate: If True, validate required fields on creation

    Returns:
        Settings instance
    """
    global _settings

    if _settings is None:
        _settings = Settings.from_env(validate=validate)

    return _settings


def reset_settings():
    """Reset global settings instance (for tests)"""
    global _settings
    _settings = None
