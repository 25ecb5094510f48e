"""
Storage factory - picks memory or JSON storage by STORAGE_MODE
"""

import logging
from typing import Optional

from tryon.storage.base import BaseStorage
from tryon.storage.json_storage import JsonStorage
from tryon.storage.memory_storage import MemoryStorage

logger = logging.getLogger(__name__)

# Global storage instance (singleton)
_storage_instance: Optional[BaseStorage] = None


def create_storage(
    storage_mode: Optional[str] = None,
    data_dir: Optional[str] = None
) -> BaseStorage:
    """
    Create a new storage instance

    Args:
        storage_mode: 'memory' or 'json' (None reads it from settings)
        data_dir: Directory for JSON files (None reads it from settings)

    Returns:
        BaseStorage instance
    """
    from tryon.config import get_settings

    settings = get_settings()
    storage_mode = (storage_mode or settings.storage_mode).lower()

    if storage_mode == 'json':
        data_dir = data_dir or settings.data_dir
        logger.info(f"[OK] JSON storage initialized (data_dir={data_dir})")
        return JsonStorage(data_dir)

    if storage_mode != 'memory':
        raise ValueError(f"Unknown STORAGE_MODE: {storage_mode}")

    logger.info("[OK] Memory storage initialized")
    return MemoryStorage()


def get_storage() -> BaseStorage:
    """Get the global storage instance"""
    global _storage_instance
    if _storage_instance is None:
        _storage_instance = create_storage()
    return _storage_instance


def reset_storage() -> None:
    """Reset the global storage instance (for tests)"""
    global _storage_instance
    _storage_instance = None
