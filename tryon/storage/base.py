"""
Base storage interface (memory or JSON)
One API for balances, task records, saved results and notifications
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional


class BaseStorage(ABC):
    """Base interface for try-on data storage"""

    # ==================== BALANCE OPERATIONS ====================

    @abstractmethod
    async def read_balance(self, user_id: str) -> int:
        """
        Read the user's durable balance (0 when there is no record)
        """
        pass

    @abstractmethod
    async def write_balance(self, user_id: str, new_balance: int) -> None:
        """
        Write a new balance. Any exception means the write did not
        become durable.
        """
        pass

    # ==================== TASK RECORDS ====================

    @abstractmethod
    async def save_task_record(self, task_id: str, record: Dict[str, Any]) -> None:
        """Save a task snapshot (upsert by task_id)"""
        pass

    @abstractmethod
    async def get_task_record(self, task_id: str) -> Optional[Dict[str, Any]]:
        """Get a task snapshot"""
        pass

    # ==================== SAVED RESULTS ====================

    @abstractmethod
    async def save_result(self, user_id: str, product_id: str, media: List[str]) -> None:
        """
        Save the try-on result for (user, product); a repeated write
        replaces the previous one
        """
        pass

    @abstractmethod
    async def get_saved_result(self, user_id: str, product_id: str) -> Optional[Dict[str, Any]]:
        """
        Returns:
            {'user_id', 'product_id', 'media': List[str], 'updated_at'} or None
        """
        pass

    # ==================== NOTIFICATIONS ====================

    @abstractmethod
    async def add_notification(self, user_id: str, notification: Dict[str, Any]) -> None:
        """Prepend a notification to the user's list"""
        pass

    @abstractmethod
    async def list_notifications(self, user_id: str) -> List[Dict[str, Any]]:
        """User notifications, newest first"""
        pass
